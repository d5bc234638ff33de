"""
api/routes/connections.py

POST /api/connections — ingest one observation
GET  /api/connections — rolling classification history, newest first

With an event queue wired (service mode) ingestion is asynchronous and
returns 202; otherwise the observation is classified inline.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ...errors import InvalidEvent
from ...ingest import parse_observation
from ...metrics import METRICS
from ...pipeline import ClassificationPipeline
from ...queues import safe_put
from ..serializers import ConnectionListResponse, ConnectionResponse, ObservationRequest, QueuedResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/connections", tags=["connections"])


def _get_pipeline() -> ClassificationPipeline:
    """FastAPI dependency — replaced in tests via app.dependency_overrides."""
    from ..main import get_pipeline
    return get_pipeline()


def _get_queue():
    from ..main import get_event_queue
    return get_event_queue()


@router.post("", response_model=ConnectionResponse | QueuedResponse)
async def ingest_connection(
    body: ObservationRequest,
    response: Response,
    pipeline: ClassificationPipeline = Depends(_get_pipeline),
):
    """Parse and classify (or enqueue) one observed connection."""
    try:
        event = parse_observation(body.model_dump(by_alias=True, exclude_none=True))
    except InvalidEvent as exc:
        METRICS.events_invalid.inc()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.to_dict())

    queue = _get_queue()
    if queue is not None:
        safe_put(queue, event)
        response.status_code = status.HTTP_202_ACCEPTED
        return QueuedResponse(queued=True, ip=event.ip, domain=event.domain)

    record = pipeline.handle(event)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": "not_classified", "message": "event was dropped by the pipeline"},
        )
    return ConnectionResponse.from_dict(record.to_dict())


@router.get("", response_model=ConnectionListResponse)
async def list_connections(
    limit:          Annotated[int,  Query(ge=1, le=1000)] = 100,
    anomalies_only: Annotated[bool, Query()]              = False,
    domain:         Annotated[str | None, Query()]        = None,
    tab_id:         Annotated[int | None, Query()]        = None,
    pipeline: ClassificationPipeline = Depends(_get_pipeline),
) -> ConnectionListResponse:
    records = list(reversed(pipeline.history()))
    if anomalies_only:
        records = [r for r in records if r.is_anomaly]
    if domain:
        records = [r for r in records if r.snapshot.domain == domain.lower()]
    if tab_id is not None:
        records = [r for r in records if r.event.tab_id == tab_id]
    items = [ConnectionResponse.from_dict(r.to_dict()) for r in records[:limit]]
    return ConnectionListResponse(items=items, total=len(records))
