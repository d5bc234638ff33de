"""
api/routes/stats.py

GET /api/stats — live counters from every pipeline stage
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ...metrics import METRICS
from ...pipeline import ClassificationPipeline
from ..serializers import StatsResponse
from ..ws_manager import ws_manager

router = APIRouter(prefix="/stats", tags=["stats"])


def _get_pipeline() -> ClassificationPipeline:
    from ..main import get_pipeline
    return get_pipeline()


@router.get("", response_model=StatsResponse)
async def get_stats(pipeline: ClassificationPipeline = Depends(_get_pipeline)) -> StatsResponse:
    return StatsResponse(
        metrics=METRICS.as_dict(),
        pipeline=pipeline.summary(),
        ws_connections=ws_manager.all_counts(),
    )
