"""
api/routes/tabs.py

DELETE /api/tabs/{tab_id} — forget a closed browser tab's history entries
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ...pipeline import ClassificationPipeline
from ..serializers import TabClearedResponse

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tabs", tags=["tabs"])


def _get_pipeline() -> ClassificationPipeline:
    from ..main import get_pipeline
    return get_pipeline()


@router.delete("/{tab_id}", response_model=TabClearedResponse)
async def forget_tab(
    tab_id: int,
    pipeline: ClassificationPipeline = Depends(_get_pipeline),
) -> TabClearedResponse:
    removed = pipeline.forget_tab(tab_id)
    logger.info("Tab %d closed — %d history record(s) dropped", tab_id, removed)
    return TabClearedResponse(tab_id=tab_id, removed=removed)
