"""
api/routes/config.py

GET /api/config  — current detection options
PUT /api/config  — update options (takes effect on the next event)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from ...pipeline import ClassificationPipeline
from ..serializers import ConfigResponse, ConfigUpdateRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/config", tags=["config"])


def _get_pipeline() -> ClassificationPipeline:
    from ..main import get_pipeline
    return get_pipeline()


@router.get("", response_model=ConfigResponse)
async def read_config(pipeline: ClassificationPipeline = Depends(_get_pipeline)) -> ConfigResponse:
    return ConfigResponse(**pipeline.config.model_dump())


@router.put("", response_model=ConfigResponse)
async def update_config(
    update: ConfigUpdateRequest,
    pipeline: ClassificationPipeline = Depends(_get_pipeline),
) -> ConfigResponse:
    """
    Update one or more detection options.
    Only provided fields are changed; others remain unchanged.
    """
    patch = update.model_dump(exclude_none=True)
    try:
        config = pipeline.reconfigure(**patch)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        )
    logger.info("Config updated via API: %s", patch)
    return ConfigResponse(**config.model_dump())
