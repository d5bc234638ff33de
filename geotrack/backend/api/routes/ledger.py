"""
api/routes/ledger.py

GET  /api/ledger        — retained audit chain, oldest first
POST /api/ledger        — manually audit one history entry
GET  /api/ledger/verify — recompute hashes and linkage
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import LedgerAppendFailure
from ...pipeline import ClassificationPipeline
from ..serializers import AuditRequest, BlockResponse, LedgerResponse, VerifyResponse

router = APIRouter(prefix="/ledger", tags=["ledger"])


def _get_pipeline() -> ClassificationPipeline:
    from ..main import get_pipeline
    return get_pipeline()


@router.get("", response_model=LedgerResponse)
async def read_ledger(pipeline: ClassificationPipeline = Depends(_get_pipeline)) -> LedgerResponse:
    blocks = pipeline.ledger_blocks()
    return LedgerResponse(
        blocks=[BlockResponse(**b.to_dict()) for b in blocks],
        length=len(blocks),
        capacity=pipeline.ledger.capacity,
        tip=blocks[-1].hash,
    )


@router.post("", response_model=BlockResponse, status_code=status.HTTP_201_CREATED)
async def audit_connection(
    body: AuditRequest,
    pipeline: ClassificationPipeline = Depends(_get_pipeline),
) -> BlockResponse:
    """Append the history entry classified at `classified_at` to the chain."""
    record = pipeline.find_record(body.classified_at)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "not_in_history", "message": "no history entry with that classified_at"},
        )
    try:
        block = pipeline.audit(record)
    except LedgerAppendFailure as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.to_dict())
    return BlockResponse(**block.to_dict())


@router.get("/verify", response_model=VerifyResponse)
async def verify_ledger(pipeline: ClassificationPipeline = Depends(_get_pipeline)) -> VerifyResponse:
    blocks = pipeline.ledger_blocks()
    return VerifyResponse(valid=pipeline.ledger.verify(blocks), length=len(blocks))
