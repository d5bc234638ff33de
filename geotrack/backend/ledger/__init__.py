"""ledger/__init__.py"""
from .chain import HashChainLedger, compute_hash, verify_chain
from .models import GENESIS_PAYLOAD, GENESIS_PREVIOUS_HASH, AuditBlock

__all__ = [
    "AuditBlock",
    "GENESIS_PAYLOAD",
    "GENESIS_PREVIOUS_HASH",
    "HashChainLedger",
    "compute_hash",
    "verify_chain",
]
