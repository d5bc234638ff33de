"""
tracking/__init__.py

Public API for the tracking sub-package.
"""

from .models import DomainState, TrackerSnapshot
from .tracker import DomainConnectionTracker, is_first_party, is_malformed

__all__ = [
    "DomainConnectionTracker",
    "DomainState",
    "TrackerSnapshot",
    "is_first_party",
    "is_malformed",
]
