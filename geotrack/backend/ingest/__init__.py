"""
ingest/__init__.py

Public API for the ingest sub-package.
"""

from .parser import FORWARDING_HEADERS, parse_observation, revealed_address

__all__ = ["FORWARDING_HEADERS", "parse_observation", "revealed_address"]
