"""storage/__init__.py"""
from .database import Database
from .repository import StateRepository

__all__ = ["Database", "StateRepository"]
