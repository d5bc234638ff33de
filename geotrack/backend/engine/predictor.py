"""
engine/predictor.py

Pluggable external model contributing one signal to the scorer.

How a model is trained or loaded is not this package's concern; anything
that can map a connection to a probability in [0, 1] can be plugged in.
Returning None means "no opinion" and leaves the scorer purely additive.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from ..models import ConnectionEvent
    from ..tracking.models import TrackerSnapshot


class BasePredictor(ABC):
    """
    Contract for external anomaly models.

    predict() is called on the classification path: it must be fast and
    must not do network I/O.  Exceptions are caught by the pipeline and
    treated as "no prediction".
    """

    name: str = "predictor"

    @abstractmethod
    def predict(self, event: "ConnectionEvent", snapshot: "TrackerSnapshot") -> float | None:
        ...

    def __repr__(self) -> str:
        return f"<Predictor:{self.name}>"


class CallablePredictor(BasePredictor):
    """Adapts a plain function ``fn(event, snapshot) -> float | None``."""

    def __init__(
        self,
        fn: Callable[["ConnectionEvent", "TrackerSnapshot"], float | None],
        name: str = "callable",
    ) -> None:
        self._fn = fn
        self.name = name

    def predict(self, event: "ConnectionEvent", snapshot: "TrackerSnapshot") -> float | None:
        return self._fn(event, snapshot)
