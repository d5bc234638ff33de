"""engine/__init__.py"""
from .classifier import AnomalyClassifier
from .models import RiskAssessment, SignalResult
from .predictor import BasePredictor, CallablePredictor
from .scorer import RiskScorer, default_signals

__all__ = [
    "AnomalyClassifier",
    "BasePredictor",
    "CallablePredictor",
    "RiskAssessment",
    "RiskScorer",
    "SignalResult",
    "default_signals",
]
