"""
Churn Batch Scoring Package

Scores an uploaded customer CSV for churn risk: remote model first, a
deterministic rule engine as fallback, with per-row failure isolation.
"""

from .config import PipelineSettings, ScoringConfig
from .models import NormalizedRecord, Plan, Prediction
from .persistence import InMemoryGateway
from .pipeline import BatchReport, ChurnPipeline
from .scorer import FallbackScorer, generate_sample_records

__all__ = [
    "BatchReport",
    "ChurnPipeline",
    "FallbackScorer",
    "InMemoryGateway",
    "NormalizedRecord",
    "PipelineSettings",
    "Plan",
    "Prediction",
    "ScoringConfig",
    "generate_sample_records",
]
__version__ = "1.0.0"
