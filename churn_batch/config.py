"""
Configuration for the churn batch scoring pipeline.

Two layers:
- ScoringConfig: every threshold and weight used by the fallback rule engine,
  plus the fixed risk-tier cut points.
- PipelineSettings: runtime wiring (remote model endpoint, timeouts, storage,
  database, email), loadable from environment variables or YAML.
"""

import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Optional

import yaml


DEFAULT_PREDICTION_API_URL = "https://ai-model-rumc.onrender.com"


@dataclass
class ScoringConfig:
    """
    Configuration for the fallback risk scorer.

    Base risk: 0.10. Each rule adds its weight when its threshold is crossed;
    contributions are summed and the total clamped to [0.10, 0.95].

    - Inactivity:  +0.30 when last login > 14 days ago
    - Billing:     +0.40 when billing status mentions failed/overdue
    - Session:     +0.15 when average session < 5 minutes
    - Adoption:    +0.20 when feature usage < 3
    - Support:     +0.15 when support tickets > 3
    - Downgrade:   +0.25 for Free plan, zero revenue, usage > 10
    """

    base_risk: float = 0.10
    min_probability: float = 0.10
    max_probability: float = 0.95

    # === Rule weights ===
    weights: Dict[str, float] = field(default_factory=lambda: {
        "inactivity": 0.30,
        "billing": 0.40,
        "session": 0.15,
        "adoption": 0.20,
        "support": 0.15,
        "downgrade": 0.25,
    })

    # === Rule thresholds ===
    inactive_after_days: int = 14
    billing_keywords: tuple = ("failed", "overdue")
    min_session_minutes: float = 5.0
    min_feature_usage: int = 3
    max_support_tickets: int = 3
    # Heuristic proxy for a downgrade: no previous plan is available to compare
    downgrade_min_feature_usage: int = 10

    # === Risk tiers (fixed) ===
    high_risk_threshold: float = 0.7
    medium_risk_threshold: float = 0.4

    # === Prediction defaults ===
    days_since_signup: int = 30
    healthy_factor: str = "User showing healthy engagement patterns"
    general_action: str = "Monitor engagement closely"

    version: str = "1.0.0"

    def get_weight(self, rule: str) -> float:
        """Weight for a rule, 0 for unknown rules."""
        return self.weights.get(rule, 0.0)

    def get_risk_level(self, probability: float) -> str:
        """Map a churn probability to its risk tier."""
        if probability >= self.high_risk_threshold:
            return "high"
        if probability >= self.medium_risk_threshold:
            return "medium"
        return "low"

    def clamp(self, probability: float) -> float:
        """Clamp into the allowed probability band, rounded to 4 places."""
        bounded = min(max(probability, self.min_probability), self.max_probability)
        return round(bounded, 4)


# Default configuration instance
DEFAULT_CONFIG = ScoringConfig()


_ENV_PREFIX = "CHURN_"


@dataclass
class PipelineSettings:
    """
    Runtime settings for a pipeline deployment.

    Load from environment (CHURN_PREDICTION_API_URL, CHURN_DATABASE_URL, ...):
        settings = PipelineSettings.from_env()

    Load from YAML:
        settings = PipelineSettings.from_yaml("configs/local.yaml")
    """

    # Remote model
    prediction_api_url: str = DEFAULT_PREDICTION_API_URL
    prediction_api_key: Optional[str] = None
    prediction_timeout_seconds: float = 15.0

    # Batch execution (None = unbounded fan-out)
    max_concurrency: Optional[int] = None

    # Digest
    digest_top_n: int = 5
    digest_timeout_seconds: float = 10.0
    email_from: str = "Churn Alerts <alerts@example.com>"
    resend_api_key: Optional[str] = None
    dashboard_url: str = "http://localhost:8000/dashboard"

    # Storage / persistence
    storage_root: str = "./storage"
    bucket: str = "csv-uploads"
    database_url: str = "sqlite:///./churn.db"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "PipelineSettings":
        """Build settings from CHURN_* environment variables."""
        environ = os.environ if environ is None else environ
        defaults = cls()
        values = {}
        for name, default in asdict(defaults).items():
            raw = environ.get(_ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            values[name] = _coerce(name, raw, default)
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "PipelineSettings":
        """Load settings from a YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


def _coerce(name: str, raw: str, default):
    if name == "max_concurrency":
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, int):
        return int(raw)
    return raw
