"""Record types flowing through the pipeline."""

import enum
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .config import DEFAULT_CONFIG


# One CSV line: lower-cased header -> trimmed string value
RawRow = Dict[str, str]


class Plan(str, enum.Enum):
    FREE = "Free"
    PRO = "Pro"
    ENTERPRISE = "Enterprise"


@dataclass(frozen=True)
class NormalizedRecord:
    """
    One customer's validated, typed record.

    Every field is always populated: unparsable input has already been
    replaced by its default, so scorers never branch on "missing".
    """

    customer_id: str
    plan: Plan = Plan.FREE
    monthly_revenue: float = 0.0
    feature_usage_count: int = 0
    support_tickets: int = 0
    avg_session_minutes: float = 0.0
    billing_status: str = ""
    last_login_date: str = ""
    feature_adopted: str = ""
    cancellation_reason: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["plan"] = self.plan.value
        return data


@dataclass(frozen=True)
class Prediction:
    """Churn prediction for one customer."""

    customer_id: str
    probability: float
    contributing_factors: List[str]
    recommended_actions: List[str]
    monthly_revenue: float
    plan: Plan
    days_since_last_active: int
    days_since_signup: int = DEFAULT_CONFIG.days_since_signup
    source: str = "rules"

    @property
    def risk_level(self) -> str:
        return DEFAULT_CONFIG.get_risk_level(self.probability)

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "churn_probability": self.probability,
            "risk_level": self.risk_level,
            "contributing_factors": list(self.contributing_factors),
            "recommended_actions": list(self.recommended_actions),
            "monthly_revenue": self.monthly_revenue,
            "plan": self.plan.value,
            "days_since_signup": self.days_since_signup,
            "days_since_last_active": self.days_since_last_active,
            "source": self.source,
        }


@dataclass
class AnalysisSummary:
    """Portfolio-level result of one batch run."""

    id: str
    owner_id: str
    total_customers: int = 0
    churn_rate: float = 0.0
    high_risk_count: int = 0
    medium_risk_count: int = 0
    low_risk_count: int = 0
    avg_cltv: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class RowOutcome:
    """Result of processing a single input row."""

    row: int
    success: bool
    customer_id: Optional[str] = None
    error: Optional[str] = None
    prediction: Optional[Prediction] = None
    record: Optional[NormalizedRecord] = None
