"""Portfolio aggregation over successfully scored predictions."""

from dataclasses import dataclass, asdict
from typing import List, Sequence

import pandas as pd

from .config import DEFAULT_CONFIG
from .models import Prediction


@dataclass(frozen=True)
class Aggregates:
    """Summary fields backfilled onto the analysis record."""

    total_customers: int = 0
    churn_rate: float = 0.0
    high_risk_count: int = 0
    medium_risk_count: int = 0
    low_risk_count: int = 0
    avg_cltv: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def risk_level(probability: float) -> str:
    """
    Fixed risk tiers.

    p >= 0.7 -> high, 0.4 <= p < 0.7 -> medium, p < 0.4 -> low.
    """
    return DEFAULT_CONFIG.get_risk_level(probability)


def predictions_frame(predictions: Sequence[Prediction]) -> pd.DataFrame:
    """One row per prediction with the columns aggregation needs."""
    return pd.DataFrame(
        [
            {
                "customer_id": p.customer_id,
                "probability": p.probability,
                "risk_level": p.risk_level,
                "monthly_revenue": p.monthly_revenue,
            }
            for p in predictions
        ],
        columns=["customer_id", "probability", "risk_level", "monthly_revenue"],
    )


def aggregate(predictions: Sequence[Prediction]) -> Aggregates:
    """
    Counts and averages across scored customers.

    churn_rate is the mean probability; avg_cltv is the mean of
    monthly_revenue * 12. Both are 0 when nothing was scored.
    """
    if not predictions:
        return Aggregates()

    df = predictions_frame(predictions)
    counts = df["risk_level"].value_counts()
    return Aggregates(
        total_customers=len(df),
        churn_rate=float(df["probability"].mean()),
        high_risk_count=int(counts.get("high", 0)),
        medium_risk_count=int(counts.get("medium", 0)),
        low_risk_count=int(counts.get("low", 0)),
        avg_cltv=float((df["monthly_revenue"] * 12).mean()),
    )


def top_risks(predictions: Sequence[Prediction], n: int = 5) -> List[Prediction]:
    """Highest-probability predictions first; ties keep input order."""
    return sorted(predictions, key=lambda p: p.probability, reverse=True)[:n]
