"""Downgrade-risk rule."""

import pandas as pd

from ..models import Plan
from .base import BaseRule


class DowngradeRule(BaseRule):
    """
    Free plan, no revenue, yet heavy usage (more than 10 features).

    This is a proxy for a downgraded account: the upload carries no previous
    plan to compare against, so a heavy free user with zero revenue stands in
    for one.
    """

    name = "downgrade"
    action = "Offer discount"

    @property
    def required_columns(self) -> list[str]:
        return ["plan", "monthly_revenue", "feature_usage_count"]

    def mask(self, df: pd.DataFrame) -> pd.Series:
        return (
            (df["plan"] == Plan.FREE.value)
            & (df["monthly_revenue"] == 0)
            & (df["feature_usage_count"] > self.config.downgrade_min_feature_usage)
        )

    def describe(self, row: pd.Series) -> str:
        return "Free plan user with no revenue conversion despite high usage"
