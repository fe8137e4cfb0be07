"""Feature adoption rule."""

import pandas as pd

from .base import BaseRule


class AdoptionRule(BaseRule):
    """Fires when fewer than 3 features are in use."""

    name = "adoption"

    @property
    def required_columns(self) -> list[str]:
        return ["feature_usage_count"]

    def mask(self, df: pd.DataFrame) -> pd.Series:
        return df["feature_usage_count"] < self.config.min_feature_usage

    def describe(self, row: pd.Series) -> str:
        return "Low feature adoption and usage"
