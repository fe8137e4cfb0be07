"""Support ticket volume rule."""

import pandas as pd

from .base import BaseRule


class SupportRule(BaseRule):
    """Fires on more than 3 support tickets."""

    name = "support"
    action = "Priority customer success call"

    @property
    def required_columns(self) -> list[str]:
        return ["support_tickets"]

    def mask(self, df: pd.DataFrame) -> pd.Series:
        return df["support_tickets"] > self.config.max_support_tickets

    def describe(self, row: pd.Series) -> str:
        return "High support ticket volume indicates frustration"
