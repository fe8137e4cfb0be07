"""Session engagement rule."""

import pandas as pd

from .base import BaseRule


class SessionRule(BaseRule):
    """Fires when the average session is shorter than 5 minutes."""

    name = "session"

    @property
    def required_columns(self) -> list[str]:
        return ["avg_session_minutes"]

    def mask(self, df: pd.DataFrame) -> pd.Series:
        return df["avg_session_minutes"] < self.config.min_session_minutes

    def describe(self, row: pd.Series) -> str:
        return "Very low session engagement"
