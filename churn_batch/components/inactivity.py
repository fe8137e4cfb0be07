"""Login inactivity rule."""

import pandas as pd

from .base import BaseRule


class InactivityRule(BaseRule):
    """
    Fires when the last login is more than 14 days old.

    An unparsable login date counts as 0 days, so it never fires.
    """

    name = "inactivity"
    action = "Send reactivation email"

    @property
    def required_columns(self) -> list[str]:
        return ["days_since_last_login"]

    def mask(self, df: pd.DataFrame) -> pd.Series:
        return df["days_since_last_login"] > self.config.inactive_after_days

    def describe(self, row: pd.Series) -> str:
        return f"Inactive for {int(row['days_since_last_login'])} days"
