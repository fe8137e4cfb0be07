"""Billing health rule."""

import pandas as pd

from .base import BaseRule


class BillingRule(BaseRule):
    """Fires when the billing status mentions a failed or overdue payment."""

    name = "billing"
    action = "Check billing"

    @property
    def required_columns(self) -> list[str]:
        return ["billing_status"]

    def mask(self, df: pd.DataFrame) -> pd.Series:
        status = df["billing_status"].fillna("").astype(str).str.lower()
        fired = pd.Series(False, index=df.index)
        for keyword in self.config.billing_keywords:
            fired |= status.str.contains(keyword, regex=False)
        return fired

    def describe(self, row: pd.Series) -> str:
        return "Payment/billing issues detected"
