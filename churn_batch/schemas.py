"""
Data schema definitions for the fallback scorer.

Uses Pandera for runtime validation of the normalized-record frame before
vectorized scoring, and of the scored output.
"""

from pandera import Column, Check, DataFrameSchema

from .config import DEFAULT_CONFIG
from .models import Plan


PLAN_VALUES = [plan.value for plan in Plan]
RISK_LEVELS = ["low", "medium", "high"]


# Schema for normalized records entering the rule engine
NORMALIZED_RECORD_SCHEMA = DataFrameSchema(
    {
        "customer_id": Column(
            str,
            nullable=False,
            checks=Check.str_length(min_value=1),
            description="Trimmed, non-empty customer identifier"
        ),
        "plan": Column(
            str,
            nullable=False,
            checks=Check.isin(PLAN_VALUES),
            description="Normalized plan (Free, Pro, Enterprise)"
        ),
        "monthly_revenue": Column(
            float,
            nullable=False,
            checks=Check.greater_than_or_equal_to(0),
            description="Monthly revenue, currency symbols stripped"
        ),
        "feature_usage_count": Column(
            int,
            nullable=False,
            checks=Check.greater_than_or_equal_to(0),
        ),
        "support_tickets": Column(
            int,
            nullable=False,
            checks=Check.greater_than_or_equal_to(0),
        ),
        "avg_session_minutes": Column(
            float,
            nullable=False,
            checks=Check.greater_than_or_equal_to(0),
        ),
        "billing_status": Column(str, nullable=False),
        "days_since_last_login": Column(
            int,
            nullable=False,
            checks=Check.greater_than_or_equal_to(0),
            description="Whole days since last login (0 if the date was unparsable)"
        ),
    },
    strict=False,  # last_login_date and optional columns ride along
    coerce=True,
    description="Schema for normalized customer records"
)


# Schema for scored output
SCORING_OUTPUT_SCHEMA = DataFrameSchema(
    {
        "customer_id": Column(str, nullable=False),
        "CHURN_PROBABILITY": Column(
            float,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(DEFAULT_CONFIG.min_probability),
                Check.less_than_or_equal_to(DEFAULT_CONFIG.max_probability),
            ]
        ),
        "RISK_LEVEL": Column(
            str,
            nullable=False,
            checks=Check.isin(RISK_LEVELS)
        ),
    },
    strict=False,  # Allow rule columns
    description="Schema for fallback scorer output"
)
