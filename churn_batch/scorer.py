"""
FallbackScorer - deterministic rule engine used whenever the remote model
cannot answer.

Usage:
    from churn_batch import FallbackScorer

    scorer = FallbackScorer()

    # Single record (used per row by the prediction client)
    result = scorer.score_record(record, as_of=date(2025, 1, 31))
    print(result.probability, result.factors, result.actions)

    # Whole portfolio, vectorized
    frame = scorer.to_frame(records, as_of=date(2025, 1, 31))
    scored = scorer.score(frame)
    print(scored.df[["customer_id", "CHURN_PROBABILITY", "RISK_LEVEL"]])
    print(scored.rule_breakdown())
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from .components import (
    InactivityRule,
    BillingRule,
    SessionRule,
    AdoptionRule,
    SupportRule,
    DowngradeRule,
)
from .config import ScoringConfig, DEFAULT_CONFIG
from .models import NormalizedRecord, Plan
from .normalizer import days_since, today_utc
from .schemas import NORMALIZED_RECORD_SCHEMA


FRAME_COLUMNS = [
    "customer_id",
    "plan",
    "monthly_revenue",
    "feature_usage_count",
    "support_tickets",
    "avg_session_minutes",
    "billing_status",
    "last_login_date",
    "days_since_last_login",
]


@dataclass(frozen=True)
class FallbackResult:
    """Probability, factors and actions for one customer."""

    probability: float
    factors: List[str]
    actions: List[str]


@dataclass
class ScoringResult:
    """
    Container for vectorized scoring results with rule breakdown.

    Attributes:
        df: Input frame with rule contributions, probability, tier, factors, actions
        rule_columns: Names of the per-rule risk columns
    """

    df: pd.DataFrame
    rule_columns: list[str]

    def get_high_risk(self, min_level: str = "high") -> pd.DataFrame:
        """Customers at or above a risk tier ("low", "medium", "high")."""
        level_order = ["low", "medium", "high"]
        valid_levels = level_order[level_order.index(min_level):]
        return self.df[self.df["RISK_LEVEL"].isin(valid_levels)]

    def rule_breakdown(self) -> pd.DataFrame:
        """How often each rule fired and its average contribution."""
        stats = {}
        for col in self.rule_columns:
            rule_name = col.replace("_risk", "")
            stats[rule_name] = {
                "fired": int((self.df[col] > 0).sum()),
                "mean": self.df[col].mean() if len(self.df) else 0.0,
            }
        return pd.DataFrame(stats).T.round(3)


class FallbackScorer:
    """
    Vectorized fallback churn risk engine.

    Starts every customer at base risk 0.10 and adds each rule's weight
    when it fires. All rules are applied (summed, not first-match); the
    total is clamped to [0.10, 0.95].

    Rules, in factor/action order:
    - Inactivity (+0.30): last login > 14 days
    - Billing (+0.40): failed/overdue payment
    - Session (+0.15): average session < 5 minutes
    - Adoption (+0.20): fewer than 3 features used
    - Support (+0.15): more than 3 tickets
    - Downgrade (+0.25): Free plan, no revenue, more than 10 features used
    """

    REQUIRED_COLUMNS = FRAME_COLUMNS

    def __init__(self, config: Optional[ScoringConfig] = None):
        """
        Initialize scorer with configuration.

        Args:
            config: ScoringConfig instance. Uses DEFAULT_CONFIG if None.
        """
        self.config = config or DEFAULT_CONFIG
        self._init_rules()

    def _init_rules(self) -> None:
        """Initialize all rules, in reporting order."""
        self.rules = {
            "inactivity": InactivityRule(self.config),
            "billing": BillingRule(self.config),
            "session": SessionRule(self.config),
            "adoption": AdoptionRule(self.config),
            "support": SupportRule(self.config),
            "downgrade": DowngradeRule(self.config),
        }

    def validate_input(self, df: pd.DataFrame) -> None:
        """
        Validate required columns exist.

        Raises:
            ValueError: If required columns are missing
        """
        missing = set(self.REQUIRED_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"Missing required columns: {missing}")

    def to_frame(
        self,
        records: Iterable[NormalizedRecord],
        as_of: Optional[date] = None,
    ) -> pd.DataFrame:
        """Build the scoring frame, resolving days since last login against as_of."""
        as_of = as_of or today_utc()
        rows = []
        for record in records:
            row = record.to_dict()
            row["days_since_last_login"] = days_since(record.last_login_date, as_of)
            rows.append(row)
        return pd.DataFrame(rows, columns=FRAME_COLUMNS)

    def score(self, df: pd.DataFrame) -> ScoringResult:
        """
        Calculate fallback churn probability for all customers.

        Args:
            df: Frame with REQUIRED_COLUMNS (see to_frame)

        Returns:
            ScoringResult with probability, tier, factors and actions
        """
        self.validate_input(df)
        result = NORMALIZED_RECORD_SCHEMA.validate(df.copy())

        rule_cols = []
        masks = {}
        for name, rule in self.rules.items():
            col_name = f"{name}_risk"
            result[col_name] = rule.score(result)
            masks[name] = rule.mask(result)
            rule_cols.append(col_name)

        total = self.config.base_risk + result[rule_cols].sum(axis=1)
        result["CHURN_PROBABILITY"] = total.clip(
            lower=self.config.min_probability,
            upper=self.config.max_probability,
        ).round(4)
        result["RISK_LEVEL"] = result["CHURN_PROBABILITY"].apply(
            self.config.get_risk_level
        )

        factors, actions = [], []
        for idx, row in result.iterrows():
            fired = [rule for name, rule in self.rules.items() if masks[name].loc[idx]]
            row_factors, row_actions = self._describe(fired, row)
            factors.append(row_factors)
            actions.append(row_actions)
        result["FACTORS"] = pd.Series(factors, index=result.index, dtype=object)
        result["ACTIONS"] = pd.Series(actions, index=result.index, dtype=object)

        return ScoringResult(df=result, rule_columns=rule_cols)

    def _describe(self, fired, row: pd.Series) -> Tuple[List[str], List[str]]:
        if not fired:
            return [self.config.healthy_factor], [self.config.general_action]
        factors = [rule.describe(row) for rule in fired]
        actions = [rule.action for rule in fired if rule.action]
        return factors, actions or [self.config.general_action]

    def score_record(
        self,
        record: NormalizedRecord,
        as_of: Optional[date] = None,
    ) -> FallbackResult:
        """
        Score a single customer.

        Deterministic: identical record and as_of always give identical output.
        """
        result = self.score(self.to_frame([record], as_of))
        row = result.df.iloc[0]
        return FallbackResult(
            probability=float(row["CHURN_PROBABILITY"]),
            factors=list(row["FACTORS"]),
            actions=list(row["ACTIONS"]),
        )

    def explain(
        self,
        record: NormalizedRecord,
        as_of: Optional[date] = None,
    ) -> Tuple[List[str], List[str]]:
        """Factors and actions only, for backfilling a remote prediction."""
        result = self.score_record(record, as_of)
        return result.factors, result.actions


def generate_sample_records(n_customers: int = 100, seed: int = 42,
                            as_of: Optional[date] = None) -> List[NormalizedRecord]:
    """
    Generate a reproducible synthetic portfolio for testing.

    Roughly: 50% Free / 35% Pro / 15% Enterprise; 20% with billing trouble;
    login recency spread over the last 60 days.
    """
    rng = np.random.default_rng(seed)
    as_of = as_of or today_utc()

    plans = rng.choice([plan.value for plan in Plan], size=n_customers,
                       p=[0.50, 0.35, 0.15])
    billing = rng.choice(["active", "failed", "overdue"], size=n_customers,
                         p=[0.80, 0.10, 0.10])
    login_days = rng.integers(0, 61, size=n_customers)
    sessions = np.clip(rng.normal(loc=12, scale=6, size=n_customers), 0, None)
    usage = rng.integers(0, 25, size=n_customers)
    tickets = rng.poisson(lam=1.5, size=n_customers)
    revenue = np.where(plans == Plan.FREE.value, 0.0,
                       np.round(rng.uniform(20, 500, size=n_customers), 2))

    return [
        NormalizedRecord(
            customer_id=f"CUST_{i:04d}",
            plan=Plan(str(plans[i])),
            monthly_revenue=float(revenue[i]),
            feature_usage_count=int(usage[i]),
            support_tickets=int(tickets[i]),
            avg_session_minutes=round(float(sessions[i]), 1),
            billing_status=str(billing[i]),
            last_login_date=(pd.Timestamp(as_of) - pd.Timedelta(days=int(login_days[i])))
            .date().isoformat(),
        )
        for i in range(n_customers)
    ]
