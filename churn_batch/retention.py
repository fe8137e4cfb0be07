"""
Retention analytics over the optional upload columns.

- feature_adopted: features a customer uses (separated by ";", "|" or ",")
- cancellation_reason: free-text reason given on cancellation

Both analyses are skipped when the column carries no data.
"""

import re
from datetime import date
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .models import NormalizedRecord
from .normalizer import days_since, today_utc

# Customers seen within this many days count as retained
ACTIVE_WITHIN_DAYS = 30
MAX_EXAMPLES = 3

_FEATURE_SEPARATORS = re.compile(r"[;|,]")

# First matching cluster wins, in this order
REASON_CLUSTERS = [
    ("Pricing Issues", ("price", "cost", "expensive", "budget")),
    ("Missing Features", ("feature", "missing", "need", "functionality")),
    ("UX/Support Issues", ("support", "help", "difficult", "complex", "confusing")),
    ("Competition", ("competitor", "alternative", "switch", "found")),
    ("Low Usage", ("don't use", "not using", "no longer", "not needed")),
]
OTHER_CLUSTER = "Other Reasons"


def split_features(value: str) -> List[str]:
    return [f.strip() for f in _FEATURE_SEPARATORS.split(value or "") if f.strip()]


def feature_retention(records: Sequence[NormalizedRecord],
                      as_of: Optional[date] = None) -> List[Dict]:
    """
    Retention rate and revenue per adopted feature.

    Returns:
        Dicts with feature_name, retention_percentage, revenue_contribution,
        user_count; highest retention first
    """
    as_of = as_of or today_utc()
    rows = []
    for record in records:
        retained = days_since(record.last_login_date, as_of) <= ACTIVE_WITHIN_DAYS
        for feature in split_features(record.feature_adopted):
            rows.append({
                "feature_name": feature,
                "retained": retained,
                "monthly_revenue": record.monthly_revenue,
            })
    if not rows:
        return []

    df = pd.DataFrame(rows)
    summary = (
        df.groupby("feature_name", sort=True)
        .agg(
            user_count=("retained", "size"),
            retention_percentage=("retained", "mean"),
            revenue_contribution=("monthly_revenue", "sum"),
        )
        .reset_index()
    )
    summary["retention_percentage"] = (summary["retention_percentage"] * 100).round(2)
    summary["revenue_contribution"] = summary["revenue_contribution"].round(2)
    summary = summary.sort_values("retention_percentage", ascending=False, kind="stable")
    return [
        {
            "feature_name": row.feature_name,
            "retention_percentage": float(row.retention_percentage),
            "revenue_contribution": float(row.revenue_contribution),
            "user_count": int(row.user_count),
        }
        for row in summary.itertuples(index=False)
    ]


def classify_reason(reason: str) -> str:
    text = reason.lower()
    for cluster, keywords in REASON_CLUSTERS:
        if any(keyword in text for keyword in keywords):
            return cluster
    return OTHER_CLUSTER


def churn_reason_clusters(records: Sequence[NormalizedRecord]) -> List[Dict]:
    """
    Keyword clusters of cancellation reasons.

    Returns:
        Dicts with cluster_name, reason_examples, percentage, user_count;
        largest cluster first
    """
    reasons = [r.cancellation_reason.lower() for r in records if r.cancellation_reason]
    if not reasons:
        return []

    df = pd.DataFrame({"reason": reasons})
    df["cluster_name"] = df["reason"].apply(classify_reason)

    clusters = []
    for name, group in df.groupby("cluster_name", sort=True):
        clusters.append({
            "cluster_name": name,
            "reason_examples": group["reason"].head(MAX_EXAMPLES).tolist(),
            "percentage": round(len(group) / len(df) * 100, 2),
            "user_count": int(len(group)),
        })
    return sorted(clusters, key=lambda c: c["percentage"], reverse=True)


def analyze_retention(records: Sequence[NormalizedRecord],
                      as_of: Optional[date] = None) -> Dict[str, List[Dict]]:
    """Both analyses; empty lists when the optional columns are absent."""
    return {
        "feature_retention": feature_retention(records, as_of),
        "churn_reason_clusters": churn_reason_clusters(records),
    }
