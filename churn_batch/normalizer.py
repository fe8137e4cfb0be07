"""
Row normalization: raw CSV strings -> NormalizedRecord.

Permissive-input policy: a numeric field that cannot be parsed becomes 0.
Absent telemetry is treated as "no signal" rather than "unknown", so this
materially affects scoring. Do not turn these defaults into errors without
flagging the behavior change.
"""

import math
import re
from datetime import date, datetime, timezone
from typing import Optional

import pandas as pd

from .errors import MissingCustomerIdError
from .models import NormalizedRecord, Plan, RawRow

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)")


def parse_numeric(value) -> float:
    """Parse a currency-like string ("$1,200.50") into a float >= 0."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        cleaned = _NON_NUMERIC.sub("", str(value if value is not None else ""))
        match = _LEADING_NUMBER.match(cleaned)
        if not match:
            return 0.0
        number = float(match.group(0))
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def parse_count(value) -> int:
    """Parse an integer count; "4.7" -> 4, garbage -> 0."""
    return int(parse_numeric(value))


def normalize_plan(raw: Optional[str]) -> Plan:
    """
    Keyword match on the raw plan name.

    "pro"/"premium" -> Pro, "enterprise"/"business" -> Enterprise, else Free.
    """
    text = (raw or "").strip().lower()
    if "pro" in text or "premium" in text:
        return Plan.PRO
    if "enterprise" in text or "business" in text:
        return Plan.ENTERPRISE
    return Plan.FREE


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def days_since(date_string: Optional[str], as_of: Optional[date] = None) -> int:
    """Absolute whole days between a date string and as_of (0 if unparsable)."""
    if not date_string or not str(date_string).strip():
        return 0
    as_of = as_of or today_utc()
    parsed = pd.to_datetime(str(date_string).strip(), errors="coerce")
    if pd.isna(parsed):
        return 0
    return abs((as_of - parsed.date()).days)


def normalize_row(raw: RawRow) -> NormalizedRecord:
    """
    Convert one raw row into a NormalizedRecord.

    Raises:
        MissingCustomerIdError: If customer_id is empty or whitespace
    """
    customer_id = (raw.get("customer_id") or "").strip()
    if not customer_id:
        raise MissingCustomerIdError()

    return NormalizedRecord(
        customer_id=customer_id,
        plan=normalize_plan(raw.get("plan")),
        monthly_revenue=parse_numeric(raw.get("monthly_revenue")),
        feature_usage_count=parse_count(raw.get("feature_usage_count")),
        support_tickets=parse_count(raw.get("support_tickets")),
        avg_session_minutes=parse_numeric(raw.get("avg_session_duration")),
        billing_status=(raw.get("billing_status") or "").strip(),
        last_login_date=(raw.get("last_login") or "").strip(),
        feature_adopted=(raw.get("feature_adopted") or "").strip(),
        cancellation_reason=(raw.get("cancellation_reason") or "").strip(),
    )
