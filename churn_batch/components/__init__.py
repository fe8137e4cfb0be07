"""Risk rule components for the fallback scorer."""

from .base import BaseRule
from .inactivity import InactivityRule
from .billing import BillingRule
from .session import SessionRule
from .adoption import AdoptionRule
from .support import SupportRule
from .downgrade import DowngradeRule

__all__ = [
    "BaseRule",
    "InactivityRule",
    "BillingRule",
    "SessionRule",
    "AdoptionRule",
    "SupportRule",
    "DowngradeRule",
]
