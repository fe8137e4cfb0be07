"""Base class for risk rule components."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import pandas as pd

if TYPE_CHECKING:
    from ..config import ScoringConfig


class BaseRule(ABC):
    """
    Abstract base class for fallback risk rules.

    Each rule decides, with vectorized pandas operations, which customers
    cross its threshold. A firing rule adds its configured weight to the
    churn probability, contributes one factor, and optionally one action.
    """

    name: str = "base"
    action: Optional[str] = None

    def __init__(self, config: "ScoringConfig"):
        """
        Initialize rule with configuration.

        Args:
            config: ScoringConfig instance with thresholds and weights
        """
        self.config = config

    @property
    @abstractmethod
    def required_columns(self) -> list[str]:
        """List of columns required by this rule."""
        pass

    @abstractmethod
    def mask(self, df: pd.DataFrame) -> pd.Series:
        """
        Boolean Series: True where the rule fires.

        Must be implemented by subclasses using vectorized operations.
        """
        pass

    @abstractmethod
    def describe(self, row: pd.Series) -> str:
        """Human-readable factor for a row where the rule fired."""
        pass

    @property
    def weight(self) -> float:
        return self.config.get_weight(self.name)

    def score(self, df: pd.DataFrame) -> pd.Series:
        """Risk contributed by this rule for every row (0.0 where it does not fire)."""
        self.validate(df)
        return self.mask(df).astype(float) * self.weight

    def validate(self, df: pd.DataFrame) -> None:
        """Validate required columns exist."""
        missing = set(self.required_columns) - set(df.columns)
        if missing:
            raise ValueError(
                f"{self.__class__.__name__} requires columns: {missing}"
            )
