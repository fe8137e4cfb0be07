"""
Persistence gateway for analysis summaries and predictions.

The pipeline depends only on PersistenceGateway; InMemoryGateway serves tests
and local runs, SQLGateway (see database.py) a real store.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from .aggregator import Aggregates
from .errors import PredictionPersistenceError, SummaryPersistenceError
from .models import AnalysisSummary, Prediction


class PersistenceGateway(ABC):
    """Store for analysis summaries, predictions and retention analytics."""

    @abstractmethod
    def create_analysis(self, owner_id: str, total_customers: int) -> str:
        """
        Create the summary stub and return its id.

        Raises:
            SummaryPersistenceError: If the record cannot be created
        """
        pass

    @abstractmethod
    def insert_prediction(self, analysis_id: str, owner_id: str,
                          prediction: Prediction) -> None:
        """
        Store one customer's prediction under an analysis.

        Raises:
            PredictionPersistenceError: If the write fails
        """
        pass

    @abstractmethod
    def update_analysis_aggregates(self, analysis_id: str, aggregates: Aggregates) -> None:
        """Backfill summary fields once all rows have settled."""
        pass

    @abstractmethod
    def save_retention_analytics(self, analysis_id: str, analytics: dict) -> None:
        """Store feature-retention and churn-reason results."""
        pass

    @abstractmethod
    def get_analysis(self, analysis_id: str) -> Optional[AnalysisSummary]:
        pass

    @abstractmethod
    def list_predictions(self, analysis_id: str) -> List[Prediction]:
        pass


class InMemoryGateway(PersistenceGateway):
    """Thread-safe dictionary store."""

    def __init__(self):
        self._lock = threading.Lock()
        self.analyses: Dict[str, AnalysisSummary] = {}
        self.predictions: Dict[str, List[Prediction]] = {}
        self.retention: Dict[str, dict] = {}

    def create_analysis(self, owner_id: str, total_customers: int) -> str:
        if not owner_id:
            raise SummaryPersistenceError("Failed to create analysis record: owner_id is required")
        analysis_id = str(uuid.uuid4())
        with self._lock:
            self.analyses[analysis_id] = AnalysisSummary(
                id=analysis_id, owner_id=owner_id, total_customers=total_customers,
            )
            self.predictions[analysis_id] = []
        return analysis_id

    def insert_prediction(self, analysis_id: str, owner_id: str,
                          prediction: Prediction) -> None:
        with self._lock:
            if analysis_id not in self.analyses:
                raise PredictionPersistenceError(f"Unknown analysis: {analysis_id}")
            self.predictions[analysis_id].append(prediction)

    def update_analysis_aggregates(self, analysis_id: str, aggregates: Aggregates) -> None:
        with self._lock:
            summary = self.analyses[analysis_id]
            for name, value in aggregates.to_dict().items():
                setattr(summary, name, value)

    def save_retention_analytics(self, analysis_id: str, analytics: dict) -> None:
        with self._lock:
            self.retention[analysis_id] = analytics

    def get_analysis(self, analysis_id: str) -> Optional[AnalysisSummary]:
        return self.analyses.get(analysis_id)

    def list_predictions(self, analysis_id: str) -> List[Prediction]:
        with self._lock:
            return list(self.predictions.get(analysis_id, []))
