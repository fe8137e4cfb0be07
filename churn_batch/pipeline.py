"""
End-to-end batch run: stored CSV -> predictions, summary, digest.

Usage:
    pipeline = ChurnPipeline(
        file_store=LocalFileStore("./storage"),
        gateway=SQLGateway.from_url("sqlite:///./churn.db"),
    )
    report = pipeline.analyze_sync(owner_id="owner-1", file_name="portfolio.csv")
    print(report.to_dict())
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from .aggregator import aggregate
from .batch import BatchProcessor
from .client import PredictionClient
from .config import PipelineSettings, ScoringConfig
from .csv_reader import parse_rows, read_text
from .database import SQLGateway
from .digest import DigestReporter, ProfileDirectory, build_email_sender
from .errors import EmptyFileError, SummaryPersistenceError
from .models import AnalysisSummary, Prediction, RowOutcome
from .normalizer import today_utc
from .persistence import PersistenceGateway
from .retention import analyze_retention
from .scorer import FallbackScorer
from .storage import FileStore, LocalFileStore

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    """Response returned to the caller of a batch run."""

    success: bool
    total_rows: int
    processed_rows: int
    failed_rows: int
    analysis_id: str
    error_details: List[Dict] = field(default_factory=list)
    message: str = ""
    summary: Optional[AnalysisSummary] = None
    predictions: List[Prediction] = field(default_factory=list)
    retention: Dict[str, List[Dict]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Wire representation."""
        return {
            "success": self.success,
            "total_rows": self.total_rows,
            "processed_rows": self.processed_rows,
            "failed_rows": self.failed_rows,
            "analysis_id": self.analysis_id,
            "error_details": list(self.error_details),
            "message": self.message,
        }


def build_message(processed: int, failed: int) -> str:
    message = f"{processed} customers analyzed successfully"
    if failed:
        message += f", {failed} failed"
    return message + ". View results in your dashboard."


class ChurnPipeline:
    """
    Orchestrates one batch run.

    Stages: download -> validate/parse -> create analysis -> per-row
    fan-out -> aggregate -> backfill -> retention analytics -> digest.
    Only validation, download and analysis creation can fail the run.
    """

    def __init__(
        self,
        file_store: FileStore,
        gateway: PersistenceGateway,
        client: Optional[PredictionClient] = None,
        digest: Optional[DigestReporter] = None,
        settings: Optional[PipelineSettings] = None,
        config: Optional[ScoringConfig] = None,
    ):
        self.settings = settings or PipelineSettings()
        self.file_store = file_store
        self.gateway = gateway
        self.client = client or PredictionClient(
            self.settings, scorer=FallbackScorer(config), config=config,
        )
        self.digest = digest
        self.processor = BatchProcessor(self.client, gateway, self.settings.max_concurrency)

    @classmethod
    def from_settings(
        cls,
        settings: PipelineSettings,
        profiles: Optional[ProfileDirectory] = None,
        config: Optional[ScoringConfig] = None,
    ) -> "ChurnPipeline":
        """
        Wire a pipeline from deployment settings.

        Files come from storage_root/bucket, results go to database_url, and
        digests (when profiles are given) go out through Resend if
        resend_api_key is set.
        """
        digest = None
        if profiles is not None:
            digest = DigestReporter(
                profiles,
                build_email_sender(settings),
                top_n=settings.digest_top_n,
                timeout_seconds=settings.digest_timeout_seconds,
                dashboard_url=settings.dashboard_url,
            )
        return cls(
            file_store=LocalFileStore(settings.storage_root, bucket=settings.bucket),
            gateway=SQLGateway.from_url(settings.database_url),
            digest=digest,
            settings=settings,
            config=config,
        )

    def analyze_sync(self, owner_id: str, file_name: str,
                     as_of: Optional[date] = None) -> BatchReport:
        return asyncio.run(self.analyze(owner_id, file_name, as_of))

    async def analyze(self, owner_id: str, file_name: str,
                      as_of: Optional[date] = None) -> BatchReport:
        """
        Run the batch for a stored file.

        Caller cancellation does not cancel rows already dispatched.

        Raises:
            ValidationError: Missing file, missing columns, or no usable rows
            SummaryPersistenceError: If the analysis record cannot be created
        """
        return await asyncio.shield(self._analyze(owner_id, file_name, as_of or today_utc()))

    async def _analyze(self, owner_id: str, file_name: str, as_of: date) -> BatchReport:
        logger.info("Processing %s for owner %s", file_name, owner_id)
        data = await asyncio.to_thread(self.file_store.download, file_name)
        rows = parse_rows(read_text(data))
        if not rows:
            raise EmptyFileError("No valid rows found in CSV")

        analysis_id = await self._create_analysis(owner_id, len(rows))
        logger.info("Created analysis %s for %d rows", analysis_id, len(rows))

        outcomes = await self.processor.run(analysis_id, owner_id, rows, as_of)
        report = await self._finalize(owner_id, analysis_id, rows, outcomes, as_of)

        if self.digest is not None:
            await self._send_digest(owner_id, analysis_id, report.predictions)
        return report

    async def _create_analysis(self, owner_id: str, total_rows: int) -> str:
        try:
            return await asyncio.to_thread(self.gateway.create_analysis, owner_id, total_rows)
        except SummaryPersistenceError:
            raise
        except Exception as e:
            raise SummaryPersistenceError(f"Failed to create analysis record: {e}") from e

    async def _finalize(self, owner_id, analysis_id, rows, outcomes: List[RowOutcome],
                        as_of: date) -> BatchReport:
        predictions = [o.prediction for o in outcomes if o.success and o.prediction]
        failures = sorted((o for o in outcomes if not o.success), key=lambda o: o.row)

        aggregates = aggregate(predictions)
        try:
            await asyncio.to_thread(
                self.gateway.update_analysis_aggregates, analysis_id, aggregates
            )
        except Exception as e:
            logger.error("Failed to update aggregates for analysis %s: %s", analysis_id, e)

        retention = {}
        records = [o.record for o in outcomes if o.record is not None]
        try:
            retention = analyze_retention(records, as_of)
            if any(retention.values()):
                await asyncio.to_thread(
                    self.gateway.save_retention_analytics, analysis_id, retention
                )
        except Exception as e:
            logger.error("Retention analytics failed for analysis %s: %s", analysis_id, e)

        summary = AnalysisSummary(id=analysis_id, owner_id=owner_id, **aggregates.to_dict())
        return BatchReport(
            success=len(predictions) > 0,
            total_rows=len(rows),
            processed_rows=len(predictions),
            failed_rows=len(failures),
            analysis_id=analysis_id,
            error_details=[
                {"row": o.row, "customerId": o.customer_id or "unknown", "error": o.error}
                for o in failures
            ],
            message=build_message(len(predictions), len(failures)),
            summary=summary,
            predictions=predictions,
            retention=retention,
        )

    async def _send_digest(self, owner_id: str, analysis_id: str,
                           predictions: List[Prediction]) -> None:
        try:
            await self.digest.send_digest(owner_id, analysis_id, predictions)
        except Exception as e:
            logger.error("Digest step failed for analysis %s: %s", analysis_id, e)
