"""
Batch processor: one isolated task per row, joined before aggregation.

A row task normalizes, predicts and persists. Whatever goes wrong inside a
task becomes that row's failed RowOutcome; sibling rows never see it.
"""

import asyncio
import logging
from datetime import date
from typing import List, Optional, Sequence

import httpx

from .client import PredictionClient
from .csv_reader import ROW_NUMBER_KEY
from .errors import RowError
from .models import RawRow, RowOutcome
from .normalizer import normalize_row, today_utc
from .persistence import PersistenceGateway

logger = logging.getLogger(__name__)


class BatchProcessor:
    """
    Fan-out/fan-in driver over a parsed upload.

    Usage:
        processor = BatchProcessor(client, gateway, max_concurrency=20)
        outcomes = await processor.run(analysis_id, owner_id, rows)
    """

    def __init__(
        self,
        client: PredictionClient,
        gateway: PersistenceGateway,
        max_concurrency: Optional[int] = None,
    ):
        self.client = client
        self.gateway = gateway
        self.max_concurrency = max_concurrency

    async def run(
        self,
        analysis_id: str,
        owner_id: str,
        rows: Sequence[RawRow],
        as_of: Optional[date] = None,
    ) -> List[RowOutcome]:
        """
        Process every row and collect one outcome per row.

        Rows share one HTTP connection pool for the run unless the client
        already carries its own. Outcome order is not guaranteed to match
        input order.
        """
        as_of = as_of or today_utc()
        if self.client.http_client is not None:
            return await self._run(self.client, analysis_id, owner_id, rows, as_of)

        timeout = self.client.settings.prediction_timeout_seconds
        async with httpx.AsyncClient(timeout=timeout) as http:
            client = self.client.with_http_client(http)
            return await self._run(client, analysis_id, owner_id, rows, as_of)

    async def _run(self, client: PredictionClient, analysis_id: str, owner_id: str,
                   rows: Sequence[RawRow], as_of: date) -> List[RowOutcome]:
        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None

        async def bounded(index: int, row: RawRow) -> RowOutcome:
            if semaphore is None:
                return await self.process_row(analysis_id, owner_id, index, row, as_of, client)
            async with semaphore:
                return await self.process_row(analysis_id, owner_id, index, row, as_of, client)

        results = await asyncio.gather(
            *(bounded(i, row) for i, row in enumerate(rows, start=1)),
            return_exceptions=True,
        )

        outcomes = []
        for index, (row, result) in enumerate(zip(rows, results), start=1):
            if isinstance(result, BaseException):
                # process_row already isolates errors; this covers cancellation
                outcomes.append(RowOutcome(
                    row=_row_number(row, index),
                    success=False,
                    customer_id=(row.get("customer_id") or "").strip() or None,
                    error=str(result) or type(result).__name__,
                ))
            else:
                outcomes.append(result)

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info("Batch %s: %d succeeded, %d failed",
                    analysis_id, succeeded, len(outcomes) - succeeded)
        return outcomes

    async def process_row(
        self,
        analysis_id: str,
        owner_id: str,
        index: int,
        row: RawRow,
        as_of: date,
        client: Optional[PredictionClient] = None,
    ) -> RowOutcome:
        """Normalize, predict and persist a single row."""
        client = client or self.client
        row_number = _row_number(row, index)
        record = None
        try:
            record = normalize_row(row)
            prediction = await client.predict(record, as_of)
            await asyncio.to_thread(
                self.gateway.insert_prediction, analysis_id, owner_id, prediction
            )
        except RowError as e:
            logger.warning("Row %d failed: %s", row_number, e)
            return RowOutcome(row=row_number, success=False,
                              customer_id=record.customer_id if record else None,
                              error=str(e), record=record)
        except Exception as e:
            logger.exception("Unexpected error processing row %d", row_number)
            return RowOutcome(row=row_number, success=False,
                              customer_id=record.customer_id if record else None,
                              error=str(e) or type(e).__name__, record=record)

        return RowOutcome(row=row_number, success=True, customer_id=record.customer_id,
                          prediction=prediction, record=record)


def _row_number(row: RawRow, fallback: int) -> int:
    try:
        return int(row.get(ROW_NUMBER_KEY, fallback))
    except (TypeError, ValueError):
        return fallback
