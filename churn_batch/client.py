"""
Prediction client: remote model first, rule engine on any failure.

One POST per customer, no retries. A timeout, transport error, non-2xx
status or unreadable body is recovered by the FallbackScorer and never
reported as a row failure.
"""

import asyncio
import copy
import logging
import math
import numbers
from dataclasses import dataclass
from datetime import date
from typing import Any, List, Optional

import httpx

from .config import DEFAULT_CONFIG, PipelineSettings, ScoringConfig
from .errors import UpstreamPredictionError
from .models import NormalizedRecord, Prediction
from .normalizer import days_since, today_utc
from .scorer import FallbackScorer

logger = logging.getLogger(__name__)


# Candidate response fields, in priority order
PROBABILITY_FIELDS = ("churn_probability", "prediction", "score")
FACTOR_LIST_FIELDS = ("reasons", "factors")
FACTOR_TEXT_FIELDS = ("reason",)
ACTION_LIST_FIELDS = ("actions", "recommendations")
ACTION_TEXT_FIELDS = ("action",)


@dataclass(frozen=True)
class RemoteScore:
    """Remote response mapped onto the canonical prediction shape."""

    probability: float
    factors: List[str]
    actions: List[str]


def _as_number(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _first_number(payload: dict, fields) -> float:
    # Zero counts as absent so a later field can still supply the value
    for name in fields:
        number = _as_number(payload.get(name))
        if number:
            return number
    return 0.0


def _first_list(payload: dict, list_fields, text_fields) -> List[str]:
    for name in list_fields:
        value = payload.get(name)
        if isinstance(value, list):
            return [str(item) for item in value if item is not None and str(item).strip()]
    for name in text_fields:
        value = payload.get(name)
        if isinstance(value, str) and value.strip():
            return [value]
    return []


def map_remote_response(payload: Any) -> RemoteScore:
    """
    Map a remote model response onto probability, factors and actions.

    Raises:
        UpstreamPredictionError: If the payload is not a JSON object
    """
    if not isinstance(payload, dict):
        raise UpstreamPredictionError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )
    return RemoteScore(
        probability=_first_number(payload, PROBABILITY_FIELDS),
        factors=_first_list(payload, FACTOR_LIST_FIELDS, FACTOR_TEXT_FIELDS),
        actions=_first_list(payload, ACTION_LIST_FIELDS, ACTION_TEXT_FIELDS),
    )


def build_payload(record: NormalizedRecord, as_of: Optional[date] = None) -> dict:
    """Reshape a normalized record into the remote model's request body."""
    return {
        "customerId": record.customer_id,
        "plan": record.plan.value,
        "daysSinceLastLoginAgo": days_since(record.last_login_date, as_of),
        "avgSessionDurationMinutes": record.avg_session_minutes,
        "billingStatus": record.billing_status,
        "monthlyRevenue": record.monthly_revenue,
        "featureUsageCount": record.feature_usage_count,
        "supportTicketsCount": record.support_tickets,
    }


class PredictionClient:
    """
    Two-tier churn prediction.

    Usage:
        async with httpx.AsyncClient() as http:
            client = PredictionClient(settings, http_client=http)
            prediction = await client.predict(record)
    """

    def __init__(
        self,
        settings: Optional[PipelineSettings] = None,
        scorer: Optional[FallbackScorer] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[ScoringConfig] = None,
    ):
        self.settings = settings or PipelineSettings()
        self.config = config or (scorer.config if scorer else DEFAULT_CONFIG)
        self.scorer = scorer or FallbackScorer(self.config)
        self.http_client = http_client

    @property
    def endpoint(self) -> str:
        return f"{self.settings.prediction_api_url.rstrip('/')}/predict"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.settings.prediction_api_key:
            headers["Authorization"] = f"Bearer {self.settings.prediction_api_key}"
        return headers

    def with_http_client(self, http_client: httpx.AsyncClient) -> "PredictionClient":
        """Copy of this client that sends through a shared connection pool."""
        bound = copy.copy(self)
        bound.http_client = http_client
        return bound

    async def _post(self, payload: dict, timeout: float) -> Any:
        if self.http_client is not None:
            response = await self.http_client.post(
                self.endpoint, json=payload, headers=self._headers(), timeout=timeout,
            )
        else:
            async with httpx.AsyncClient(timeout=timeout) as http:
                response = await http.post(
                    self.endpoint, json=payload, headers=self._headers(),
                )
        response.raise_for_status()
        return response.json()

    async def fetch_remote(self, record: NormalizedRecord,
                           as_of: Optional[date] = None) -> RemoteScore:
        """
        Single remote attempt.

        The timeout bounds the whole exchange, response body included.

        Raises:
            UpstreamPredictionError: On timeout, transport error, non-2xx or bad JSON
        """
        payload = build_payload(record, as_of)
        timeout = self.settings.prediction_timeout_seconds
        try:
            body = await asyncio.wait_for(self._post(payload, timeout), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamPredictionError(f"Model did not answer within {timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamPredictionError(
                f"Model returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamPredictionError(f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise UpstreamPredictionError(f"Invalid JSON from model: {e}") from e

        return map_remote_response(body)

    async def predict(self, record: NormalizedRecord,
                      as_of: Optional[date] = None) -> Prediction:
        """
        Remote prediction, falling back to the rule engine on any upstream failure.

        Rule scoring runs on a worker thread so it never holds up sibling rows.
        """
        as_of = as_of or today_utc()
        days_inactive = days_since(record.last_login_date, as_of)

        try:
            remote = await self.fetch_remote(record, as_of)
        except UpstreamPredictionError as e:
            logger.warning(
                "Model prediction failed for %s (%s); using rules-based fallback",
                record.customer_id, e,
            )
            fallback = await asyncio.to_thread(self.scorer.score_record, record, as_of)
            return self._prediction(record, fallback.probability, fallback.factors,
                                    fallback.actions, days_inactive, source="rules")

        factors, actions = remote.factors, remote.actions
        if not factors or not actions:
            rule_factors, rule_actions = await asyncio.to_thread(
                self.scorer.explain, record, as_of
            )
            factors = factors or rule_factors
            actions = actions or rule_actions

        return self._prediction(record, self.config.clamp(remote.probability), factors,
                                actions, days_inactive, source="ai_model")

    def _prediction(self, record, probability, factors, actions, days_inactive,
                    source: str) -> Prediction:
        return Prediction(
            customer_id=record.customer_id,
            probability=probability,
            contributing_factors=list(factors),
            recommended_actions=list(actions),
            monthly_revenue=record.monthly_revenue,
            plan=record.plan,
            days_since_last_active=days_inactive,
            days_since_signup=self.config.days_since_signup,
            source=source,
        )
