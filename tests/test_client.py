"""
Tests for the two-tier prediction client.
"""

import asyncio
import json
import threading
import time

import httpx
import pytest

from churn_batch.client import PredictionClient, build_payload, map_remote_response
from churn_batch.config import PipelineSettings
from churn_batch.errors import UpstreamPredictionError
from churn_batch.normalizer import normalize_row
from churn_batch.scorer import FallbackScorer

from conftest import MODEL_URL


PREDICT_URL = f"{MODEL_URL}/predict"


class TestResponseMapping:
    """Remote payload mapping, independent of HTTP."""

    def test_primary_fields(self):
        score = map_remote_response({
            "churn_probability": 0.6,
            "reasons": ["a", "b"],
            "actions": ["do x"],
        })
        assert score.probability == 0.6
        assert score.factors == ["a", "b"]
        assert score.actions == ["do x"]

    def test_alternate_fields(self):
        score = map_remote_response({
            "prediction": 0.3,
            "factors": ["f"],
            "recommendations": ["r"],
        })
        assert score.probability == 0.3
        assert score.factors == ["f"]
        assert score.actions == ["r"]

    def test_single_text_fields(self):
        score = map_remote_response({"score": 0.5, "reason": "one", "action": "act"})
        assert score.factors == ["one"]
        assert score.actions == ["act"]

    def test_field_priority(self):
        score = map_remote_response({"score": 0.9, "churn_probability": 0.2})
        assert score.probability == 0.2

    def test_missing_probability_defaults_to_zero(self):
        score = map_remote_response({"churn_probability": "high", "reasons": []})
        assert score.probability == 0.0
        assert score.factors == []

    def test_zero_falls_through_to_next_field(self):
        score = map_remote_response({"churn_probability": 0, "score": 0.9})
        assert score.probability == 0.9

    @pytest.mark.parametrize("raw,expected", [
        ("0.82", 0.82),
        (" 0.4 ", 0.4),
        ("1", 1.0),
    ])
    def test_numeric_strings_accepted(self, raw, expected):
        assert map_remote_response({"churn_probability": raw}).probability == expected

    @pytest.mark.parametrize("raw", [True, "nan", "inf", "", [0.5]])
    def test_unusable_values_skipped(self, raw):
        score = map_remote_response({"churn_probability": raw, "prediction": 0.3})
        assert score.probability == 0.3

    @pytest.mark.parametrize("payload", [[0.5], "0.5", None, 0.5])
    def test_non_object_rejected(self, payload):
        with pytest.raises(UpstreamPredictionError):
            map_remote_response(payload)


class TestPayload:
    """Outgoing request body."""

    def test_build_payload(self, example_rows, as_of):
        payload = build_payload(normalize_row(example_rows[0]), as_of)
        assert payload == {
            "customerId": "A",
            "plan": "Pro",
            "daysSinceLastLoginAgo": 20,
            "avgSessionDurationMinutes": 30.0,
            "billingStatus": "Overdue",
            "monthlyRevenue": 49.0,
            "featureUsageCount": 8,
            "supportTicketsCount": 0,
        }


class TestRemotePrediction:
    """Successful remote answers."""

    async def test_remote_success(self, settings, model_up, example_rows, as_of):
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[1]), as_of)

        assert prediction.source == "ai_model"
        assert prediction.probability == pytest.approx(0.82)
        assert prediction.risk_level == "high"
        assert prediction.contributing_factors == ["Model: declining logins"]
        assert model_up.call_count == 1

    async def test_empty_actions_backfilled_from_rules(self, settings, model_up,
                                                       example_rows, as_of):
        """Customer B has 4 tickets: the support rule supplies the action."""
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[1]), as_of)
        assert prediction.recommended_actions == ["Priority customer success call"]

    async def test_empty_factors_backfilled_from_rules(self, settings, model_router,
                                                      example_rows, as_of):
        model_router.post(PREDICT_URL).respond(
            json={"churn_probability": 0.5, "reasons": [], "actions": ["Call them"]}
        )
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[0]), as_of)
        assert prediction.contributing_factors == [
            "Inactive for 20 days", "Payment/billing issues detected",
        ]
        assert prediction.recommended_actions == ["Call them"]

    async def test_string_probability_from_model(self, settings, model_router,
                                                 example_rows, as_of):
        model_router.post(PREDICT_URL).respond(json={"churn_probability": "0.82"})
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[1]), as_of)
        assert prediction.source == "ai_model"
        assert prediction.probability == pytest.approx(0.82)
        assert prediction.risk_level == "high"

    async def test_remote_probability_clamped(self, settings, model_router,
                                              example_rows, as_of):
        model_router.post(PREDICT_URL).respond(json={"churn_probability": 1.7})
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[1]), as_of)
        assert prediction.probability == pytest.approx(0.95)

    async def test_request_body_and_auth(self, model_up, example_rows, as_of):
        settings = PipelineSettings(prediction_api_url=MODEL_URL + "/",
                                    prediction_api_key="secret")
        client = PredictionClient(settings)
        await client.predict(normalize_row(example_rows[0]), as_of)

        request = model_up.calls.last.request
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content)["customerId"] == "A"

    async def test_injected_http_client(self, settings, example_rows, as_of):
        def handler(request):
            return httpx.Response(200, json={"prediction": 0.42})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = PredictionClient(settings, http_client=http)
            prediction = await client.predict(normalize_row(example_rows[0]), as_of)
        assert prediction.probability == pytest.approx(0.42)
        assert prediction.risk_level == "medium"


class TestFallback:
    """Any upstream failure is recovered by the rule engine."""

    async def test_server_error_uses_rules(self, settings, model_down, example_rows, as_of):
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[0]), as_of)

        assert prediction.source == "rules"
        assert prediction.probability == pytest.approx(0.80)
        assert prediction.contributing_factors == [
            "Inactive for 20 days", "Payment/billing issues detected",
        ]
        assert prediction.recommended_actions == ["Send reactivation email", "Check billing"]

    async def test_exactly_one_attempt(self, settings, model_down, example_rows, as_of):
        client = PredictionClient(settings)
        await client.predict(normalize_row(example_rows[0]), as_of)
        assert model_down.call_count == 1

    async def test_timeout_uses_rules(self, settings, model_router, example_rows, as_of):
        route = model_router.post(PREDICT_URL).mock(
            side_effect=httpx.ReadTimeout("timed out")
        )
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[2]), as_of)
        assert prediction.source == "rules"
        assert prediction.probability == pytest.approx(0.45)
        assert route.call_count == 1

    async def test_connection_error_uses_rules(self, settings, model_router,
                                               example_rows, as_of):
        model_router.post(PREDICT_URL).mock(side_effect=httpx.ConnectError("refused"))
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[1]), as_of)
        assert prediction.source == "rules"
        assert prediction.probability == pytest.approx(0.25)

    async def test_invalid_json_uses_rules(self, settings, model_router, example_rows, as_of):
        model_router.post(PREDICT_URL).respond(200, text="<html>oops</html>")
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[0]), as_of)
        assert prediction.source == "rules"

    async def test_non_object_json_uses_rules(self, settings, model_router,
                                              example_rows, as_of):
        model_router.post(PREDICT_URL).respond(200, json=[0.9])
        client = PredictionClient(settings)
        prediction = await client.predict(normalize_row(example_rows[0]), as_of)
        assert prediction.source == "rules"
        assert prediction.probability == pytest.approx(0.80)

    async def test_fetch_remote_raises(self, settings, model_down, example_rows, as_of):
        client = PredictionClient(settings)
        with pytest.raises(UpstreamPredictionError, match="500"):
            await client.fetch_remote(normalize_row(example_rows[0]), as_of)

    async def test_trickling_body_bounded_by_total_timeout(self, example_rows, as_of):
        """Each chunk arrives quickly but the whole body would take two seconds."""
        async def trickle():
            yield b'{"churn_probability": 0.9'
            for _ in range(20):
                await asyncio.sleep(0.1)
                yield b" "
            yield b"}"

        async def handler(request):
            return httpx.Response(200, content=trickle())

        settings = PipelineSettings(prediction_api_url=MODEL_URL,
                                    prediction_timeout_seconds=0.3)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = PredictionClient(settings, http_client=http)
            start = time.monotonic()
            prediction = await client.predict(normalize_row(example_rows[0]), as_of)
            elapsed = time.monotonic() - start

        assert prediction.source == "rules"
        assert prediction.probability == pytest.approx(0.80)
        assert elapsed < 1.0

    async def test_trickling_body_raises_upstream_error(self, example_rows, as_of):
        async def trickle():
            for _ in range(20):
                await asyncio.sleep(0.1)
                yield b" "

        async def handler(request):
            return httpx.Response(200, content=trickle())

        settings = PipelineSettings(prediction_api_url=MODEL_URL,
                                    prediction_timeout_seconds=0.2)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = PredictionClient(settings, http_client=http)
            with pytest.raises(UpstreamPredictionError, match="did not answer within"):
                await client.fetch_remote(normalize_row(example_rows[0]), as_of)


class ThreadRecordingScorer(FallbackScorer):
    def __init__(self):
        super().__init__()
        self.threads = []

    def score_record(self, record, as_of=None):
        self.threads.append(threading.get_ident())
        return super().score_record(record, as_of)

    def explain(self, record, as_of=None):
        self.threads.append(threading.get_ident())
        return super().explain(record, as_of)


class TestRuleScoringThread:
    """Rule scoring stays off the event loop thread."""

    async def test_fallback_runs_on_worker_thread(self, settings, model_down,
                                                  example_rows, as_of):
        scorer = ThreadRecordingScorer()
        client = PredictionClient(settings, scorer=scorer)
        prediction = await client.predict(normalize_row(example_rows[0]), as_of)

        assert prediction.source == "rules"
        assert scorer.threads
        assert threading.get_ident() not in scorer.threads

    async def test_backfill_runs_on_worker_thread(self, settings, model_router,
                                                  example_rows, as_of):
        model_router.post(PREDICT_URL).respond(json={"churn_probability": 0.5})
        scorer = ThreadRecordingScorer()
        client = PredictionClient(settings, scorer=scorer)
        prediction = await client.predict(normalize_row(example_rows[0]), as_of)

        assert prediction.source == "ai_model"
        assert scorer.threads
        assert threading.get_ident() not in scorer.threads
