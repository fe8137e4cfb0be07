"""
Pytest fixtures for churn batch scoring tests.
"""

from datetime import date

import pytest
import respx

# Add package to path
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from churn_batch.config import PipelineSettings, ScoringConfig
from churn_batch.csv_reader import REQUIRED_COLUMNS
from churn_batch.models import NormalizedRecord, Plan
from churn_batch.persistence import InMemoryGateway
from churn_batch.pipeline import ChurnPipeline
from churn_batch.scorer import FallbackScorer, generate_sample_records
from churn_batch.storage import InMemoryFileStore

MODEL_URL = "http://model.test"
AS_OF = date(2025, 1, 31)


@pytest.fixture
def as_of():
    """Fixed reference date so inactivity is reproducible."""
    return AS_OF


@pytest.fixture
def default_config():
    """Default scoring configuration."""
    return ScoringConfig()


@pytest.fixture
def scorer(default_config):
    """FallbackScorer with default config."""
    return FallbackScorer(default_config)


@pytest.fixture
def sample_records():
    """100 synthetic customers with realistic distributions."""
    return generate_sample_records(n_customers=100, seed=42, as_of=AS_OF)


@pytest.fixture
def healthy_record():
    """Engaged paying customer: no rule fires."""
    return NormalizedRecord(
        customer_id="HEALTHY",
        plan=Plan.PRO,
        monthly_revenue=99.0,
        feature_usage_count=8,
        support_tickets=0,
        avg_session_minutes=30.0,
        billing_status="active",
        last_login_date="2025-01-30",
    )


@pytest.fixture
def worst_record():
    """Every rule fires."""
    return NormalizedRecord(
        customer_id="WORST",
        plan=Plan.FREE,
        monthly_revenue=0.0,
        feature_usage_count=12,
        support_tickets=9,
        avg_session_minutes=1.0,
        billing_status="Payment FAILED",
        last_login_date="2024-10-01",
    )


@pytest.fixture
def example_rows():
    """
    Three-customer batch with one customer per risk tier.

    A: overdue billing, 20 days inactive -> high
    B: 4 support tickets, otherwise healthy -> low
    C: 1 feature used, 2 minute sessions -> medium
    """
    base = {
        "plan": "Pro",
        "last_login": "2025-01-30",
        "avg_session_duration": "30",
        "billing_status": "active",
        "monthly_revenue": "$49.00",
        "feature_usage_count": "8",
        "support_tickets": "0",
    }
    return [
        {**base, "customer_id": "A", "billing_status": "Overdue", "last_login": "2025-01-11"},
        {**base, "customer_id": "B", "support_tickets": "4"},
        {**base, "customer_id": "C", "feature_usage_count": "1", "avg_session_duration": "2"},
    ]


@pytest.fixture
def make_csv():
    """Factory: list of row dicts -> CSV bytes (required columns by default)."""
    def _make(rows, columns=None):
        columns = columns or REQUIRED_COLUMNS
        lines = [",".join(columns)]
        for row in rows:
            lines.append(",".join(str(row.get(col, "")) for col in columns))
        return ("\n".join(lines) + "\n").encode("utf-8")
    return _make


@pytest.fixture
def settings():
    """Settings pointing at the mocked model endpoint."""
    return PipelineSettings(prediction_api_url=MODEL_URL, prediction_timeout_seconds=1.0)


@pytest.fixture
def file_store():
    return InMemoryFileStore()


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def pipeline(file_store, gateway, settings):
    return ChurnPipeline(file_store, gateway, settings=settings)


@pytest.fixture
def model_router():
    """Mock all calls to the remote model."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def model_down(model_router):
    """Remote model answering 500 to everything."""
    return model_router.post(f"{MODEL_URL}/predict").respond(status_code=500)


@pytest.fixture
def model_up(model_router):
    """Remote model returning a fixed prediction with factors but no actions."""
    return model_router.post(f"{MODEL_URL}/predict").respond(
        status_code=200,
        json={"churn_probability": 0.82, "reasons": ["Model: declining logins"]},
    )
