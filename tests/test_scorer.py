"""
Tests for FallbackScorer.
"""

from dataclasses import replace

import pandas as pd
import pytest

from churn_batch.config import ScoringConfig
from churn_batch.models import NormalizedRecord, Plan
from churn_batch.normalizer import normalize_row
from churn_batch.schemas import SCORING_OUTPUT_SCHEMA
from churn_batch.scorer import FallbackScorer, ScoringResult


class TestFallbackScorer:
    """Tests for the vectorized rule engine."""

    def test_score_returns_result(self, scorer, sample_records, as_of):
        """Score should return ScoringResult."""
        result = scorer.score(scorer.to_frame(sample_records, as_of))
        assert isinstance(result, ScoringResult)
        assert "CHURN_PROBABILITY" in result.df.columns
        assert "RISK_LEVEL" in result.df.columns

    def test_output_matches_schema(self, scorer, sample_records, as_of):
        """Every probability lies in [0.10, 0.95] with a valid tier."""
        result = scorer.score(scorer.to_frame(sample_records, as_of))
        SCORING_OUTPUT_SCHEMA.validate(result.df)

    def test_rule_columns(self, scorer, sample_records, as_of):
        """One contribution column per rule, in reporting order."""
        result = scorer.score(scorer.to_frame(sample_records, as_of))
        assert result.rule_columns == [
            "inactivity_risk", "billing_risk", "session_risk",
            "adoption_risk", "support_risk", "downgrade_risk",
        ]

    def test_validate_input_raises_on_missing(self, scorer):
        """Should raise on missing columns."""
        with pytest.raises(ValueError, match="Missing required columns"):
            scorer.score(pd.DataFrame({"customer_id": ["X"]}))

    def test_deterministic(self, scorer, sample_records, as_of):
        """Same input and as_of give identical output."""
        first = scorer.score(scorer.to_frame(sample_records, as_of)).df
        second = scorer.score(scorer.to_frame(sample_records, as_of)).df
        pd.testing.assert_series_equal(first["CHURN_PROBABILITY"], second["CHURN_PROBABILITY"])
        assert first["FACTORS"].tolist() == second["FACTORS"].tolist()


class TestScoreRecord:
    """Single-customer scoring."""

    def test_healthy_customer(self, scorer, healthy_record, as_of):
        result = scorer.score_record(healthy_record, as_of)
        assert result.probability == pytest.approx(0.10)
        assert result.factors == ["User showing healthy engagement patterns"]
        assert result.actions == ["Monitor engagement closely"]

    def test_rules_are_summed_and_clamped(self, scorer, worst_record, as_of):
        """Every firing rule contributes; total is capped at 0.95."""
        result = scorer.score_record(worst_record, as_of)
        assert result.probability == pytest.approx(0.95)
        assert result.factors == [
            "Inactive for 122 days",
            "Payment/billing issues detected",
            "Very low session engagement",
            "High support ticket volume indicates frustration",
            "Free plan user with no revenue conversion despite high usage",
        ]
        assert result.actions == [
            "Send reactivation email",
            "Check billing",
            "Priority customer success call",
            "Offer discount",
        ]

    def test_rules_without_actions_get_general_action(self, scorer, healthy_record, as_of):
        """Session and adoption carry no action of their own."""
        record = replace(healthy_record, avg_session_minutes=2.0, feature_usage_count=1)
        result = scorer.score_record(record, as_of)
        assert result.probability == pytest.approx(0.45)
        assert result.factors == ["Very low session engagement", "Low feature adoption and usage"]
        assert result.actions == ["Monitor engagement closely"]

    def test_unparsable_login_is_not_inactive(self, scorer, healthy_record, as_of):
        record = replace(healthy_record, last_login_date="not a date")
        assert scorer.score_record(record, as_of).probability == pytest.approx(0.10)

    def test_explain_matches_score_record(self, scorer, worst_record, as_of):
        factors, actions = scorer.explain(worst_record, as_of)
        result = scorer.score_record(worst_record, as_of)
        assert factors == result.factors
        assert actions == result.actions


class TestExampleBatch:
    """The three-customer example: one customer per tier."""

    def test_probabilities_and_tiers(self, scorer, example_rows, as_of):
        records = [normalize_row(row) for row in example_rows]
        result = scorer.score(scorer.to_frame(records, as_of)).df.set_index("customer_id")

        assert result.loc["A", "CHURN_PROBABILITY"] == pytest.approx(0.80)
        assert result.loc["A", "RISK_LEVEL"] == "high"
        assert result.loc["B", "CHURN_PROBABILITY"] == pytest.approx(0.25)
        assert result.loc["B", "RISK_LEVEL"] == "low"
        assert result.loc["C", "CHURN_PROBABILITY"] == pytest.approx(0.45)
        assert result.loc["C", "RISK_LEVEL"] == "medium"

    def test_customer_a_factors(self, scorer, example_rows, as_of):
        record = normalize_row(example_rows[0])
        result = scorer.score_record(record, as_of)
        assert result.factors == ["Inactive for 20 days", "Payment/billing issues detected"]
        assert result.actions == ["Send reactivation email", "Check billing"]


class TestRiskTiers:
    """Tier boundaries are inclusive on the lower bound."""

    def test_exactly_point_four_is_medium(self, scorer, healthy_record, as_of):
        # base 0.10 + session 0.15 + support 0.15
        record = replace(healthy_record, avg_session_minutes=1.0, support_tickets=5)
        result = scorer.score(scorer.to_frame([record], as_of)).df.iloc[0]
        assert result["CHURN_PROBABILITY"] == 0.4
        assert result["RISK_LEVEL"] == "medium"

    def test_exactly_point_seven_is_high(self, scorer, healthy_record, as_of):
        # base 0.10 + billing 0.40 + adoption 0.20
        record = replace(healthy_record, billing_status="failed", feature_usage_count=0)
        result = scorer.score(scorer.to_frame([record], as_of)).df.iloc[0]
        assert result["CHURN_PROBABILITY"] == 0.7
        assert result["RISK_LEVEL"] == "high"

    @pytest.mark.parametrize("probability,level", [
        (0.10, "low"), (0.3999, "low"), (0.40, "medium"),
        (0.6999, "medium"), (0.70, "high"), (0.95, "high"),
    ])
    def test_get_risk_level(self, probability, level):
        assert ScoringConfig().get_risk_level(probability) == level


class TestScoringResult:
    """Tests for ScoringResult helpers."""

    def test_get_high_risk(self, scorer, sample_records, as_of):
        result = scorer.score(scorer.to_frame(sample_records, as_of))
        high = result.get_high_risk("high")
        assert (high["RISK_LEVEL"] == "high").all()
        medium_up = result.get_high_risk("medium")
        assert len(medium_up) >= len(high)

    def test_rule_breakdown(self, scorer, sample_records, as_of):
        breakdown = scorer.score(scorer.to_frame(sample_records, as_of)).rule_breakdown()
        assert set(breakdown.index) == {
            "inactivity", "billing", "session", "adoption", "support", "downgrade",
        }
        assert (breakdown["fired"] >= 0).all()

    def test_custom_config_changes_result(self, healthy_record, as_of):
        config = ScoringConfig(min_session_minutes=60.0)
        scorer = FallbackScorer(config)
        result = scorer.score_record(healthy_record, as_of)
        assert result.probability == pytest.approx(0.25)


class TestSampleRecords:
    """Tests for the synthetic portfolio generator."""

    def test_reproducible(self, as_of):
        from churn_batch.scorer import generate_sample_records
        assert generate_sample_records(20, seed=7, as_of=as_of) == \
            generate_sample_records(20, seed=7, as_of=as_of)

    def test_free_plans_have_no_revenue(self, sample_records):
        free = [r for r in sample_records if r.plan is Plan.FREE]
        assert free
        assert all(r.monthly_revenue == 0.0 for r in free)

    def test_records_are_normalized(self, sample_records):
        assert all(isinstance(r, NormalizedRecord) for r in sample_records)
        assert all(r.support_tickets >= 0 for r in sample_records)
