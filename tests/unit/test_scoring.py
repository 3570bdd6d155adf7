"""
Unit tests for the scoring engine.

Naming: test_<module>_<method>_<scenario>
"""

import math

import pytest

from kag.engine.scoring import (
    CLIENT_VALUE_WEIGHTS,
    PROJECT_HEALTH_WEIGHTS,
    RISK_WEIGHTS,
    SCORE_THRESHOLDS,
    UPSELL_WEIGHTS,
    ScoringEngine,
    compute_scores,
    normalize_risk_inputs,
    revenue_component,
    score_level,
    weighted_average,
)
from kag.engine.signals import map_signals_by_key
from kag.models.enums import ScoreLevel, ScoreType, SignalKey
from kag.models.evidence import EvidenceRef
from kag.models.state import SignalState
from tests.conftest import NOW, days_ago, make_evidence, make_signal


WORST_CASE_VALUES = {
    SignalKey.WAITING_ON_CLIENT_DAYS: 6,
    SignalKey.RESPONSE_TIME_AVG: 720,
    SignalKey.BLOCKERS_AGE: 7,
    SignalKey.STAGE_OVERDUE: 5,
    SignalKey.AGREEMENT_OVERDUE_COUNT: 3,
    SignalKey.SENTIMENT_TREND: -1,
    SignalKey.SCOPE_CREEP_RATE: 1,
    SignalKey.BUDGET_BURN_RATE: 2,
    SignalKey.MARGIN_RISK: 1,
    SignalKey.ACTIVITY_DROP: 1,
}


@pytest.fixture
def engine(kag_settings):
    return ScoringEngine(kag_settings)


class TestWeightedAverage:
    def test_weighted_average_basic(self):
        assert weighted_average({"a": 100, "b": 0}, {"a": 0.25, "b": 0.75}) == pytest.approx(25.0)

    def test_weighted_average_zero_total_weight(self):
        assert weighted_average({"a": 50}, {"a": 0.0}) == 0.0

    def test_weighted_average_skips_non_finite_and_negative_weights(self):
        assert weighted_average({"a": 80, "b": 10}, {"a": 1.0, "b": -1.0, "c": math.nan}) == 80.0

    def test_weighted_average_missing_component_counts_as_zero(self):
        assert weighted_average({}, {"a": 1.0}) == 0.0

    @pytest.mark.parametrize(
        "weights", [PROJECT_HEALTH_WEIGHTS, RISK_WEIGHTS, CLIENT_VALUE_WEIGHTS, UPSELL_WEIGHTS]
    )
    def test_weight_tables_sum_to_one(self, weights):
        assert sum(weights.values()) == pytest.approx(1.0)


class TestScoreLevel:
    @pytest.mark.parametrize(
        "value,expected",
        [(39.99, ScoreLevel.CRITICAL), (40, ScoreLevel.HIGH), (59.9, ScoreLevel.HIGH),
         (60, ScoreLevel.MEDIUM), (74.9, ScoreLevel.MEDIUM), (75, ScoreLevel.LOW)],
    )
    def test_score_level_project_health(self, value, expected):
        assert score_level(ScoreType.PROJECT_HEALTH, value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [(80, ScoreLevel.CRITICAL), (65, ScoreLevel.HIGH), (45, ScoreLevel.MEDIUM), (44.9, ScoreLevel.LOW)],
    )
    def test_score_level_risk(self, value, expected):
        assert score_level(ScoreType.RISK, value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [(80, ScoreLevel.HIGH), (60, ScoreLevel.MEDIUM), (30, ScoreLevel.LOW), (24.9, ScoreLevel.CRITICAL)],
    )
    def test_score_level_client_value(self, value, expected):
        assert score_level(ScoreType.CLIENT_VALUE, value) == expected

    @pytest.mark.parametrize(
        "value,expected",
        [(80, ScoreLevel.CRITICAL), (65, ScoreLevel.HIGH), (40, ScoreLevel.MEDIUM), (39.9, ScoreLevel.LOW)],
    )
    def test_score_level_upsell_uses_risk_style_cutoffs(self, value, expected):
        assert score_level(ScoreType.UPSELL_LIKELIHOOD, value) == expected

    def test_score_level_non_finite_is_low(self):
        assert score_level(ScoreType.RISK, math.nan) == ScoreLevel.LOW


class TestNormalizeRiskInputs:
    def test_normalize_empty_signals_all_zero(self):
        risks = normalize_risk_inputs({})
        assert set(risks) == set(PROJECT_HEALTH_WEIGHTS)
        assert all(value == 0.0 for value in risks.values())

    def test_normalize_worst_case_saturates(self):
        signals = [make_signal(key, value) for key, value in WORST_CASE_VALUES.items()]
        risks = normalize_risk_inputs(map_signals_by_key(signals))
        assert all(value == 100.0 for value in risks.values())

    def test_normalize_positive_sentiment_is_not_risk(self):
        risks = normalize_risk_inputs(map_signals_by_key([make_signal(SignalKey.SENTIMENT_TREND, 0.5)]))
        assert risks["sentiment"] == 0.0

    def test_normalize_negative_sentiment_scaled(self):
        risks = normalize_risk_inputs(map_signals_by_key([make_signal(SignalKey.SENTIMENT_TREND, -0.1)]))
        assert risks["sentiment"] == pytest.approx(30.0)

    def test_normalize_budget_within_plan_not_penalized(self):
        risks = normalize_risk_inputs(map_signals_by_key([make_signal(SignalKey.BUDGET_BURN_RATE, 1.0)]))
        assert risks["budget"] == 0.0

    def test_normalize_agreement_count_scaled(self):
        risks = normalize_risk_inputs(map_signals_by_key([make_signal(SignalKey.AGREEMENT_OVERDUE_COUNT, 2)]))
        assert risks["agreement"] == 80.0


class TestRevenueComponent:
    def test_revenue_component_zero_and_negative(self):
        assert revenue_component(0) == 0.0
        assert revenue_component(-100) == 0.0

    def test_revenue_component_reference_is_full_score(self):
        assert revenue_component(100_000) == pytest.approx(100.0)

    def test_revenue_component_saturates_above_reference(self):
        assert revenue_component(5_000_000) == 100.0

    def test_revenue_component_is_log_scaled(self):
        assert revenue_component(1_000) > 50.0

    def test_revenue_component_non_finite(self):
        assert revenue_component(math.inf) == 0.0


class TestComputeScores:
    def test_compute_scores_zero_state(self, engine):
        result = engine.compute_scores(signals=[], state=SignalState(), now=NOW)
        assert [s.score_type for s in result.scores] == list(ScoreType)
        assert result.score_map[ScoreType.PROJECT_HEALTH].score == 100.0
        assert result.score_map[ScoreType.RISK].score == 0.0
        assert result.score_map[ScoreType.PROJECT_HEALTH].level == ScoreLevel.LOW
        assert result.score_map[ScoreType.RISK].level == ScoreLevel.LOW

    def test_compute_scores_zero_state_client_value_and_upsell(self, engine):
        result = engine.compute_scores(signals=[], state=SignalState(), now=NOW)
        # margin 25 + engagement 20 + sentiment 5 + stability 15
        assert result.score_map[ScoreType.CLIENT_VALUE].score == pytest.approx(65.0)
        assert result.score_map[ScoreType.UPSELL_LIKELIHOOD].score == pytest.approx(51.0)

    def test_compute_scores_worst_case(self, engine):
        signals = [make_signal(key, value) for key, value in WORST_CASE_VALUES.items()]
        result = engine.compute_scores(signals=signals, state=SignalState(), now=NOW)
        assert result.score_map[ScoreType.PROJECT_HEALTH].score == 0.0
        assert result.score_map[ScoreType.RISK].score == 100.0
        assert result.score_map[ScoreType.PROJECT_HEALTH].level == ScoreLevel.CRITICAL
        assert result.score_map[ScoreType.RISK].level == ScoreLevel.CRITICAL

    def test_compute_scores_revenue_and_sentiment_raise_client_value(self, engine):
        state = SignalState()
        state.finance.revenue = 100_000
        state.sentiment.ewma = 1.0
        result = engine.compute_scores(signals=[], state=state, now=NOW)
        assert result.score_map[ScoreType.CLIENT_VALUE].score == pytest.approx(100.0)

    def test_compute_scores_need_signal_component(self, engine):
        state = SignalState()
        state.needs.events = [days_ago(1), days_ago(2), days_ago(20)]
        state.scope.requests = [days_ago(3)]
        result = engine.compute_scores(signals=[], state=state, now=NOW)
        factors = {f.key: f.contribution for f in result.score_map[ScoreType.UPSELL_LIKELIHOOD].factors}
        assert factors["need_signal"] == pytest.approx(82.0)

    def test_compute_scores_attaches_weights_thresholds_and_factors(self, engine):
        result = engine.compute_scores(signals=[], state=None, now=NOW)
        risk = result.score_map[ScoreType.RISK]
        assert risk.weights == RISK_WEIGHTS
        assert risk.thresholds == SCORE_THRESHOLDS[ScoreType.RISK]
        assert {f.key for f in risk.factors} == set(RISK_WEIGHTS)
        assert risk.computed_at == NOW

    def test_compute_scores_evidence_union_deduped(self, engine):
        signals = [
            make_signal(SignalKey.BLOCKERS_AGE, 1, evidence=[make_evidence("a"), make_evidence("b")]),
            make_signal(SignalKey.MARGIN_RISK, 0.1, evidence=[make_evidence("b"), make_evidence("c")]),
        ]
        result = engine.compute_scores(signals=signals, state=None, now=NOW)
        expected = [EvidenceRef(message_id=m) for m in ("a", "b", "c")]
        for score in result.scores:
            assert score.evidence_refs == expected

    def test_compute_scores_evidence_capped(self, kag_settings):
        settings = kag_settings.model_copy(update={"score_evidence_limit": 2})
        signals = [
            make_signal(SignalKey.BLOCKERS_AGE, 1, evidence=[make_evidence(m) for m in "abcd"]),
        ]
        result = ScoringEngine(settings).compute_scores(signals=signals, state=None, now=NOW)
        assert len(result.score_map[ScoreType.RISK].evidence_refs) == 2

    def test_compute_scores_accepts_signal_dicts(self, engine):
        result = engine.compute_scores(
            signals=[{"signal_key": "budget_burn_rate", "value": 1.2}], state={}, now=NOW
        )
        assert result.risk_components["budget"] == 100.0

    def test_compute_scores_rounds_to_two_decimals(self, engine):
        signals = [make_signal(SignalKey.RESPONSE_TIME_AVG, 100)]
        result = engine.compute_scores(signals=signals, state=None, now=NOW)
        for score in result.scores:
            assert score.score == round(score.score, 2)

    def test_compute_scores_module_function(self, kag_settings):
        result = compute_scores(signals=None, state=None, now=NOW, settings=kag_settings)
        assert len(result.scores) == 4
