"""
Scoring Engine - weighted composite scores over signals.

Normalizes the ten raw signal values into risk components on a 0-100 scale
and blends them into four explainable scores:

- project_health: 100 minus a blended risk pressure
- risk: the blended risk pressure with delivery/commercial emphasis
- client_value: revenue, margin, engagement, sentiment and stability
- upsell_likelihood: client value, detected needs and commercial stability

Weights and level cutoffs are fixed constants. Every score carries its
weights, per-factor breakdown and the union of signal evidence so each number
traces back to named inputs.

Version: scoring_v1
"""

import math
from datetime import datetime
from typing import Any, Iterable, Optional, Union

import structlog

from kag.config import KagSettings, get_settings
from kag.models.enums import ScoreLevel, ScoreType, SignalKey
from kag.models.evidence import EvidenceRef, dedupe_evidence_refs
from kag.models.scores import Score, ScoreFactor, ScoreResult
from kag.models.signals import Signal
from kag.models.state import SignalState
from kag.utils.timeutils import clamp, count_in_last_days, to_datetime, utc_now

from .signals import map_signals_by_key

logger = structlog.get_logger(__name__)


# ============================================================================
# Component weights per score
# ============================================================================

PROJECT_HEALTH_WEIGHTS = {
    "waiting": 0.10,
    "response": 0.08,
    "blockers": 0.15,
    "stage": 0.15,
    "agreement": 0.10,
    "sentiment": 0.08,
    "scope": 0.10,
    "budget": 0.10,
    "margin": 0.08,
    "activity": 0.06,
}

RISK_WEIGHTS = {
    "blockers": 0.18,
    "stage": 0.18,
    "budget": 0.16,
    "margin": 0.16,
    "scope": 0.10,
    "agreement": 0.08,
    "waiting": 0.06,
    "response": 0.04,
    "sentiment": 0.02,
    "activity": 0.02,
}

CLIENT_VALUE_WEIGHTS = {
    "revenue": 0.30,
    "margin": 0.25,
    "engagement": 0.20,
    "sentiment": 0.10,
    "stability": 0.15,
}

UPSELL_WEIGHTS = {
    "client_value": 0.40,
    "need_signal": 0.35,
    "commercial_stability": 0.25,
}

# Display thresholds rendered by the UI next to each score
SCORE_THRESHOLDS = {
    ScoreType.PROJECT_HEALTH: {"warning_below": 70, "critical_below": 50},
    ScoreType.RISK: {"warning_above": 60, "critical_above": 75},
    ScoreType.CLIENT_VALUE: {"medium_above": 60, "high_above": 75},
    ScoreType.UPSELL_LIKELIHOOD: {"medium_above": 55, "high_above": 70},
}

# Revenue at which the revenue component saturates
REVENUE_REFERENCE = 100_000.0

NEED_EVENT_POINTS = 35
SCOPE_REQUEST_POINTS = 12


def weighted_average(components: dict[str, float], weights: dict[str, float]) -> float:
    """Weighted mean over positive finite weights; 0 when no weight applies."""
    total_weight = 0.0
    total = 0.0
    for key, weight in weights.items():
        if not math.isfinite(weight) or weight <= 0:
            continue
        value = float(components.get(key, 0.0) or 0.0)
        total_weight += weight
        total += value * weight
    if total_weight <= 0:
        return 0.0
    return total / total_weight


def score_level(score_type: ScoreType, value: float) -> ScoreLevel:
    """
    Map a score to a qualitative level.

    Health is lower-is-worse, risk is higher-is-worse, client value is
    higher-is-better with a critical floor. Upsell reuses risk-style cutoffs
    so that strong opportunities are flagged with more urgency.
    """
    if not math.isfinite(value):
        return ScoreLevel.LOW

    if score_type == ScoreType.PROJECT_HEALTH:
        if value < 40:
            return ScoreLevel.CRITICAL
        if value < 60:
            return ScoreLevel.HIGH
        if value < 75:
            return ScoreLevel.MEDIUM
        return ScoreLevel.LOW

    if score_type == ScoreType.RISK:
        if value >= 80:
            return ScoreLevel.CRITICAL
        if value >= 65:
            return ScoreLevel.HIGH
        if value >= 45:
            return ScoreLevel.MEDIUM
        return ScoreLevel.LOW

    if score_type == ScoreType.CLIENT_VALUE:
        if value >= 80:
            return ScoreLevel.HIGH
        if value >= 60:
            return ScoreLevel.MEDIUM
        if value < 25:
            return ScoreLevel.CRITICAL
        return ScoreLevel.LOW

    if value >= 80:
        return ScoreLevel.CRITICAL
    if value >= 65:
        return ScoreLevel.HIGH
    if value >= 40:
        return ScoreLevel.MEDIUM
    return ScoreLevel.LOW


def normalize_risk_inputs(signal_map: dict[SignalKey, Signal]) -> dict[str, float]:
    """Map raw signal values onto risk components in [0, 100]."""

    def value_of(key: SignalKey) -> float:
        signal = signal_map.get(key)
        if signal is None or not math.isfinite(signal.value):
            return 0.0
        return float(signal.value)

    sentiment_trend = value_of(SignalKey.SENTIMENT_TREND)
    budget_burn = value_of(SignalKey.BUDGET_BURN_RATE)

    return {
        "waiting": clamp(value_of(SignalKey.WAITING_ON_CLIENT_DAYS) / 6 * 100, 0, 100),
        "response": clamp(value_of(SignalKey.RESPONSE_TIME_AVG) / 720 * 100, 0, 100),
        "blockers": clamp(value_of(SignalKey.BLOCKERS_AGE) / 7 * 100, 0, 100),
        "stage": clamp(value_of(SignalKey.STAGE_OVERDUE) / 5 * 100, 0, 100),
        "agreement": clamp(value_of(SignalKey.AGREEMENT_OVERDUE_COUNT) * 40, 0, 100),
        # Only a falling sentiment is a risk
        "sentiment": 0.0 if sentiment_trend >= 0 else clamp(abs(sentiment_trend) * 300, 0, 100),
        "scope": clamp(value_of(SignalKey.SCOPE_CREEP_RATE) * 250, 0, 100),
        # Burn within plan is not penalized
        "budget": 0.0 if budget_burn <= 1 else clamp((budget_burn - 1) * 500, 0, 100),
        "margin": clamp(value_of(SignalKey.MARGIN_RISK) * 100, 0, 100),
        "activity": clamp(value_of(SignalKey.ACTIVITY_DROP) * 100, 0, 100),
    }


def revenue_component(revenue: float) -> float:
    """Log-scaled revenue score saturating at the reference revenue."""
    if not math.isfinite(revenue) or revenue <= 0:
        return 0.0
    return clamp(math.log1p(revenue) / math.log1p(REVENUE_REFERENCE) * 100, 0, 100)


def collect_evidence_refs(signals: Iterable[Signal], limit: int = 60) -> list[EvidenceRef]:
    refs: list[Any] = []
    for signal in signals:
        refs.extend(signal.evidence_refs)
    return dedupe_evidence_refs(refs, limit)


def _factors(components: dict[str, float]) -> list[ScoreFactor]:
    return [ScoreFactor(key=key, contribution=round(value, 2)) for key, value in components.items()]


class ScoringEngine:
    """
    Computes the four composite scores from signals and state.

    Attributes:
        settings: Evidence caps

    Example:
        >>> result = ScoringEngine().compute_scores(signals=signals, state=state, now=now)
        >>> result.score_map[ScoreType.RISK].level
    """

    SCORING_VERSION = "scoring_v1"

    def __init__(self, settings: Optional[KagSettings] = None):
        self.settings = settings or get_settings()

    def compute_scores(
        self,
        signals: Optional[Iterable[Union[Signal, dict]]] = None,
        state: Optional[Union[SignalState, dict]] = None,
        now: Optional[datetime] = None,
    ) -> ScoreResult:
        """
        Compute project_health, risk, client_value and upsell_likelihood.

        Total over its inputs: any finite signal list, including an empty
        one, produces four finite scores in [0, 100].

        Args:
            signals: Output of the signal engine
            state: Folded state supplying finance, sentiment and need inputs
            now: Evaluation instant

        Returns:
            ScoreResult with scores, score_map and risk_components
        """
        now = to_datetime(now, utc_now())
        if state is None:
            state = SignalState()
        elif isinstance(state, dict):
            state = SignalState.model_validate(state)

        signal_map = map_signals_by_key(signals)
        risks = normalize_risk_inputs(signal_map)

        project_risk_pressure = weighted_average(risks, PROJECT_HEALTH_WEIGHTS)
        project_health = clamp(100 - project_risk_pressure, 0, 100)
        risk = clamp(weighted_average(risks, RISK_WEIGHTS), 0, 100)

        sentiment_ewma = float(state.sentiment.ewma or 0.0)
        client_value_components = {
            "revenue": revenue_component(float(state.finance.revenue or 0.0)),
            "margin": clamp(100 - risks["margin"], 0, 100),
            "engagement": clamp(100 - risks["activity"], 0, 100),
            "sentiment": clamp((sentiment_ewma + 1) * 50, 0, 100),
            "stability": project_health,
        }
        client_value = clamp(weighted_average(client_value_components, CLIENT_VALUE_WEIGHTS), 0, 100)

        needs_7d = count_in_last_days(state.needs.events, now, 7)
        scope_requests_7d = count_in_last_days(state.scope.requests, now, 7)
        upsell_components = {
            "client_value": client_value,
            "need_signal": clamp(
                needs_7d * NEED_EVENT_POINTS + scope_requests_7d * SCOPE_REQUEST_POINTS, 0, 100
            ),
            "commercial_stability": clamp((100 - risk) * 0.6 + project_health * 0.4, 0, 100),
        }
        upsell = clamp(weighted_average(upsell_components, UPSELL_WEIGHTS), 0, 100)

        evidence_refs = collect_evidence_refs(signal_map.values(), self.settings.score_evidence_limit)

        def build(score_type: ScoreType, value: float, weights: dict, components: dict) -> Score:
            return Score(
                score_type=score_type,
                score=round(value, 2),
                level=score_level(score_type, value),
                weights=dict(weights),
                thresholds=dict(SCORE_THRESHOLDS[score_type]),
                factors=_factors(components),
                evidence_refs=evidence_refs,
                computed_at=now,
            )

        scores = [
            build(ScoreType.PROJECT_HEALTH, project_health, PROJECT_HEALTH_WEIGHTS, risks),
            build(ScoreType.RISK, risk, RISK_WEIGHTS, risks),
            build(ScoreType.CLIENT_VALUE, client_value, CLIENT_VALUE_WEIGHTS, client_value_components),
            build(ScoreType.UPSELL_LIKELIHOOD, upsell, UPSELL_WEIGHTS, upsell_components),
        ]

        logger.info(
            "scores_computed",
            project_health=scores[0].score,
            risk=scores[1].score,
            client_value=scores[2].score,
            upsell_likelihood=scores[3].score,
            evidence_refs=len(evidence_refs),
        )

        return ScoreResult(
            scores=scores,
            score_map={score.score_type: score for score in scores},
            risk_components={key: round(value, 4) for key, value in risks.items()},
        )


def compute_scores(
    signals: Optional[Iterable[Union[Signal, dict]]] = None,
    state: Optional[Union[SignalState, dict]] = None,
    now: Optional[datetime] = None,
    settings: Optional[KagSettings] = None,
) -> ScoreResult:
    return ScoringEngine(settings).compute_scores(signals=signals, state=state, now=now)
