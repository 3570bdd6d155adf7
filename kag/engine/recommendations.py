"""
Recommendation Engine - evidence-gated actions from signals and scores.

Five independent trigger rules are evaluated in a fixed order:

1. waiting_on_client: the client has not replied for 2+ days
2. scope_creep_change_request: out-of-scope requests pile up
3. delivery_risk: many aged blockers or an overdue stage
4. finance_risk: burn above plan or thin margin
5. upsell_opportunity: high upsell likelihood backed by detected needs

A rule only emits when its merged evidence list is non-empty, however
extreme the driving values are. Each recommendation carries frozen signal and
score snapshots plus a dedupe key hashed over the category and quantized
driver values (never wall-clock time), so unchanged inputs always yield the
same key. Output is sorted by priority, most urgent first; ties keep rule
order.
"""

import hashlib
import json
from datetime import datetime
from typing import Any, Iterable, Optional, Union

import structlog

from kag.config import KagSettings, get_settings
from kag.models.enums import RecommendationCategory, ScoreType, SignalKey, TemplateKey
from kag.models.evidence import EvidenceRef, dedupe_evidence_refs
from kag.models.recommendations import Recommendation
from kag.models.scores import Score, ScoreResult
from kag.models.signals import Signal
from kag.models.state import SignalState
from kag.utils.timeutils import count_in_last_days, to_datetime, utc_now

from .signals import map_signals_by_key
from .templates import TemplateGenerator, generate_template

logger = structlog.get_logger(__name__)

ScoresLike = Union[ScoreResult, Iterable[Union[Score, dict]], None]


def recommendation_dedupe_key(category: RecommendationCategory, context: dict[str, Any]) -> str:
    """Stable SHA-1 over the category and its quantized driver values."""
    material = f"{category.value}:{json.dumps(context, sort_keys=True, separators=(',', ':'))}"
    return hashlib.sha1(material.encode("utf-8")).hexdigest()


def map_scores_by_type(scores: ScoresLike) -> dict[ScoreType, Score]:
    if isinstance(scores, ScoreResult):
        return dict(scores.score_map)
    out: dict[ScoreType, Score] = {}
    for item in scores or []:
        if isinstance(item, dict):
            if not item.get("score_type"):
                continue
            item = Score.model_validate(item)
        if isinstance(item, Score):
            out[item.score_type] = item
    return out


def _value(signal: Optional[Signal]) -> float:
    return float(signal.value) if signal is not None else 0.0


def _detail(signal: Optional[Signal], key: str, default: Any = None) -> Any:
    if signal is None:
        return default
    return signal.details.get(key, default)


def _refs(*signals: Optional[Signal]) -> list[EvidenceRef]:
    refs: list[EvidenceRef] = []
    for signal in signals:
        if signal is not None:
            refs.extend(signal.evidence_refs)
    return refs


def _signal_snapshot(signal: Optional[Signal]) -> dict[str, Any]:
    return signal.snapshot() if signal is not None else {}


def _score_snapshot(score: Optional[Score]) -> dict[str, Any]:
    return score.snapshot() if score is not None else {}


class RecommendationEngine:
    """
    Synthesizes prioritized recommendations from signals, scores and state.

    Attributes:
        settings: Evidence caps and template display defaults
        llm_generate_template: Optional template generator collaborator

    Example:
        >>> engine = RecommendationEngine()
        >>> recs = await engine.generate_recommendations(signals, scores, state, now)
        >>> [r.category for r in recs]
    """

    def __init__(
        self,
        settings: Optional[KagSettings] = None,
        llm_generate_template: Optional[TemplateGenerator] = None,
    ):
        self.settings = settings or get_settings()
        self.llm_generate_template = llm_generate_template

    def _evidence(self, refs: Iterable[Any]) -> list[EvidenceRef]:
        return dedupe_evidence_refs(refs, self.settings.recommendation_evidence_limit)

    async def _template(self, template_key: TemplateKey, variables: dict[str, Any]) -> str:
        return await generate_template(template_key, variables, self.llm_generate_template)

    async def generate_recommendations(
        self,
        signals: Optional[Iterable[Union[Signal, dict]]] = None,
        scores: ScoresLike = None,
        state: Optional[Union[SignalState, dict]] = None,
        now: Optional[datetime] = None,
    ) -> list[Recommendation]:
        """
        Evaluate all trigger rules and return triggered recommendations.

        Args:
            signals: Output of the signal engine
            scores: ScoreResult or list of scores
            state: Folded state (needs, display names)
            now: Evaluation instant

        Returns:
            Recommendations sorted by descending priority

        Raises:
            Whatever the template generator collaborator raises.
        """
        now = to_datetime(now, utc_now())
        if state is None:
            state = SignalState()
        elif isinstance(state, dict):
            state = SignalState.model_validate(state)

        signal_map = map_signals_by_key(signals)
        score_map = map_scores_by_type(scores)

        rules = (
            self._waiting_on_client,
            self._scope_creep,
            self._delivery_risk,
            self._finance_risk,
            self._upsell_opportunity,
        )
        recommendations: list[Recommendation] = []
        for rule in rules:
            recommendation = await rule(signal_map, score_map, state, now)
            if recommendation is not None:
                recommendations.append(recommendation)

        ordered = sorted(recommendations, key=lambda rec: rec.priority, reverse=True)

        logger.info(
            "recommendations_generated",
            count=len(ordered),
            categories=[rec.category.value for rec in ordered],
        )
        return ordered

    # =========================================================================
    # Trigger rules
    # =========================================================================

    async def _waiting_on_client(self, signal_map, score_map, state, now) -> Optional[Recommendation]:
        waiting = signal_map.get(SignalKey.WAITING_ON_CLIENT_DAYS)
        stage = signal_map.get(SignalKey.STAGE_OVERDUE)
        waiting_days = _value(waiting)
        if waiting_days < 2:
            return None
        evidence = self._evidence(_refs(waiting, stage))
        if not evidence:
            return None

        approval_pending = bool(_detail(stage, "approval_pending", False))
        stage_name = _detail(stage, "stage_name") or state.stage.stage_name or "current stage"
        variables = {
            "client_name": state.client_name or self.settings.default_client_name,
            "stage_name": stage_name,
            "waiting_days": f"{waiting_days:.1f}",
        }
        if approval_pending:
            rationale = f"Client has not responded for {waiting_days:.1f} days; the stage is awaiting approval."
        else:
            rationale = f"Client has not responded for {waiting_days:.1f} days; delay risk is growing."

        return Recommendation(
            category=RecommendationCategory.WAITING_ON_CLIENT,
            priority=5 if waiting_days >= 4 or approval_pending else 4,
            title="Follow up on pending client approval",
            rationale=rationale,
            evidence_refs=evidence,
            suggested_template_key=TemplateKey.WAITING,
            suggested_template=await self._template(TemplateKey.WAITING, variables),
            signal_snapshot={
                "waiting": _signal_snapshot(waiting),
                "stage": _signal_snapshot(stage),
            },
            score_snapshot={
                "project_health": _score_snapshot(score_map.get(ScoreType.PROJECT_HEALTH)),
                "risk": _score_snapshot(score_map.get(ScoreType.RISK)),
            },
            dedupe_key=recommendation_dedupe_key(RecommendationCategory.WAITING_ON_CLIENT, {
                "waiting_days": f"{waiting_days:.1f}",
                "approval_pending": approval_pending,
            }),
        )

    async def _scope_creep(self, signal_map, score_map, state, now) -> Optional[Recommendation]:
        scope = signal_map.get(SignalKey.SCOPE_CREEP_RATE)
        rate = _value(scope)
        scope_requests = int(_detail(scope, "scope_requests_7d", 0) or 0)
        if rate < 0.2 and scope_requests < 2:
            return None
        evidence = self._evidence(_refs(scope))
        if not evidence:
            return None

        variables = {
            "client_name": state.client_name or self.settings.default_client_name,
            "out_of_scope_count": scope_requests or max(1, round(rate * 10)),
        }
        return Recommendation(
            category=RecommendationCategory.SCOPE_CREEP_CHANGE_REQUEST,
            priority=5 if rate >= 0.35 or scope_requests >= 3 else 4,
            title="Raise a change request for out-of-scope work",
            rationale=f"{scope_requests} out-of-scope request(s) in the last 7 days; rate={rate:.2f}.",
            evidence_refs=evidence,
            suggested_template_key=TemplateKey.SCOPE_CREEP,
            suggested_template=await self._template(TemplateKey.SCOPE_CREEP, variables),
            signal_snapshot={"scope_creep_rate": _signal_snapshot(scope)},
            score_snapshot={
                "project_health": _score_snapshot(score_map.get(ScoreType.PROJECT_HEALTH)),
                "risk": _score_snapshot(score_map.get(ScoreType.RISK)),
            },
            dedupe_key=recommendation_dedupe_key(RecommendationCategory.SCOPE_CREEP_CHANGE_REQUEST, {
                "scope_requests_7d": scope_requests,
                "scope_creep_rate": f"{rate:.2f}",
            }),
        )

    async def _delivery_risk(self, signal_map, score_map, state, now) -> Optional[Recommendation]:
        blockers = signal_map.get(SignalKey.BLOCKERS_AGE)
        stage = signal_map.get(SignalKey.STAGE_OVERDUE)
        blockers_count = int(_detail(blockers, "open_blockers", 0) or 0)
        blockers_age = _value(blockers)
        stage_overdue = _value(stage)
        blocker_pressure = blockers_count > 3 and blockers_age > 5
        if not blocker_pressure and stage_overdue <= 1:
            return None
        evidence = self._evidence(_refs(blockers, stage))
        if not evidence:
            return None

        variables = {
            "project_name": state.project_name or self.settings.default_project_name,
            "blockers_count": blockers_count,
            "blockers_age_days": f"{blockers_age:.1f}",
            "stage_overdue_days": f"{stage_overdue:.1f}",
        }
        if blockers_count > 0:
            rationale = f"{blockers_count} open blocker(s), average age {blockers_age:.1f} days."
        else:
            rationale = f"Stage is {stage_overdue:.1f} days overdue; the plan needs revisiting."

        return Recommendation(
            category=RecommendationCategory.DELIVERY_RISK,
            priority=5 if blocker_pressure else 4,
            title="Reduce delivery risk: re-plan and escalate blockers",
            rationale=rationale,
            evidence_refs=evidence,
            suggested_template_key=TemplateKey.DELIVERY,
            suggested_template=await self._template(TemplateKey.DELIVERY, variables),
            signal_snapshot={
                "blockers_age": _signal_snapshot(blockers),
                "stage_overdue": _signal_snapshot(stage),
            },
            score_snapshot={
                "project_health": _score_snapshot(score_map.get(ScoreType.PROJECT_HEALTH)),
                "risk": _score_snapshot(score_map.get(ScoreType.RISK)),
            },
            dedupe_key=recommendation_dedupe_key(RecommendationCategory.DELIVERY_RISK, {
                "blockers_count": blockers_count,
                "blockers_age_days": f"{blockers_age:.1f}",
                "stage_overdue_days": f"{stage_overdue:.1f}",
            }),
        )

    async def _finance_risk(self, signal_map, score_map, state, now) -> Optional[Recommendation]:
        burn = signal_map.get(SignalKey.BUDGET_BURN_RATE)
        margin = signal_map.get(SignalKey.MARGIN_RISK)
        burn_rate = _value(burn)
        margin_risk = _value(margin)
        if burn_rate <= 1.1 and margin_risk < 0.25:
            return None
        evidence = self._evidence(_refs(burn, margin))
        if not evidence:
            return None

        variables = {
            "client_name": state.client_name or self.settings.default_client_name,
            "burn_rate": f"{burn_rate:.2f}",
            "margin_risk_pct": f"{margin_risk * 100:.1f}",
        }
        return Recommendation(
            category=RecommendationCategory.FINANCE_RISK,
            priority=5 if burn_rate >= 1.2 or margin_risk >= 0.4 else 4,
            title="Run a financial review of margin and burn",
            rationale=f"Burn rate={burn_rate:.2f}x, margin risk={margin_risk * 100:.1f}%.",
            evidence_refs=evidence,
            suggested_template_key=TemplateKey.FINANCE,
            suggested_template=await self._template(TemplateKey.FINANCE, variables),
            signal_snapshot={
                "budget_burn_rate": _signal_snapshot(burn),
                "margin_risk": _signal_snapshot(margin),
            },
            score_snapshot={
                "risk": _score_snapshot(score_map.get(ScoreType.RISK)),
                "client_value": _score_snapshot(score_map.get(ScoreType.CLIENT_VALUE)),
            },
            dedupe_key=recommendation_dedupe_key(RecommendationCategory.FINANCE_RISK, {
                "burn_rate": f"{burn_rate:.2f}",
                "margin_risk": f"{margin_risk:.2f}",
            }),
        )

    async def _upsell_opportunity(self, signal_map, score_map, state, now) -> Optional[Recommendation]:
        upsell = score_map.get(ScoreType.UPSELL_LIKELIHOOD)
        upsell_score = float(upsell.score) if upsell is not None else 0.0
        need_count_7d = count_in_last_days(state.needs.events, now, 7)
        if upsell_score < 65 or need_count_7d <= 0:
            return None
        need_evidence = dedupe_evidence_refs(state.needs.evidence, self.settings.signal_evidence_limit)
        evidence = self._evidence([*need_evidence, *(upsell.evidence_refs if upsell else [])])
        if not evidence:
            return None

        variables = {
            "client_name": state.client_name or self.settings.default_client_name,
            "need_signal": f"{need_count_7d} need signal(s) detected in the last 7 days",
            "expected_value": "faster time-to-value and lower operational risk",
        }
        return Recommendation(
            category=RecommendationCategory.UPSELL_OPPORTUNITY,
            priority=5 if upsell_score >= 80 else 4,
            title="Prepare an upsell offer for the detected need",
            rationale=(
                f"Upsell likelihood={upsell_score:.1f} with {need_count_7d} confirmed need signal(s)."
            ),
            evidence_refs=evidence,
            suggested_template_key=TemplateKey.UPSELL,
            suggested_template=await self._template(TemplateKey.UPSELL, variables),
            signal_snapshot={
                "scope_creep_rate": _signal_snapshot(signal_map.get(SignalKey.SCOPE_CREEP_RATE)),
            },
            score_snapshot={
                "upsell_likelihood": _score_snapshot(upsell),
                "client_value": _score_snapshot(score_map.get(ScoreType.CLIENT_VALUE)),
            },
            dedupe_key=recommendation_dedupe_key(RecommendationCategory.UPSELL_OPPORTUNITY, {
                "upsell_likelihood": f"{upsell_score:.1f}",
                "need_count_7d": need_count_7d,
            }),
        )


async def generate_recommendations(
    signals: Optional[Iterable[Union[Signal, dict]]] = None,
    scores: ScoresLike = None,
    state: Optional[Union[SignalState, dict]] = None,
    now: Optional[datetime] = None,
    llm_generate_template: Optional[TemplateGenerator] = None,
    settings: Optional[KagSettings] = None,
) -> list[Recommendation]:
    engine = RecommendationEngine(settings=settings, llm_generate_template=llm_generate_template)
    return await engine.generate_recommendations(signals=signals, scores=scores, state=state, now=now)
