"""
Signal Engine - incremental event folding and signal derivation.

Folds an unordered batch of domain events into a versioned SignalState and
derives ten threshold-classified signals from it:

- Communication: waiting_on_client_days, response_time_avg, sentiment_trend
- Delivery: blockers_age, stage_overdue, agreement_overdue_count
- Commercial: scope_creep_rate, budget_burn_rate, margin_risk
- Engagement: activity_drop

Folding is a single-step state transition per event. Batches are first put
in canonical order (numeric id, then timestamp) so that replaying the same
events in any input order yields the same state. Timestamp-bearing lists are
pruned to rolling windows after every step so old data cannot bias rates.

The engine never raises for malformed payload fields; missing numbers fall
back to zero and missing identifiers turn the event into a no-op.
"""

import json
from datetime import date, datetime, timedelta, timezone
from functools import cmp_to_key
from typing import Any, Callable, Iterable, Optional, Union

import structlog

from kag.config import KagSettings, get_settings
from kag.models.enums import Comparator, EventType, SignalKey, SignalStatus, StageStatus
from kag.models.events import KagEvent, as_event
from kag.models.evidence import EvidenceRef, dedupe_evidence_refs, merge_evidence
from kag.models.signals import Signal
from kag.models.state import AgreementEntry, BlockerEntry, SignalState
from kag.utils.timeutils import (
    clamp,
    count_in_last_days,
    day_key,
    diff_days,
    diff_minutes,
    to_datetime,
    to_float,
    utc_now,
)

logger = structlog.get_logger(__name__)


# ============================================================================
# Signal Definitions - thresholds and comparators
# ============================================================================

SIGNAL_DEFINITIONS = {
    SignalKey.WAITING_ON_CLIENT_DAYS: {"warn": 2, "critical": 4, "comparator": Comparator.HIGH},
    SignalKey.RESPONSE_TIME_AVG: {"warn": 240, "critical": 720, "comparator": Comparator.HIGH},
    SignalKey.BLOCKERS_AGE: {"warn": 3, "critical": 5, "comparator": Comparator.HIGH},
    SignalKey.STAGE_OVERDUE: {"warn": 1, "critical": 3, "comparator": Comparator.HIGH},
    SignalKey.AGREEMENT_OVERDUE_COUNT: {"warn": 1, "critical": 2, "comparator": Comparator.HIGH},
    # More negative is worse
    SignalKey.SENTIMENT_TREND: {"warn": -0.15, "critical": -0.3, "comparator": Comparator.NEGATIVE},
    SignalKey.SCOPE_CREEP_RATE: {"warn": 0.2, "critical": 0.35, "comparator": Comparator.HIGH},
    SignalKey.BUDGET_BURN_RATE: {"warn": 1.1, "critical": 1.2, "comparator": Comparator.HIGH},
    SignalKey.MARGIN_RISK: {"warn": 0.25, "critical": 0.4, "comparator": Comparator.HIGH},
    SignalKey.ACTIVITY_DROP: {"warn": 0.3, "critical": 0.5, "comparator": Comparator.HIGH},
}

CLIENT_SENDERS = frozenset({"client", "customer"})
TEAM_SENDERS = frozenset({"team", "agent", "pm"})

BUDGET_ENTRY_TYPES = frozenset({"planned_budget", "budget_plan", "budget"})
COST_ENTRY_TYPES = frozenset({"cost", "expense"})
REVENUE_ENTRY_TYPES = frozenset({"revenue", "invoice", "payment"})

# Returned when cost has been logged against a project with no budget
UNBUDGETED_BURN_RATE = 1.5

# Margin at or above this level carries no margin risk
TARGET_MARGIN = 0.35

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FALSE_STRINGS = frozenset({"", "0", "false", "no", "off"})

StateLike = Union[SignalState, dict, None]
EventLike = Union[KagEvent, dict]


def signal_definition(signal_key: Union[SignalKey, str]) -> Optional[dict]:
    """Return a copy of the threshold definition for a signal, or None."""
    try:
        key = SignalKey(signal_key)
    except ValueError:
        return None
    return dict(SIGNAL_DEFINITIONS[key])


def rate_status(signal_key: SignalKey, value: float) -> SignalStatus:
    """Classify a signal value against its warn/critical thresholds."""
    definition = SIGNAL_DEFINITIONS.get(signal_key)
    if not definition:
        return SignalStatus.OK
    if definition["comparator"] == Comparator.NEGATIVE:
        if value <= definition["critical"]:
            return SignalStatus.CRITICAL
        if value <= definition["warn"]:
            return SignalStatus.WARN
        return SignalStatus.OK
    if value >= definition["critical"]:
        return SignalStatus.CRITICAL
    if value >= definition["warn"]:
        return SignalStatus.WARN
    return SignalStatus.OK


def map_signals_by_key(signals: Optional[Iterable[Any]]) -> dict[SignalKey, Signal]:
    """Index signals by key. Later duplicates win; unkeyed entries are skipped."""
    out: dict[SignalKey, Signal] = {}
    for item in signals or []:
        if isinstance(item, dict):
            if not item.get("signal_key"):
                continue
            item = Signal.model_validate(item)
        if not isinstance(item, Signal):
            continue
        out[item.signal_key] = item
    return out


def _canonical_order(left: KagEvent, right: KagEvent) -> int:
    left_id, right_id = left.numeric_id, right.numeric_id
    if left_id is not None and right_id is not None and left_id != right_id:
        return -1 if left_id < right_id else 1
    left_ts = left.event_ts or _EPOCH
    right_ts = right.event_ts or _EPOCH
    return (left_ts > right_ts) - (left_ts < right_ts)


def _total_key(event: KagEvent) -> tuple:
    return (
        event.event_ts or _EPOCH,
        event.numeric_id is None,
        event.numeric_id or 0,
        str(event.id),
        event.event_type,
        json.dumps([event.payload, event.evidence_refs], sort_keys=True, default=str),
    )


def sort_events(events: Iterable[EventLike]) -> list[KagEvent]:
    """
    Put events in canonical order: numeric id ascending, then timestamp.

    The pairwise rule is not transitive once id-less events sit between
    numbered ones, so events are first put in a total order. The result
    then depends only on the set of events, never on how they arrived.
    """
    events = sorted((as_event(e) for e in events or []), key=_total_key)
    return sorted(events, key=cmp_to_key(_canonical_order))


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _first_text(*values: Any) -> Optional[str]:
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


class SignalEngine:
    """
    Folds events into SignalState and derives signals from it.

    Stateless apart from its settings; every method is parameterized by the
    state and the evaluation instant it operates on.

    Attributes:
        settings: Retention windows, evidence caps and sentiment alpha

    Example:
        >>> engine = SignalEngine()
        >>> result = engine.apply_events_incrementally(None, events, now=now)
        >>> signals = engine.compute_signals_from_state(result["state"], now=now)
    """

    def __init__(self, settings: Optional[KagSettings] = None):
        self.settings = settings or get_settings()
        self._handlers: dict[EventType, Callable[[SignalState, KagEvent, datetime, list[EvidenceRef]], None]] = {
            EventType.MESSAGE_SENT: self._apply_message,
            EventType.TASK_BLOCKED: self._apply_blocker,
            EventType.BLOCKER_RESOLVED: self._apply_blocker,
            EventType.STAGE_STARTED: self._apply_stage,
            EventType.STAGE_COMPLETED: self._apply_stage,
            EventType.AGREEMENT_CREATED: self._apply_agreement,
            EventType.APPROVAL_APPROVED: self._apply_agreement,
            EventType.SCOPE_CHANGE_REQUESTED: self._apply_scope,
            EventType.FINANCE_ENTRY_CREATED: self._apply_finance,
            EventType.NEED_DETECTED: self._apply_need,
            EventType.DECISION_MADE: self._apply_activity_only,
            EventType.OFFER_CREATED: self._apply_activity_only,
            EventType.TASK_CREATED: self._apply_activity_only,
        }

    # =========================================================================
    # State lifecycle
    # =========================================================================

    def create_initial_signal_state(self, now: Optional[datetime] = None) -> SignalState:
        """Zero-valued state with the cursor timestamp set to ``now``."""
        state = SignalState()
        state.sentiment.alpha = self.settings.sentiment_alpha
        state.cursor.last_event_ts = to_datetime(now, utc_now())
        return state

    def apply_event_to_signal_state(
        self,
        state: Optional[SignalState],
        event: EventLike,
        now: Optional[datetime] = None,
    ) -> SignalState:
        """
        Fold a single event into ``state`` in place and return it.

        Args:
            state: State to mutate (a fresh one is created when None)
            event: Event model or raw mapping
            now: Evaluation instant used for pruning; defaults to event time

        Returns:
            The same state object, updated
        """
        now = to_datetime(now)
        if state is None:
            state = self.create_initial_signal_state(now)
        event = as_event(event)
        if not event.event_type:
            return state

        occurred_at = event.event_ts or now or utc_now()
        evidence = dedupe_evidence_refs(event.evidence_refs, self.settings.event_evidence_limit)

        handler = self._handlers.get(event.kind) if event.kind else None
        if handler is None:
            logger.debug("unknown_event_type_ignored", event_type=event.event_type, event_id=event.id)
        else:
            handler(state, event, occurred_at, evidence)

        event_id = event.numeric_id
        if event_id is not None and event_id > int(state.cursor.last_event_id or 0):
            state.cursor.last_event_id = event_id
        state.cursor.last_event_ts = occurred_at

        self._prune(state, now or occurred_at)
        return state

    def apply_events_incrementally(
        self,
        previous_state: StateLike,
        events: Iterable[EventLike],
        now: Optional[datetime] = None,
    ) -> dict:
        """
        Fold a batch of events into a copy of ``previous_state``.

        The caller's state is never mutated, which keeps retries and replays
        safe. Events are folded in canonical order regardless of input order.

        Returns:
            {"state": SignalState, "processed_events": int, "last_event_id": int}
        """
        now = to_datetime(now)
        if previous_state is None:
            state = self.create_initial_signal_state(now)
        elif isinstance(previous_state, SignalState):
            state = previous_state.model_copy(deep=True)
        else:
            state = SignalState.model_validate(previous_state)

        ordered = sort_events(events)
        for event in ordered:
            self.apply_event_to_signal_state(state, event, now=now)

        logger.info(
            "signal_state_updated",
            processed_events=len(ordered),
            last_event_id=state.cursor.last_event_id,
            open_blockers=len(state.blockers.open),
            open_agreements=len(state.agreements.open),
        )

        return {
            "state": state,
            "processed_events": len(ordered),
            "last_event_id": int(state.cursor.last_event_id or 0),
        }

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _attach_evidence(
        self, state: SignalState, signal_keys: Iterable[SignalKey], refs: list[EvidenceRef]
    ) -> None:
        if not refs:
            return
        limit = self.settings.signal_evidence_limit
        for signal_key in signal_keys:
            bucket = state.evidence_by_signal.get(signal_key.value, [])
            state.evidence_by_signal[signal_key.value] = merge_evidence(bucket, refs, limit)

    def _increment_activity(self, state: SignalState, occurred_at: datetime) -> None:
        key = day_key(occurred_at)
        state.activity.daily_counts[key] = int(state.activity.daily_counts.get(key, 0)) + 1

    def _push_timestamp(self, items: list[datetime], occurred_at: datetime) -> None:
        items.append(occurred_at)
        overflow = len(items) - self.settings.timestamp_list_max_items
        if overflow > 0:
            del items[:overflow]

    def _apply_message(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        payload = event.payload
        sender = str(payload.get("sender") or payload.get("sender_type") or "").strip().lower()

        if sender in CLIENT_SENDERS:
            state.waiting.last_client_message_at = occurred_at
            self._push_timestamp(state.response.pending_client_messages, occurred_at)
            self._push_timestamp(state.scope.client_requests, occurred_at)
            self._attach_evidence(
                state, [SignalKey.WAITING_ON_CLIENT_DAYS, SignalKey.RESPONSE_TIME_AVG], evidence
            )
        elif sender in TEAM_SENDERS:
            state.waiting.last_team_message_at = occurred_at
            pending = state.response.pending_client_messages
            if pending:
                # FIFO: the oldest unanswered client message gets this reply
                oldest = pending.pop(0)
                state.response.total_minutes += diff_minutes(occurred_at, oldest)
                state.response.samples += 1
                self._attach_evidence(state, [SignalKey.RESPONSE_TIME_AVG], evidence)
            self._attach_evidence(state, [SignalKey.WAITING_ON_CLIENT_DAYS], evidence)

        sentiment_score = to_float(payload.get("sentiment_score"), None)
        if sentiment_score is not None:
            bounded = clamp(sentiment_score, -1.0, 1.0)
            sentiment = state.sentiment
            alpha = clamp(sentiment.alpha or self.settings.sentiment_alpha, 0.05, 0.9)
            sentiment.prev_ewma = sentiment.ewma
            if sentiment.samples == 0:
                sentiment.ewma = bounded
            else:
                sentiment.ewma = clamp(alpha * bounded + (1 - alpha) * sentiment.ewma, -1.0, 1.0)
            sentiment.samples += 1
            self._attach_evidence(state, [SignalKey.SENTIMENT_TREND], evidence)

        self._increment_activity(state, occurred_at)
        self._attach_evidence(state, [SignalKey.ACTIVITY_DROP], evidence)

    def _apply_blocker(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        payload = event.payload
        blocker_id = _first_text(payload.get("blocker_id"), payload.get("task_id"), event.subject_node_id)
        if not blocker_id:
            return
        if event.kind == EventType.TASK_BLOCKED:
            if blocker_id not in state.blockers.open:
                state.blockers.open[blocker_id] = BlockerEntry(opened_at=occurred_at)
        else:
            state.blockers.open.pop(blocker_id, None)
        self._attach_evidence(state, [SignalKey.BLOCKERS_AGE], evidence)
        self._increment_activity(state, occurred_at)

    def _apply_stage(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        payload = event.payload
        stage = state.stage
        if event.kind == EventType.STAGE_STARTED:
            stage.stage_id = _first_text(payload.get("stage_id"), event.subject_node_id, stage.stage_id)
            stage.stage_name = _first_text(payload.get("stage_name"), stage.stage_name)
            stage.status = StageStatus.ACTIVE
            stage.started_at = occurred_at
            stage.due_at = to_datetime(payload.get("due_at"))
            stage.approval_pending = _truthy(payload.get("approval_pending")) or _truthy(
                payload.get("requires_approval")
            )
        else:
            stage.status = StageStatus.COMPLETED
            stage.approval_pending = False
        self._attach_evidence(state, [SignalKey.STAGE_OVERDUE], evidence)
        self._increment_activity(state, occurred_at)

    def _apply_agreement(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        payload = event.payload
        agreement_id = _first_text(payload.get("agreement_id"), event.subject_node_id)
        if event.kind == EventType.AGREEMENT_CREATED:
            if not agreement_id:
                return
            state.agreements.open[agreement_id] = AgreementEntry(
                due_at=to_datetime(payload.get("due_at")),
                created_at=occurred_at,
            )
        else:
            if agreement_id:
                state.agreements.open.pop(agreement_id, None)
            state.stage.approval_pending = False
        self._attach_evidence(state, [SignalKey.AGREEMENT_OVERDUE_COUNT], evidence)
        self._increment_activity(state, occurred_at)

    def _apply_scope(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        self._push_timestamp(state.scope.requests, occurred_at)
        self._attach_evidence(state, [SignalKey.SCOPE_CREEP_RATE], evidence)
        self._increment_activity(state, occurred_at)

    def _apply_finance(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        payload = event.payload
        entry_type = str(payload.get("entry_type") or payload.get("kind") or "").strip().lower()
        amount = abs(to_float(payload.get("amount"), 0.0))

        if entry_type in BUDGET_ENTRY_TYPES:
            state.finance.planned_budget += amount
        elif entry_type in COST_ENTRY_TYPES:
            state.finance.actual_cost += amount
        elif entry_type in REVENUE_ENTRY_TYPES:
            state.finance.revenue += amount

        self._attach_evidence(state, [SignalKey.BUDGET_BURN_RATE, SignalKey.MARGIN_RISK], evidence)
        self._increment_activity(state, occurred_at)

    def _apply_need(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        self._push_timestamp(state.needs.events, occurred_at)
        state.needs.evidence = merge_evidence(
            state.needs.evidence, evidence, self.settings.signal_evidence_limit
        )
        self._increment_activity(state, occurred_at)
        self._attach_evidence(state, [SignalKey.ACTIVITY_DROP], evidence)

    def _apply_activity_only(
        self, state: SignalState, event: KagEvent, occurred_at: datetime, evidence: list[EvidenceRef]
    ) -> None:
        self._increment_activity(state, occurred_at)
        self._attach_evidence(state, [SignalKey.ACTIVITY_DROP], evidence)

    # =========================================================================
    # Pruning
    # =========================================================================

    def _prune(self, state: SignalState, now: datetime) -> None:
        settings = self.settings
        timestamp_cutoff = now - timedelta(days=settings.timestamp_retention_days)
        for items in (
            state.response.pending_client_messages,
            state.scope.requests,
            state.scope.client_requests,
            state.needs.events,
        ):
            items[:] = [ts for ts in items if ts >= timestamp_cutoff]

        # A bucket is kept only while its UTC midnight is inside the window.
        activity_cutoff = now - timedelta(days=settings.activity_retention_days)
        for key in list(state.activity.daily_counts):
            try:
                bucket_day = date.fromisoformat(key)
            except ValueError:
                bucket_day = None
            if bucket_day is None or to_datetime(bucket_day) < activity_cutoff:
                del state.activity.daily_counts[key]

        open_cutoff = now - timedelta(days=settings.open_item_retention_days)
        for blocker_id, blocker in list(state.blockers.open.items()):
            if blocker.opened_at < open_cutoff:
                del state.blockers.open[blocker_id]
        for agreement_id, agreement in list(state.agreements.open.items()):
            if agreement.created_at < open_cutoff:
                del state.agreements.open[agreement_id]

    # =========================================================================
    # Signal derivation
    # =========================================================================

    def _build_signal(
        self, state: SignalState, signal_key: SignalKey, value: float, details: dict
    ) -> Signal:
        definition = SIGNAL_DEFINITIONS[signal_key]
        return Signal(
            signal_key=signal_key,
            value=round(float(value), 4),
            status=rate_status(signal_key, value),
            threshold_warn=definition["warn"],
            threshold_critical=definition["critical"],
            details=details,
            evidence_refs=dedupe_evidence_refs(
                state.evidence_by_signal.get(signal_key.value, []),
                self.settings.signal_evidence_limit,
            ),
        )

    def compute_signals_from_state(
        self, state: StateLike, now: Optional[datetime] = None
    ) -> list[Signal]:
        """
        Derive the ten signals from ``state`` without mutating it.

        Args:
            state: Folded state (None is treated as a fresh state)
            now: Evaluation instant

        Returns:
            Signals in fixed key order
        """
        now = to_datetime(now, utc_now())
        if state is None:
            state = self.create_initial_signal_state(now)
        elif isinstance(state, dict):
            state = SignalState.model_validate(state)

        last_client_at = state.waiting.last_client_message_at
        last_team_at = state.waiting.last_team_message_at
        waiting_on_client = bool(last_team_at and (not last_client_at or last_team_at > last_client_at))
        waiting_days = diff_days(now, last_team_at) if waiting_on_client else 0.0

        samples = int(state.response.samples or 0)
        total_minutes = float(state.response.total_minutes or 0.0)
        avg_response_minutes = total_minutes / samples if samples > 0 else 0.0

        open_blockers = list(state.blockers.open.values())
        blocker_count = len(open_blockers)
        blockers_age_days = (
            sum(diff_days(now, blocker.opened_at) for blocker in open_blockers) / blocker_count
            if blocker_count
            else 0.0
        )

        stage = state.stage
        stage_overdue_days = 0.0
        if stage.status == StageStatus.ACTIVE and stage.due_at and now > stage.due_at:
            stage_overdue_days = diff_days(now, stage.due_at)

        open_agreements = list(state.agreements.open.values())
        agreement_overdue_count = sum(
            1 for agreement in open_agreements if agreement.due_at and agreement.due_at < now
        )

        sentiment_trend = float(state.sentiment.ewma or 0.0) - float(state.sentiment.prev_ewma or 0.0)

        scope_requests_7d = count_in_last_days(state.scope.requests, now, 7)
        client_requests_7d = count_in_last_days(state.scope.client_requests, now, 7)
        scope_creep_rate = scope_requests_7d / max(1, client_requests_7d)

        planned_budget = float(state.finance.planned_budget or 0.0)
        actual_cost = float(state.finance.actual_cost or 0.0)
        revenue = float(state.finance.revenue or 0.0)
        if planned_budget > 0:
            budget_burn_rate = actual_cost / planned_budget
        elif actual_cost > 0:
            budget_burn_rate = UNBUDGETED_BURN_RATE
        else:
            budget_burn_rate = 0.0

        margin_risk = 0.0
        if revenue <= 0 and actual_cost > 0:
            margin_risk = 1.0
        elif revenue > 0:
            margin = (revenue - actual_cost) / revenue
            margin_risk = clamp((TARGET_MARGIN - margin) / TARGET_MARGIN, 0.0, 1.0)

        activity_current_7d = self._sum_activity(state.activity.daily_counts, 0, 6, now)
        activity_prev_7d = self._sum_activity(state.activity.daily_counts, 7, 13, now)
        activity_drop = (
            clamp((activity_prev_7d - activity_current_7d) / activity_prev_7d, 0.0, 1.0)
            if activity_prev_7d > 0
            else 0.0
        )

        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return [
            self._build_signal(state, SignalKey.WAITING_ON_CLIENT_DAYS, waiting_days, {
                "waiting_on_client": waiting_on_client,
                "last_client_message_at": iso(last_client_at),
                "last_team_message_at": iso(last_team_at),
                "stage_name": stage.stage_name,
                "approval_pending": bool(stage.approval_pending),
            }),
            self._build_signal(state, SignalKey.RESPONSE_TIME_AVG, avg_response_minutes, {
                "samples": samples,
                "total_minutes": round(total_minutes, 2),
            }),
            self._build_signal(state, SignalKey.BLOCKERS_AGE, blockers_age_days, {
                "open_blockers": blocker_count,
            }),
            self._build_signal(state, SignalKey.STAGE_OVERDUE, stage_overdue_days, {
                "stage_id": stage.stage_id,
                "stage_name": stage.stage_name,
                "due_at": iso(stage.due_at),
                "stage_status": stage.status.value,
                "approval_pending": bool(stage.approval_pending),
            }),
            self._build_signal(state, SignalKey.AGREEMENT_OVERDUE_COUNT, agreement_overdue_count, {
                "open_agreements": len(open_agreements),
            }),
            self._build_signal(state, SignalKey.SENTIMENT_TREND, sentiment_trend, {
                "ewma": round(float(state.sentiment.ewma or 0.0), 4),
                "prev_ewma": round(float(state.sentiment.prev_ewma or 0.0), 4),
                "samples": int(state.sentiment.samples or 0),
            }),
            self._build_signal(state, SignalKey.SCOPE_CREEP_RATE, scope_creep_rate, {
                "scope_requests_7d": scope_requests_7d,
                "client_requests_7d": client_requests_7d,
            }),
            self._build_signal(state, SignalKey.BUDGET_BURN_RATE, budget_burn_rate, {
                "planned_budget": round(planned_budget, 2),
                "actual_cost": round(actual_cost, 2),
            }),
            self._build_signal(state, SignalKey.MARGIN_RISK, margin_risk, {
                "revenue": round(revenue, 2),
                "actual_cost": round(actual_cost, 2),
            }),
            self._build_signal(state, SignalKey.ACTIVITY_DROP, activity_drop, {
                "activity_current_7d": activity_current_7d,
                "activity_prev_7d": activity_prev_7d,
            }),
        ]

    @staticmethod
    def _sum_activity(daily_counts: dict[str, int], from_offset: int, to_offset: int, now: datetime) -> int:
        total = 0
        for offset in range(from_offset, to_offset + 1):
            total += int(daily_counts.get(day_key(now - timedelta(days=offset)), 0))
        return total


# ============================================================================
# Module-level API
# ============================================================================


def create_initial_signal_state(
    now: Optional[datetime] = None, settings: Optional[KagSettings] = None
) -> SignalState:
    return SignalEngine(settings).create_initial_signal_state(now)


def apply_event_to_signal_state(
    state: Optional[SignalState],
    event: EventLike,
    now: Optional[datetime] = None,
    settings: Optional[KagSettings] = None,
) -> SignalState:
    return SignalEngine(settings).apply_event_to_signal_state(state, event, now=now)


def apply_events_incrementally(
    previous_state: StateLike,
    events: Iterable[EventLike],
    now: Optional[datetime] = None,
    settings: Optional[KagSettings] = None,
) -> dict:
    return SignalEngine(settings).apply_events_incrementally(previous_state, events, now=now)


def compute_signals_from_state(
    state: StateLike,
    now: Optional[datetime] = None,
    settings: Optional[KagSettings] = None,
) -> list[Signal]:
    return SignalEngine(settings).compute_signals_from_state(state, now=now)
