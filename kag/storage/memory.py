"""
In-memory state store.

Keeps state as its JSON-serialized form so every load goes through the same
round trip a database-backed store would. Suitable for tests, the replay
script and single-process deployments.
"""

import json
import threading
from datetime import datetime
from typing import Iterable, Optional, Union

import structlog

from kag.models.enums import RecommendationStatus, ScoreType, SignalKey
from kag.models.events import KagEvent, as_event
from kag.models.recommendations import Recommendation, StoredRecommendation
from kag.models.scores import Score
from kag.models.signals import Signal
from kag.models.state import SignalState

from .base import ProjectScope, SignalStateStore, StateStoreError

logger = structlog.get_logger(__name__)


class InMemorySignalStateStore(SignalStateStore):
    """Thread-safe dictionary-backed implementation of SignalStateStore."""

    def __init__(self):
        self._lock = threading.Lock()
        self._states: dict[ProjectScope, str] = {}
        self._events: dict[ProjectScope, list[KagEvent]] = {}
        self._signals: dict[ProjectScope, dict[SignalKey, tuple[Signal, datetime]]] = {}
        self._scores: dict[ProjectScope, dict[ScoreType, Score]] = {}
        self._recommendations: dict[ProjectScope, dict[str, StoredRecommendation]] = {}

    def load(self, scope: ProjectScope, strict: bool = False) -> Optional[SignalState]:
        with self._lock:
            payload = self._states.get(scope)
        if payload is None:
            if strict:
                raise StateStoreError(f"No signal state stored for scope {scope}")
            return None
        return SignalState.model_validate(json.loads(payload))

    def save(self, scope: ProjectScope, state: SignalState) -> None:
        payload = json.dumps(state.model_dump(mode="json"))
        with self._lock:
            self._states[scope] = payload
        logger.debug(
            "signal_state_saved",
            scope=str(scope),
            last_event_id=state.cursor.last_event_id,
        )

    def append_events(self, scope: ProjectScope, events: Iterable[KagEvent]) -> int:
        incoming = [as_event(event) for event in events]
        with self._lock:
            log = self._events.setdefault(scope, [])
            log.extend(incoming)
        return len(incoming)

    def list_events_after(
        self, scope: ProjectScope, last_event_id: int, limit: int = 500
    ) -> list[KagEvent]:
        with self._lock:
            log = list(self._events.get(scope, []))
        newer = [
            event for event in log
            if event.numeric_id is not None and event.numeric_id > int(last_event_id or 0)
        ]
        newer.sort(key=lambda event: event.numeric_id)
        return newer[: max(0, limit)]

    def save_signals(self, scope: ProjectScope, signals: Iterable[Signal], computed_at: datetime) -> int:
        incoming = [signal.model_copy(deep=True) for signal in signals]
        with self._lock:
            stored = self._signals.setdefault(scope, {})
            for signal in incoming:
                stored[signal.signal_key] = (signal, computed_at)
        return len(incoming)

    def save_scores(self, scope: ProjectScope, scores: Iterable[Score]) -> int:
        incoming = [score.model_copy(deep=True) for score in scores]
        with self._lock:
            stored = self._scores.setdefault(scope, {})
            for score in incoming:
                stored[score.score_type] = score
        return len(incoming)

    def upsert_recommendations(
        self,
        scope: ProjectScope,
        recommendations: Iterable[Recommendation],
        updated_at: datetime,
    ) -> int:
        touched = 0
        with self._lock:
            stored = self._recommendations.setdefault(scope, {})
            for recommendation in recommendations:
                existing = stored.get(recommendation.dedupe_key)
                stored[recommendation.dedupe_key] = StoredRecommendation(
                    recommendation=recommendation.model_copy(deep=True),
                    status=RecommendationStatus.PROPOSED,
                    created_at=existing.created_at if existing else updated_at,
                    updated_at=updated_at,
                )
                touched += 1
        logger.debug("recommendations_upserted", scope=str(scope), touched=touched)
        return touched

    def list_signals(self, scope: ProjectScope, limit: int = 100) -> list[Signal]:
        with self._lock:
            rows = list(self._signals.get(scope, {}).values())
        rows.sort(key=lambda row: row[1], reverse=True)
        return [signal for signal, _ in rows[: _bounded(limit)]]

    def list_scores(self, scope: ProjectScope, limit: int = 20) -> list[Score]:
        with self._lock:
            rows = list(self._scores.get(scope, {}).values())
        rows.sort(key=lambda score: score.computed_at, reverse=True)
        return rows[: _bounded(limit)]

    def list_recommendations(
        self,
        scope: ProjectScope,
        status: Optional[Union[RecommendationStatus, str]] = None,
        limit: int = 100,
    ) -> list[StoredRecommendation]:
        wanted = str(getattr(status, "value", status) or "").strip().lower()
        with self._lock:
            rows = list(self._recommendations.get(scope, {}).values())
        if wanted:
            rows = [row for row in rows if row.status.value == wanted]
        rows.sort(key=lambda row: (row.priority, row.updated_at), reverse=True)
        return rows[: _bounded(limit)]


def _bounded(limit: int, low: int = 1, high: int = 500) -> int:
    return max(low, min(high, int(limit)))
