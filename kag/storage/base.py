"""
Abstract state-store interface for KAG signal state and event logs.

The engines never persist anything themselves. A store keeps, per
(project, account) scope, the last SignalState, the append-only event log
the state is folded from, the latest signals and scores, and the
recommendations emitted so far (one row per dedupe key). Implementations
must round-trip SignalState losslessly through its JSON form.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Union

from kag.models.enums import RecommendationStatus
from kag.models.events import KagEvent
from kag.models.recommendations import Recommendation, StoredRecommendation
from kag.models.scores import Score
from kag.models.signals import Signal
from kag.models.state import SignalState


class StateStoreError(Exception):
    """Raised when a store cannot satisfy a request."""

    pass


@dataclass(frozen=True)
class ProjectScope:
    """Tenant isolation key: all state and events belong to one scope."""

    project_id: str
    account_scope_id: str

    def __str__(self) -> str:
        return f"{self.account_scope_id}/{self.project_id}"


class SignalStateStore(ABC):
    """
    Persistence contract used by KagService.

    Implementations should ensure:
    - Strict isolation between scopes
    - Saved state is a snapshot (later mutation of the caller's object has no effect)
    - Events are returned in ascending id order
    """

    @abstractmethod
    def load(self, scope: ProjectScope, strict: bool = False) -> Optional[SignalState]:
        """
        Load the last saved state for ``scope``.

        Args:
            scope: Project scope
            strict: Raise StateStoreError instead of returning None when missing

        Returns:
            Stored state or None
        """
        pass

    @abstractmethod
    def save(self, scope: ProjectScope, state: SignalState) -> None:
        pass

    @abstractmethod
    def append_events(self, scope: ProjectScope, events: Iterable[KagEvent]) -> int:
        """Append events to the scope's log; returns how many were stored."""
        pass

    @abstractmethod
    def list_events_after(
        self, scope: ProjectScope, last_event_id: int, limit: int = 500
    ) -> list[KagEvent]:
        """Events with numeric id greater than ``last_event_id``, ascending."""
        pass

    @abstractmethod
    def save_signals(self, scope: ProjectScope, signals: Iterable[Signal], computed_at: datetime) -> int:
        """Replace the stored value of each signal key; returns rows touched."""
        pass

    @abstractmethod
    def save_scores(self, scope: ProjectScope, scores: Iterable[Score]) -> int:
        """Replace the stored value of each score type; returns rows touched."""
        pass

    @abstractmethod
    def upsert_recommendations(
        self,
        scope: ProjectScope,
        recommendations: Iterable[Recommendation],
        updated_at: datetime,
    ) -> int:
        """
        Insert or update recommendations keyed by (scope, dedupe_key).

        An existing row with the same dedupe key is overwritten and its
        ``updated_at`` bumped, so unchanged inputs never create duplicates.

        Returns:
            Number of rows touched
        """
        pass

    @abstractmethod
    def list_signals(self, scope: ProjectScope, limit: int = 100) -> list[Signal]:
        pass

    @abstractmethod
    def list_scores(self, scope: ProjectScope, limit: int = 20) -> list[Score]:
        pass

    @abstractmethod
    def list_recommendations(
        self,
        scope: ProjectScope,
        status: Optional[Union[RecommendationStatus, str]] = None,
        limit: int = 100,
    ) -> list[StoredRecommendation]:
        """Stored recommendations, highest priority first, then most recently updated."""
        pass
