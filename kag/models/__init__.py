"""
Pydantic v2 data models for the KAG engine.

Model Organization:
    - enums: Enumeration types for events, signals, scores and recommendations
    - evidence: Evidence references and deduplication helpers
    - events: Tolerant input event model
    - state: Versioned SignalState accumulator
    - signals: Derived Signal model
    - scores: Score, ScoreFactor and ScoreResult
    - recommendations: Recommendation model

Usage:
    >>> from kag.models import KagEvent, SignalState
    >>> event = KagEvent(
    ...     id=42,
    ...     event_type="message_sent",
    ...     event_ts="2026-02-17T10:00:00Z",
    ...     payload={"sender": "client"},
    ...     evidence_refs=[{"message_id": "m-1"}],
    ... )
"""

from .enums import (
    Comparator,
    EventType,
    RecommendationCategory,
    RecommendationStatus,
    ScoreLevel,
    ScoreType,
    SignalKey,
    SignalStatus,
    StageStatus,
    TemplateKey,
)
from .events import KagEvent, as_event
from .evidence import EvidenceRef, dedupe_evidence_refs, merge_evidence, parse_evidence_ref
from .recommendations import Recommendation, StoredRecommendation
from .scores import Score, ScoreFactor, ScoreResult
from .signals import Signal
from .state import (
    AgreementEntry,
    BlockerEntry,
    CursorState,
    SignalState,
)

__all__ = [
    "AgreementEntry",
    "BlockerEntry",
    "Comparator",
    "CursorState",
    "EventType",
    "EvidenceRef",
    "KagEvent",
    "Recommendation",
    "RecommendationCategory",
    "RecommendationStatus",
    "Score",
    "ScoreFactor",
    "ScoreLevel",
    "ScoreResult",
    "ScoreType",
    "Signal",
    "SignalKey",
    "SignalState",
    "SignalStatus",
    "StageStatus",
    "StoredRecommendation",
    "TemplateKey",
    "as_event",
    "dedupe_evidence_refs",
    "merge_evidence",
    "parse_evidence_ref",
]
