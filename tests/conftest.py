"""
Pytest configuration and shared fixtures for the KAG engine test suite.

Provides event, evidence, signal and score factories plus an isolated
settings instance, reused across unit, integration and property-based tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from kag.config import KagSettings
from kag.engine.signals import SIGNAL_DEFINITIONS, rate_status
from kag.engine.scoring import score_level
from kag.models.enums import EventType, ScoreType, SignalKey
from kag.models.events import KagEvent
from kag.models.evidence import EvidenceRef
from kag.models.scores import Score
from kag.models.signals import Signal

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------


def make_evidence(ref_id: Any = "msg-1", **overrides) -> dict:
    """Factory for a raw evidence ref (message id by default)."""
    ref = {"message_id": str(ref_id)}
    ref.update(overrides)
    return ref


def make_event(
    event_id: Optional[Any] = 1,
    event_type: Any = EventType.MESSAGE_SENT,
    event_ts: Optional[datetime] = None,
    payload: Optional[dict] = None,
    evidence: Optional[list] = None,
    **overrides,
) -> KagEvent:
    """Factory function for creating test KagEvent objects."""
    defaults = dict(
        id=event_id,
        event_type=event_type.value if isinstance(event_type, EventType) else event_type,
        event_ts=event_ts or NOW,
        payload=payload or {},
        evidence_refs=evidence or [],
    )
    defaults.update(overrides)
    return KagEvent(**defaults)


def make_signal(
    signal_key: SignalKey,
    value: float = 0.0,
    details: Optional[dict] = None,
    evidence: Optional[list] = None,
) -> Signal:
    """Factory for a Signal with status derived from the real thresholds."""
    definition = SIGNAL_DEFINITIONS[signal_key]
    return Signal(
        signal_key=signal_key,
        value=value,
        status=rate_status(signal_key, value),
        threshold_warn=definition["warn"],
        threshold_critical=definition["critical"],
        details=details or {},
        evidence_refs=[EvidenceRef.model_validate(ref) for ref in (evidence or [])],
    )


def make_score(
    score_type: ScoreType = ScoreType.UPSELL_LIKELIHOOD,
    score: float = 50.0,
    evidence: Optional[list] = None,
    computed_at: Optional[datetime] = None,
) -> Score:
    """Factory for a Score with level derived from the real cutoffs."""
    return Score(
        score_type=score_type,
        score=score,
        level=score_level(score_type, score),
        evidence_refs=[EvidenceRef.model_validate(ref) for ref in (evidence or [])],
        computed_at=computed_at or NOW,
    )


def days_ago(days: float, now: datetime = NOW) -> datetime:
    return now - timedelta(days=days)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def kag_settings() -> KagSettings:
    """Settings isolated from the environment and any local .env file."""
    return KagSettings(_env_file=None)


@pytest.fixture
def template_calls() -> list:
    return []


@pytest.fixture
def recording_generator(template_calls):
    """Async template generator that records its calls."""

    async def generate(template_key: str, variables: dict) -> str:
        template_calls.append((template_key, dict(variables)))
        return f"[{template_key}] generated"

    return generate
