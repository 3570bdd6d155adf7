"""
End-to-end KAG pipeline: events -> state -> signals -> scores -> recommendations.

The pipeline is a thin composition of the three engines. It performs no I/O;
loading and persisting state is done by the caller (see kag.storage and
KagService).
"""

from datetime import datetime
from typing import Iterable, Optional, Union

import structlog
from pydantic import BaseModel, Field

from kag.config import KagSettings, get_settings
from kag.models.events import KagEvent
from kag.models.recommendations import Recommendation
from kag.models.scores import ScoreResult
from kag.models.signals import Signal
from kag.models.state import SignalState
from kag.utils.timeutils import to_datetime, utc_now

from .recommendations import RecommendationEngine
from .scoring import ScoringEngine
from .signals import SignalEngine
from .templates import TemplateGenerator

logger = structlog.get_logger(__name__)


class PipelineResult(BaseModel):
    """Everything one pipeline run produces."""

    state: SignalState
    signals: list[Signal] = Field(default_factory=list)
    scores: ScoreResult = Field(default_factory=ScoreResult)
    recommendations: list[Recommendation] = Field(default_factory=list)
    processed_events: int = 0
    last_event_id: int = 0


async def run_pipeline(
    previous_state: Optional[Union[SignalState, dict]],
    events: Iterable[Union[KagEvent, dict]],
    now: Optional[datetime] = None,
    llm_generate_template: Optional[TemplateGenerator] = None,
    settings: Optional[KagSettings] = None,
) -> PipelineResult:
    """
    Fold ``events`` into a copy of ``previous_state`` and derive outputs.

    Args:
        previous_state: Last persisted state, or None for a new scope
        events: New events in any order
        now: Evaluation instant shared by every stage
        llm_generate_template: Optional template generator collaborator
        settings: Engine settings

    Returns:
        PipelineResult; ``previous_state`` is left untouched
    """
    settings = settings or get_settings()
    now = to_datetime(now, utc_now())

    folded = SignalEngine(settings).apply_events_incrementally(previous_state, events, now=now)
    state = folded["state"]

    signals = SignalEngine(settings).compute_signals_from_state(state, now=now)
    scores = ScoringEngine(settings).compute_scores(signals=signals, state=state, now=now)
    recommendations = await RecommendationEngine(
        settings=settings, llm_generate_template=llm_generate_template
    ).generate_recommendations(signals=signals, scores=scores, state=state, now=now)

    logger.info(
        "pipeline_completed",
        processed_events=folded["processed_events"],
        last_event_id=folded["last_event_id"],
        recommendations=len(recommendations),
    )

    return PipelineResult(
        state=state,
        signals=signals,
        scores=scores,
        recommendations=recommendations,
        processed_events=folded["processed_events"],
        last_event_id=folded["last_event_id"],
    )
