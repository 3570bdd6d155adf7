"""
KAG engine components.

- signals: event folding into SignalState and signal derivation
- scoring: weighted composite scores with per-factor breakdowns
- recommendations: evidence-gated, deduplicated recommendations
- templates: suggested outbound messages per recommendation category
- pipeline: end-to-end composition of the three stages

All components are pure functions over caller-supplied data; the only
awaited operation is the optional template generator collaborator.
"""

__all__ = [
    "PipelineResult",
    "RecommendationEngine",
    "ScoringEngine",
    "SignalEngine",
    "apply_event_to_signal_state",
    "apply_events_incrementally",
    "compute_scores",
    "compute_signals_from_state",
    "create_initial_signal_state",
    "generate_recommendations",
    "map_signals_by_key",
    "run_pipeline",
    "signal_definition",
]

from kag.engine.pipeline import PipelineResult, run_pipeline
from kag.engine.recommendations import RecommendationEngine, generate_recommendations
from kag.engine.scoring import ScoringEngine, compute_scores
from kag.engine.signals import (
    SignalEngine,
    apply_event_to_signal_state,
    apply_events_incrementally,
    compute_signals_from_state,
    create_initial_signal_state,
    map_signals_by_key,
    signal_definition,
)
