"""Composite score models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ScoreLevel, ScoreType
from .evidence import EvidenceRef


class ScoreFactor(BaseModel):
    """One named input to a score, rounded to 2 decimals."""

    key: str
    contribution: float


class Score(BaseModel):
    """
    A weighted composite on a 0-100 scale.

    Attributes:
        score_type: Which composite this is
        score: Value in [0, 100], rounded to 2 decimals
        level: Qualitative level from score-type-specific cutoffs
        weights: Component weights used for the blend
        thresholds: Display thresholds for UI rendering
        factors: Per-component breakdown
        evidence_refs: Union of all signals' evidence
        computed_at: Evaluation instant
    """

    score_type: ScoreType
    score: float = Field(ge=0.0, le=100.0)
    level: ScoreLevel
    weights: dict[str, float] = Field(default_factory=dict)
    thresholds: dict[str, float] = Field(default_factory=dict)
    factors: list[ScoreFactor] = Field(default_factory=list)
    evidence_refs: list[EvidenceRef] = Field(default_factory=list)
    computed_at: datetime

    def snapshot(self) -> dict[str, Any]:
        return {
            "score_type": self.score_type.value,
            "score": self.score,
            "level": self.level.value,
        }


class ScoreResult(BaseModel):
    """Output of the scoring engine."""

    scores: list[Score] = Field(default_factory=list)
    score_map: dict[ScoreType, Score] = Field(default_factory=dict)
    risk_components: dict[str, float] = Field(default_factory=dict)
