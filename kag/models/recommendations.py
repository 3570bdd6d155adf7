"""Recommendation model handed to the actioning layer."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import RecommendationCategory, RecommendationStatus, TemplateKey
from .evidence import EvidenceRef


class Recommendation(BaseModel):
    """
    An evidence-backed suggested action.

    Recommendations are recomputed on every pipeline run and never mutated.
    Callers compare ``dedupe_key`` against previously emitted
    recommendations to avoid surfacing the same action twice.

    Attributes:
        category: Trigger rule that produced the recommendation
        priority: 1 (lowest) to 5 (most urgent)
        title: Short action title
        rationale: Sentence quoting the driving numbers
        evidence_refs: Supporting artifacts (never empty)
        suggested_template_key: Outbound template key
        suggested_template: Rendered template body
        signal_snapshot: Frozen copies of the driving signals
        score_snapshot: Frozen copies of the relevant scores
        dedupe_key: Stable hash over category and quantized drivers
    """

    model_config = ConfigDict(frozen=True)

    category: RecommendationCategory
    priority: int = Field(ge=1, le=5)
    title: str
    rationale: str
    evidence_refs: list[EvidenceRef] = Field(min_length=1)
    suggested_template_key: TemplateKey
    suggested_template: str = ""
    signal_snapshot: dict[str, Any] = Field(default_factory=dict)
    score_snapshot: dict[str, Any] = Field(default_factory=dict)
    dedupe_key: str


class StoredRecommendation(BaseModel):
    """
    A recommendation as persisted per scope, keyed by its dedupe key.

    Re-emitting the same recommendation overwrites the stored row in place
    and bumps ``updated_at``; ``created_at`` is kept from the first emission.
    """

    recommendation: Recommendation
    status: RecommendationStatus = RecommendationStatus.PROPOSED
    created_at: datetime
    updated_at: datetime

    @property
    def dedupe_key(self) -> str:
        return self.recommendation.dedupe_key

    @property
    def priority(self) -> int:
        return self.recommendation.priority
