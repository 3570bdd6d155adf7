"""
Versioned signal state accumulated by folding domain events.

The state is plain data: every field is JSON-serializable through
``model_dump(mode="json")`` and restored with ``SignalState.model_validate``.
Callers persist it per (tenant, project) scope between pipeline runs.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .enums import StageStatus
from .evidence import EvidenceRef


class WaitingState(BaseModel):
    last_client_message_at: Optional[datetime] = None
    last_team_message_at: Optional[datetime] = None


class ResponseState(BaseModel):
    """FIFO of unanswered client messages plus a running response-time sum."""

    pending_client_messages: list[datetime] = Field(default_factory=list)
    total_minutes: float = 0.0
    samples: int = 0


class BlockerEntry(BaseModel):
    opened_at: datetime


class BlockersState(BaseModel):
    open: dict[str, BlockerEntry] = Field(default_factory=dict)


class StageState(BaseModel):
    stage_id: Optional[str] = None
    stage_name: Optional[str] = None
    status: StageStatus = StageStatus.UNKNOWN
    started_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    approval_pending: bool = False


class AgreementEntry(BaseModel):
    due_at: Optional[datetime] = None
    created_at: datetime


class AgreementsState(BaseModel):
    open: dict[str, AgreementEntry] = Field(default_factory=dict)


class SentimentState(BaseModel):
    ewma: float = Field(default=0.0, ge=-1.0, le=1.0)
    prev_ewma: float = Field(default=0.0, ge=-1.0, le=1.0)
    samples: int = 0
    alpha: float = 0.35


class ScopeState(BaseModel):
    requests: list[datetime] = Field(default_factory=list)
    client_requests: list[datetime] = Field(default_factory=list)


class FinanceState(BaseModel):
    """Cumulative totals; never reset by pruning."""

    planned_budget: float = 0.0
    actual_cost: float = 0.0
    revenue: float = 0.0


class ActivityState(BaseModel):
    daily_counts: dict[str, int] = Field(default_factory=dict)


class NeedsState(BaseModel):
    events: list[datetime] = Field(default_factory=list)
    evidence: list[EvidenceRef] = Field(default_factory=list)


class CursorState(BaseModel):
    """Watermark for incremental resumption."""

    last_event_id: int = 0
    last_event_ts: Optional[datetime] = None


class SignalState(BaseModel):
    """
    Accumulator folded one event at a time by the signal engine.

    Attributes:
        version: State schema version
        waiting: Last client-authored and team-authored message times
        response: Pending-reply queue and response-time totals
        blockers: Open blockers keyed by blocker id
        stage: Current delivery stage descriptor
        agreements: Open agreements keyed by agreement id
        sentiment: Sentiment EWMA
        scope: Scope change requests and client-authored messages
        finance: Planned budget, actual cost and revenue totals
        activity: Per-day count of state-mutating events
        needs: Detected needs and their evidence
        evidence_by_signal: Audit trail of refs per signal key
        cursor: Last processed event id and timestamp
        client_name: Optional display name used in templates
        project_name: Optional display name used in templates
    """

    version: int = 1
    waiting: WaitingState = Field(default_factory=WaitingState)
    response: ResponseState = Field(default_factory=ResponseState)
    blockers: BlockersState = Field(default_factory=BlockersState)
    stage: StageState = Field(default_factory=StageState)
    agreements: AgreementsState = Field(default_factory=AgreementsState)
    sentiment: SentimentState = Field(default_factory=SentimentState)
    scope: ScopeState = Field(default_factory=ScopeState)
    finance: FinanceState = Field(default_factory=FinanceState)
    activity: ActivityState = Field(default_factory=ActivityState)
    needs: NeedsState = Field(default_factory=NeedsState)
    evidence_by_signal: dict[str, list[EvidenceRef]] = Field(default_factory=dict)
    cursor: CursorState = Field(default_factory=CursorState)
    client_name: Optional[str] = None
    project_name: Optional[str] = None
