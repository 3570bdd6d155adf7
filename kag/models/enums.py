"""
Enumeration types for the KAG engine.

All enums inherit from str to keep state, signals and recommendations JSON
serialization compatible.
"""

from enum import Enum
from typing import Optional


class EventType(str, Enum):
    """
    Domain event types understood by the signal engine.

    Producers (chat, issue-tracker and CRM connectors) may emit other types;
    those are ignored by the fold.
    """

    MESSAGE_SENT = "message_sent"
    TASK_BLOCKED = "task_blocked"
    BLOCKER_RESOLVED = "blocker_resolved"
    STAGE_STARTED = "stage_started"
    STAGE_COMPLETED = "stage_completed"
    AGREEMENT_CREATED = "agreement_created"
    APPROVAL_APPROVED = "approval_approved"
    SCOPE_CHANGE_REQUESTED = "scope_change_requested"
    FINANCE_ENTRY_CREATED = "finance_entry_created"
    NEED_DETECTED = "need_detected"
    DECISION_MADE = "decision_made"
    OFFER_CREATED = "offer_created"
    TASK_CREATED = "task_created"

    @classmethod
    def parse(cls, value: object) -> Optional["EventType"]:
        """Case-insensitive lookup; returns None for unknown or empty types."""
        text = str(value or "").strip().lower()
        if not text:
            return None
        try:
            return cls(text)
        except ValueError:
            return None


class SignalKey(str, Enum):
    """The ten derived signals."""

    WAITING_ON_CLIENT_DAYS = "waiting_on_client_days"
    RESPONSE_TIME_AVG = "response_time_avg"
    BLOCKERS_AGE = "blockers_age"
    STAGE_OVERDUE = "stage_overdue"
    AGREEMENT_OVERDUE_COUNT = "agreement_overdue_count"
    SENTIMENT_TREND = "sentiment_trend"
    SCOPE_CREEP_RATE = "scope_creep_rate"
    BUDGET_BURN_RATE = "budget_burn_rate"
    MARGIN_RISK = "margin_risk"
    ACTIVITY_DROP = "activity_drop"


class SignalStatus(str, Enum):
    OK = "ok"
    WARN = "warn"
    CRITICAL = "critical"


class Comparator(str, Enum):
    """How a signal value is compared against its thresholds."""

    HIGH = "high"
    NEGATIVE = "negative"


class StageStatus(str, Enum):
    UNKNOWN = "unknown"
    ACTIVE = "active"
    COMPLETED = "completed"


class ScoreType(str, Enum):
    """Composite scores produced by the scoring engine."""

    PROJECT_HEALTH = "project_health"
    RISK = "risk"
    CLIENT_VALUE = "client_value"
    UPSELL_LIKELIHOOD = "upsell_likelihood"


class ScoreLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RecommendationCategory(str, Enum):
    WAITING_ON_CLIENT = "waiting_on_client"
    SCOPE_CREEP_CHANGE_REQUEST = "scope_creep_change_request"
    DELIVERY_RISK = "delivery_risk"
    FINANCE_RISK = "finance_risk"
    UPSELL_OPPORTUNITY = "upsell_opportunity"


class RecommendationStatus(str, Enum):
    """Lifecycle of a stored recommendation in the actioning layer."""

    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"
    DONE = "done"


class TemplateKey(str, Enum):
    """Outbound message templates suggested alongside recommendations."""

    WAITING = "waiting_on_client_follow_up"
    SCOPE_CREEP = "scope_creep_change_request"
    DELIVERY = "delivery_risk_escalation"
    FINANCE = "finance_risk_review"
    UPSELL = "upsell_offer_pitch"
