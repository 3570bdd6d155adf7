"""
Input event model for the signal engine.

Events come from the KAG event log maintained by the connector
collaborators. Ordering is not guaranteed and fields are loosely typed, so
the model is deliberately tolerant: unparseable values degrade to defaults
instead of failing validation.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from kag.utils.timeutils import to_datetime

from .enums import EventType


class KagEvent(BaseModel):
    """
    A single immutable domain event.

    Attributes:
        id: Event log identifier (integer or string)
        event_type: Raw event type as emitted by the producer
        event_ts: When the event occurred; None if missing or unparseable
        payload: Event-specific attributes
        evidence_refs: Raw evidence references (normalized during folding)
        subject_node_id: Graph node the event is about, used as id fallback
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Optional[Union[int, str]] = None
    event_type: str = ""
    event_ts: Optional[datetime] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    evidence_refs: list[Any] = Field(default_factory=list)
    subject_node_id: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def apply_aliases(cls, data: Any) -> Any:
        """Accept the alternative field names used by older producers."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("id") is None and data.get("event_id") is not None:
            data["id"] = data["event_id"]
        if data.get("event_ts") is None:
            data["event_ts"] = data.get("occurred_at") or data.get("created_at")
        if not data.get("evidence_refs") and data.get("evidence"):
            data["evidence_refs"] = data["evidence"]
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Optional[Union[int, str]]:
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if isinstance(v, float):
            return int(v) if v.is_integer() else str(v)
        return str(v)

    @field_validator("event_type", mode="before")
    @classmethod
    def coerce_event_type(cls, v: Any) -> str:
        if isinstance(v, EventType):
            return v.value
        return str(v or "").strip().lower()

    @field_validator("event_ts", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Optional[datetime]:
        return to_datetime(v)

    @field_validator("payload", mode="before")
    @classmethod
    def coerce_payload(cls, v: Any) -> dict:
        return dict(v) if isinstance(v, dict) else {}

    @field_validator("evidence_refs", mode="before")
    @classmethod
    def coerce_evidence(cls, v: Any) -> list:
        return list(v) if isinstance(v, (list, tuple)) else []

    @field_validator("subject_node_id", mode="before")
    @classmethod
    def coerce_subject(cls, v: Any) -> Optional[str]:
        text = str(v).strip() if v is not None else ""
        return text or None

    @property
    def numeric_id(self) -> Optional[int]:
        """Integer id when the event id is numeric, otherwise None."""
        if isinstance(self.id, int):
            return self.id
        if isinstance(self.id, str):
            try:
                return int(self.id.strip())
            except ValueError:
                return None
        return None

    @property
    def kind(self) -> Optional[EventType]:
        return EventType.parse(self.event_type)


def as_event(value: Any) -> KagEvent:
    """Accept either a KagEvent or a raw mapping."""
    if isinstance(value, KagEvent):
        return value
    if isinstance(value, dict):
        return KagEvent.model_validate(value)
    return KagEvent()
