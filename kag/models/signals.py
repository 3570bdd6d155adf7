"""Derived signal model. Signals are recomputed on every run and never persisted in state."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from .enums import SignalKey, SignalStatus
from .evidence import EvidenceRef


class Signal(BaseModel):
    """
    A normalized, threshold-classified indicator.

    Attributes:
        signal_key: Which of the ten signals this is
        value: Numeric value rounded to 4 decimals
        status: ok / warn / critical per the signal's threshold table
        threshold_warn: Warn cutoff
        threshold_critical: Critical cutoff
        details: Inputs that explain the value
        evidence_refs: Source artifacts supporting the signal
    """

    signal_key: SignalKey
    value: float = 0.0
    status: SignalStatus = SignalStatus.OK
    threshold_warn: Optional[float] = None
    threshold_critical: Optional[float] = None
    details: dict[str, Any] = Field(default_factory=dict)
    evidence_refs: list[EvidenceRef] = Field(default_factory=list)

    def snapshot(self) -> dict[str, Any]:
        """Frozen copy used for recommendation audit trails."""
        return {
            "signal_key": self.signal_key.value,
            "value": self.value,
            "status": self.status.value,
            "details": dict(self.details),
        }
