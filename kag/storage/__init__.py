"""
State persistence layer.

The engines are persistence-agnostic; stores keep SignalState and the event
log per (project, account) scope.
"""

from .base import ProjectScope, SignalStateStore, StateStoreError
from .memory import InMemorySignalStateStore

__all__ = [
    "InMemorySignalStateStore",
    "ProjectScope",
    "SignalStateStore",
    "StateStoreError",
]
