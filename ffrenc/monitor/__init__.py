"""
Monitoring: the single-writer UI reducer and everything that reads it.

- event_model: lifecycle events sent by runners
- state:       UiState reducer and AggregateSnapshot
- render:      verbose / human / json / json-pretty output
- aggregator:  the consumer loop tying them together
- monitor_api: optional read-only HTTP view of the latest snapshot
"""

from .errors import MonitorError, ProtocolViolationError
from .event_model import (
    Created,
    EventPayload,
    Failed,
    Finished,
    LifecycleEvent,
    Progress,
    Started,
)
from .state import AggregateSnapshot, TaskInfo, UiState

__all__ = [
    "MonitorError",
    "ProtocolViolationError",
    "Created",
    "EventPayload",
    "Failed",
    "Finished",
    "LifecycleEvent",
    "Progress",
    "Started",
    "AggregateSnapshot",
    "TaskInfo",
    "UiState",
]
