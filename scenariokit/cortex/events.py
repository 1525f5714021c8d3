"""Toolkit event bus."""
#
# PURPOSE:
# Decouples emission (orchestrator) from consumption (UI, HTTP clients, logs).
#
# LOGIC:
# - EventBus: synchronous observable, subscribers called in registration order.
# - emit_*: helpers for structured event emission.
#
# The LAST_EXECUTION_CHANGED event is the change notification for the
# last-execution cache; its payload is the new value or None.
#

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

_sequence = itertools.count(1)


def get_next_sequence() -> int:
    """Monotonically increasing event sequence for this process."""
    return next(_sequence)


class ToolkitEventType(str, Enum):
    RUN_STARTED = "run_started"
    RUN_EXITED = "run_exited"
    RUN_FAILED = "run_failed"
    LAST_EXECUTION_CHANGED = "last_execution_changed"


@dataclass
class ToolkitEvent:
    """
    Event record.

    Fields:
        type: classification from ToolkitEventType
        payload: event-specific data
        timestamp: when the event occurred (epoch seconds)
        event_sequence: process-wide ordering
    """
    type: ToolkitEventType
    payload: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)
    event_sequence: int = field(default_factory=get_next_sequence)


Subscriber = Callable[[ToolkitEvent], None]


class EventBus:
    """
    Synchronous Event Bus.
    """

    def __init__(self):
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()
        self._last_event_sequence: int = 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    @property
    def last_event_sequence(self) -> int:
        return self._last_event_sequence

    def emit(self, event: ToolkitEvent) -> None:
        """Broadcast event to all subscribers."""
        self._last_event_sequence = event.event_sequence
        with self._lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"[EventBus] Subscriber failed: {e}")

    # --- Convenience Methods ---

    def emit_last_execution_changed(self, info: Optional[Dict[str, Any]]) -> None:
        self.emit(ToolkitEvent(
            type=ToolkitEventType.LAST_EXECUTION_CHANGED,
            payload={"last_execution": info},
        ))

    def emit_run_started(self, scenario: str, strategy: str, use_sudo: bool) -> None:
        self.emit(ToolkitEvent(
            type=ToolkitEventType.RUN_STARTED,
            payload={"scenario": scenario, "strategy": strategy, "use_sudo": use_sudo},
        ))

    def emit_run_exited(self, scenario: str, strategy: str, exit_code: Optional[int]) -> None:
        self.emit(ToolkitEvent(
            type=ToolkitEventType.RUN_EXITED,
            payload={"scenario": scenario, "strategy": strategy, "exit_code": exit_code},
        ))

    def emit_run_failed(self, scenario: Optional[str], strategy: str, error: Dict[str, Any]) -> None:
        self.emit(ToolkitEvent(
            type=ToolkitEventType.RUN_FAILED,
            payload={"scenario": scenario, "strategy": strategy, "error": error},
        ))
