"""
PromptLens Backend - Analytics Observers
==========================================

What:  Side-channel for product analytics events (analysis started/completed).
How:   AnalysisService receives an optional observer and calls
       record_event(name, properties). Observers are never allowed to change
       the outcome of an analysis: notify() logs and drops their failures.

Observers:
    LoggingObserver    → one INFO line per event on "promptlens.analytics"
    InMemoryAnalytics  → bounded buffer of recent events (admin/debug, tests)
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

IMAGE_ANALYSIS_STARTED = "image_analysis_started"
IMAGE_ANALYSIS_COMPLETED = "image_analysis_completed"


@runtime_checkable
class AnalysisObserver(Protocol):
    def record_event(self, name: str, properties: Dict[str, Any]) -> None:
        ...


class LoggingObserver:
    """Writes each event to the analytics logger."""

    def __init__(self, logger_name: str = "promptlens.analytics"):
        self._logger = logging.getLogger(logger_name)

    def record_event(self, name: str, properties: Dict[str, Any]) -> None:
        self._logger.info("%s %s", name, properties, extra={"event": name, "properties": properties})


class InMemoryAnalytics:
    """
    Keeps the most recent events in memory.

    Args:
        max_events: Buffer size; oldest events are dropped first.
    """

    def __init__(self, max_events: int = 500):
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)

    def record_event(self, name: str, properties: Dict[str, Any]) -> None:
        self._events.append(
            {
                "name": name,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "properties": dict(properties),
            }
        )

    def recent_events(self, count: int = 50) -> List[Dict[str, Any]]:
        if count <= 0:
            return []
        return list(self._events)[-count:]

    def clear(self) -> None:
        self._events.clear()


def notify(observer: Optional[AnalysisObserver], name: str, properties: Dict[str, Any]) -> None:
    """Deliver an event to `observer` if one is attached; observer errors are logged only."""
    if observer is None:
        return
    try:
        observer.record_event(name, properties)
    except Exception as e:
        logger.warning("Analytics observer failed on %s: %s", name, str(e))
