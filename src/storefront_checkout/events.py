"""
Submission state-change events.

Every state transition of an order submission is published to the
registered listeners. Listeners observe; they cannot change the outcome, and
a failing listener never breaks a submission.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from .models import PaymentMethodTag, SubmissionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionEvent:
    """One state transition of one submission attempt."""
    submission_id: str
    previous: SubmissionState
    state: SubmissionState
    payment_method: Optional[PaymentMethodTag] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SubmissionListener(ABC):
    """Receives submission state-change events."""

    @abstractmethod
    async def on_transition(self, event: SubmissionEvent) -> None:
        """Handle a state transition."""
        pass


class LoggingSubmissionListener(SubmissionListener):
    """Logs every transition."""

    def __init__(self, log_level: int = logging.INFO):
        self._log_level = log_level

    async def on_transition(self, event: SubmissionEvent) -> None:
        logger.log(
            self._log_level,
            "Submission %s: %s -> %s %s",
            event.submission_id,
            event.previous.value,
            event.state.value,
            event.details or "",
        )


class InMemorySubmissionListener(SubmissionListener):
    """
    Keeps events in memory.

    Useful for tests and for showing a step indicator in a UI.
    """

    def __init__(self, max_events: int = 1000):
        self._events: List[SubmissionEvent] = []
        self._max_events = max_events

    async def on_transition(self, event: SubmissionEvent) -> None:
        self._events.append(event)
        if len(self._events) > self._max_events:
            self._events = self._events[-self._max_events:]

    @property
    def events(self) -> List[SubmissionEvent]:
        return list(self._events)

    def states(self, submission_id: Optional[str] = None) -> List[SubmissionState]:
        return [
            e.state for e in self._events
            if submission_id is None or e.submission_id == submission_id
        ]

    def clear(self) -> None:
        self._events.clear()


async def publish(listeners: Sequence[SubmissionListener], event: SubmissionEvent) -> None:
    """Deliver an event to every listener; listener errors are logged."""
    if not listeners:
        return
    results = await asyncio.gather(
        *[listener.on_transition(event) for listener in listeners],
        return_exceptions=True,
    )
    for listener, result in zip(listeners, results):
        if isinstance(result, Exception):
            logger.warning(
                "Submission listener %s failed on %s: %s",
                type(listener).__name__, event.state.value, result,
            )
