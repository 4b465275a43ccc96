"""Notification bus: append-only advisory log, clearable by id.

Notifications never influence debate transitions. The log is bounded; when
full, the oldest entries are dropped first.
"""

import logging
import time
import uuid
from datetime import datetime

from ..config import config
from . import events as ev
from .types import DebateState, NotificationLevel, NotificationMessage

logger = logging.getLogger(__name__)


def new_notification(
    level: NotificationLevel,
    message: str,
    notification_id: str | None = None,
    timestamp: datetime | None = None,
) -> NotificationMessage:
    """Create a notification; a fresh time-prefixed id is used when none is given."""
    return NotificationMessage(
        id=notification_id or f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}",
        type=level,
        message=message,
        timestamp=timestamp or datetime.now(),
    )


def append_notification(
    log: tuple[NotificationMessage, ...],
    notification: NotificationMessage,
    capacity: int | None = None,
) -> tuple[NotificationMessage, ...]:
    """Return *log* with *notification* appended, trimmed to *capacity*."""
    capacity = capacity or config.notification_capacity
    updated = log + (notification,)
    if len(updated) > capacity:
        dropped = len(updated) - capacity
        logger.debug(f"Notification log full, dropping {dropped} oldest entr(ies)")
        updated = updated[dropped:]
    return updated


def clear_notification(
    log: tuple[NotificationMessage, ...], notification_id: str
) -> tuple[NotificationMessage, ...]:
    """Return *log* without the entry whose id matches; others keep their order."""
    return tuple(n for n in log if n.id != notification_id)


def notification_for(event: ev.DebateEvent) -> tuple[NotificationLevel, str] | None:
    """Severity and text of the advisory message an accepted event produces, if any."""
    if isinstance(event, ev.ConnectionEstablished):
        return NotificationLevel.SUCCESS, "Connected to debate server"
    if isinstance(event, ev.DebateStarted):
        return NotificationLevel.INFO, "Debate started"
    if isinstance(event, ev.ClarificationsRequired):
        if event.questions:
            return NotificationLevel.INFO, "Please answer the clarifying questions"
        return NotificationLevel.INFO, "No clarifying questions were raised"
    if isinstance(event, ev.ClarificationsSubmitted):
        return NotificationLevel.SUCCESS, "Clarifications submitted"
    if isinstance(event, ev.RoundStarted):
        return NotificationLevel.INFO, f"Round {event.round}/{event.total} starting"
    if isinstance(event, ev.SummaryCreated):
        s = event.summary
        return (
            NotificationLevel.INFO,
            f"Summarized history for {s.agent_id} ({s.before_chars} to {s.after_chars} chars)",
        )
    if isinstance(event, ev.PhaseStarted):
        return NotificationLevel.INFO, f"{event.phase.value} phase starting"
    if isinstance(event, ev.AgentCompleted):
        return NotificationLevel.SUCCESS, f"{event.agent_name} completed {event.activity}"
    if isinstance(event, ev.PhaseCompleted):
        return NotificationLevel.SUCCESS, f"{event.phase.value} phase completed"
    if isinstance(event, ev.SynthesisStarted):
        return NotificationLevel.INFO, "Synthesizing final solution..."
    if isinstance(event, ev.SynthesisCompleted):
        return NotificationLevel.SUCCESS, "Synthesis completed"
    if isinstance(event, ev.DebateCompleted):
        return (
            NotificationLevel.SUCCESS,
            f"Debate completed in {event.result.metadata.duration_ms}ms",
        )
    if isinstance(event, ev.ErrorOccurred):
        return NotificationLevel.ERROR, event.message
    if isinstance(event, ev.WarningRaised):
        return NotificationLevel.WARNING, event.message
    if isinstance(event, ev.DebateCancelled):
        return NotificationLevel.WARNING, event.reason
    return None


class NotificationBus:
    """Standalone notification log for observers that keep their own copy.

    ``add`` appends in arrival order and ``clear`` removes a single entry by
    id; there is no other mutation.
    """

    def __init__(self, capacity: int | None = None) -> None:
        self.capacity = capacity or config.notification_capacity
        self._log: tuple[NotificationMessage, ...] = ()
        self._seen: set[str] = set()

    def add(self, notification: NotificationMessage) -> None:
        self._seen.add(notification.id)
        self._log = append_notification(self._log, notification, self.capacity)

    def clear(self, notification_id: str) -> bool:
        """Remove the matching entry; returns False when no entry matched."""
        before = len(self._log)
        self._log = clear_notification(self._log, notification_id)
        return len(self._log) != before

    def observe(self, event: ev.DebateEvent, state: DebateState) -> None:
        """State-machine subscriber: mirror the notification traffic of *state*."""
        if isinstance(event, ev.NotificationCleared):
            self.clear(event.notification_id)
            return
        for notification in state.notifications:
            if notification.id not in self._seen:
                self.add(notification)

    @property
    def messages(self) -> tuple[NotificationMessage, ...]:
        return self._log

    def __len__(self) -> int:
        return len(self._log)
