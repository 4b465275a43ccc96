"""Debate events: the only way debate state changes.

Each event is a frozen dataclass carrying just the payload needed to
rebuild ``DebateState`` incrementally. ``DebateEvent`` is the closed union
of all variants; the reducer keeps a handler for every member.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import ClassVar

from .types import (
    AgentClarifications,
    AgentConfig,
    Contribution,
    ContributionType,
    DebateResult,
    DebateSummary,
    NotificationMessage,
    Solution,
)


@dataclass(frozen=True)
class ProblemSet:
    event_type: ClassVar[str] = "set-problem"
    problem: str


@dataclass(frozen=True)
class RoundsSet:
    event_type: ClassVar[str] = "set-rounds"
    rounds: int


@dataclass(frozen=True)
class ClarificationsToggled:
    event_type: ClassVar[str] = "toggle-clarifications"


@dataclass(frozen=True)
class ConnectionEstablished:
    """Agent roster (and judge) announced to observers."""

    event_type: ClassVar[str] = "connection-established"
    agents: tuple[AgentConfig, ...]
    judge: AgentConfig | None = None


@dataclass(frozen=True)
class DebateStarted:
    event_type: ClassVar[str] = "debate-started"
    debate_id: str


@dataclass(frozen=True)
class ClarificationsRequired:
    event_type: ClassVar[str] = "clarifications-required"
    questions: tuple[AgentClarifications, ...]


@dataclass(frozen=True)
class ClarificationsSubmitted:
    """Answered clarifications; the debate proper starts after this."""

    event_type: ClassVar[str] = "clarifications-submitted"
    answers: tuple[AgentClarifications, ...] = ()


@dataclass(frozen=True)
class RoundStarted:
    event_type: ClassVar[str] = "round-start"
    round: int
    total: int


@dataclass(frozen=True)
class SummaryCreated:
    """An agent condensed its earlier rounds before this round's proposals."""

    event_type: ClassVar[str] = "summary-created"
    round: int
    summary: DebateSummary


@dataclass(frozen=True)
class PhaseStarted:
    event_type: ClassVar[str] = "phase-start"
    round: int
    phase: ContributionType
    expected_count: int


@dataclass(frozen=True)
class AgentStarted:
    event_type: ClassVar[str] = "agent-start"
    agent_name: str
    activity: str


@dataclass(frozen=True)
class AgentCompleted:
    event_type: ClassVar[str] = "agent-complete"
    agent_name: str
    activity: str


@dataclass(frozen=True)
class PhaseCompleted:
    event_type: ClassVar[str] = "phase-complete"
    round: int
    phase: ContributionType


@dataclass(frozen=True)
class ContributionCreated:
    event_type: ClassVar[str] = "contribution-created"
    round: int
    contribution: Contribution


@dataclass(frozen=True)
class SynthesisStarted:
    event_type: ClassVar[str] = "synthesis-start"


@dataclass(frozen=True)
class SynthesisCompleted:
    event_type: ClassVar[str] = "synthesis-complete"
    solution: Solution


@dataclass(frozen=True)
class DebateCompleted:
    event_type: ClassVar[str] = "debate-complete"
    result: DebateResult


@dataclass(frozen=True)
class ErrorOccurred:
    event_type: ClassVar[str] = "error"
    message: str


@dataclass(frozen=True)
class WarningRaised:
    event_type: ClassVar[str] = "warning"
    message: str


@dataclass(frozen=True)
class DebateCancelled:
    event_type: ClassVar[str] = "debate-cancelled"
    reason: str = "Debate cancelled"


@dataclass(frozen=True)
class NotificationAdded:
    event_type: ClassVar[str] = "notification-add"
    notification: NotificationMessage


@dataclass(frozen=True)
class NotificationCleared:
    event_type: ClassVar[str] = "notification-clear"
    notification_id: str


DebateEvent = (
    ProblemSet
    | RoundsSet
    | ClarificationsToggled
    | ConnectionEstablished
    | DebateStarted
    | ClarificationsRequired
    | ClarificationsSubmitted
    | RoundStarted
    | SummaryCreated
    | PhaseStarted
    | AgentStarted
    | AgentCompleted
    | PhaseCompleted
    | ContributionCreated
    | SynthesisStarted
    | SynthesisCompleted
    | DebateCompleted
    | ErrorOccurred
    | WarningRaised
    | DebateCancelled
    | NotificationAdded
    | NotificationCleared
)

# Every concrete event class, in declaration order
EVENT_TYPES: tuple[type, ...] = DebateEvent.__args__


def event_to_dict(event: DebateEvent) -> dict:
    """JSON-ready form of an event: its type tag plus its payload fields."""
    return {"type": event.event_type, **_jsonable(asdict(event))}


def _jsonable(value):
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value
