"""Type definitions for the debate engine.

Every record here is immutable: the state machine publishes a new
``DebateState`` per accepted event, built with ``dataclasses.replace``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from .tooling import ToolCallMetadata


class DebateStatus(StrEnum):
    """Debate lifecycle states."""

    IDLE = "idle"
    COLLECTING_CLARIFICATIONS = "collecting_clarifications"
    AWAITING_CLARIFICATIONS = "awaiting_clarifications"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({DebateStatus.COMPLETED, DebateStatus.ERROR})


class ErrorReason(StrEnum):
    """Distinguishes the two ways a debate can end in ``error``."""

    FAILURE = "failure"
    CANCELLED = "cancelled"


class ContributionType(StrEnum):
    """Phase / contribution types, in their fixed in-round order."""

    PROPOSAL = "proposal"
    CRITIQUE = "critique"
    REFINEMENT = "refinement"


PHASE_ORDER: tuple[ContributionType, ...] = (
    ContributionType.PROPOSAL,
    ContributionType.CRITIQUE,
    ContributionType.REFINEMENT,
)


class NotificationLevel(StrEnum):
    """Notification severities."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class AgentRole(StrEnum):
    """Functional roles an agent can play."""

    ARCHITECT = "architect"
    SECURITY = "security"
    PERFORMANCE = "performance"
    TESTING = "testing"
    GENERALIST = "generalist"


@dataclass(frozen=True)
class AgentConfig:
    """Configuration of a debate participant (or the judge)."""

    id: str
    name: str
    role: AgentRole = AgentRole.GENERALIST
    model: str | None = None  # Override default model
    temperature: float = 0.5
    system_prompt: str | None = None


@dataclass(frozen=True)
class Contribution:
    """A single agent output within a round.

    ``error`` is set when the turn failed and this entry is the recorded
    failure note standing in for the agent's contribution.
    """

    agent_id: str
    agent_role: str
    type: ContributionType
    content: str
    target_agent_id: str | None = None
    error: str | None = None
    tool_metadata: ToolCallMetadata | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class AgentContribution:
    """Per-agent view of a contribution."""

    type: ContributionType
    round: int
    content: str


@dataclass(frozen=True)
class AgentState:
    """Per-agent presentation state."""

    id: str
    name: str
    role: str
    current_activity: str | None = None
    contributions: tuple[AgentContribution, ...] = ()


@dataclass(frozen=True)
class DebateSummary:
    """An agent's condensed view of the rounds before the one it is stored in."""

    agent_id: str
    agent_role: str
    summary: str
    before_chars: int
    after_chars: int


@dataclass(frozen=True)
class Round:
    """A debate round and its contributions, in completion order.

    ``summaries`` holds the history summaries agents produced before the
    round's proposals, at most one per agent.
    """

    round_number: int
    contributions: tuple[Contribution, ...] = ()
    summaries: tuple[DebateSummary, ...] = ()


@dataclass(frozen=True)
class Solution:
    """Final synthesized solution."""

    description: str
    synthesized_by: str | None = None


@dataclass(frozen=True)
class DebateMetadata:
    total_rounds: int
    duration_ms: int


@dataclass(frozen=True)
class DebateResult:
    """Terminal output of a debate."""

    debate_id: str
    solution: Solution
    rounds: tuple[Round, ...]
    metadata: DebateMetadata

    def to_dict(self) -> dict:
        """Convert to the JSON shape consumed by clients."""
        return {
            "debateId": self.debate_id,
            "solution": {
                "description": self.solution.description,
                "synthesizedBy": self.solution.synthesized_by,
            },
            "rounds": [
                {
                    "roundNumber": r.round_number,
                    "contributions": [contribution_to_dict(c) for c in r.contributions],
                    "summaries": [summary_to_dict(s) for s in r.summaries],
                }
                for r in self.rounds
            ],
            "metadata": {
                "totalRounds": self.metadata.total_rounds,
                "durationMs": self.metadata.duration_ms,
            },
        }


@dataclass(frozen=True)
class ClarificationItem:
    id: str
    question: str
    answer: str | None = None


@dataclass(frozen=True)
class AgentClarifications:
    """Clarifying questions posed by one agent."""

    agent_id: str
    agent_name: str
    role: str
    items: tuple[ClarificationItem, ...] = ()


@dataclass(frozen=True)
class NotificationMessage:
    """User-facing advisory message."""

    id: str
    type: NotificationLevel
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class DebateState:
    """Complete debate state; owned by the state machine.

    ``phase_expected`` / ``phase_recorded`` implement the phase barrier
    bookkeeping, ``completed_phases`` lists the phases closed in the current
    round, and ``round_records`` holds the append-only round history.
    """

    status: DebateStatus = DebateStatus.IDLE
    problem: str = ""
    clarifications_enabled: bool = False
    rounds: int = 3
    clarification_questions: tuple[AgentClarifications, ...] | None = None
    agents: tuple[AgentState, ...] = ()
    judge: AgentConfig | None = None
    current_round: int = 0
    total_rounds: int = 0
    current_phase: ContributionType | None = None
    phase_expected: int = 0
    phase_recorded: int = 0
    completed_phases: tuple[ContributionType, ...] = ()
    round_records: tuple[Round, ...] = ()
    synthesizing: bool = False
    solution: Solution | None = None
    result: DebateResult | None = None
    notifications: tuple[NotificationMessage, ...] = ()
    is_running: bool = False
    debate_id: str | None = None
    error_message: str | None = None
    error_reason: ErrorReason | None = None
    event_count: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_cancelled(self) -> bool:
        return self.status == DebateStatus.ERROR and self.error_reason == ErrorReason.CANCELLED

    @property
    def round_closed(self) -> bool:
        """True when every phase of the current round has completed."""
        return len(self.completed_phases) == len(PHASE_ORDER)

    def agent_by_id(self, agent_id: str) -> AgentState | None:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def agent_by_name(self, name: str) -> AgentState | None:
        for agent in self.agents:
            if agent.name == name:
                return agent
        return None

    def to_dict(self) -> dict:
        """Snapshot suitable for JSON transport."""
        return {
            "debateId": self.debate_id,
            "status": self.status.value,
            "errorReason": self.error_reason.value if self.error_reason else None,
            "errorMessage": self.error_message,
            "problem": self.problem,
            "clarificationsEnabled": self.clarifications_enabled,
            "rounds": self.rounds,
            "clarificationQuestions": (
                [
                    {
                        "agentId": group.agent_id,
                        "agentName": group.agent_name,
                        "role": group.role,
                        "items": [
                            {"id": i.id, "question": i.question, "answer": i.answer}
                            for i in group.items
                        ],
                    }
                    for group in self.clarification_questions
                ]
                if self.clarification_questions is not None
                else None
            ),
            "agents": [
                {
                    "id": a.id,
                    "name": a.name,
                    "role": a.role,
                    "currentActivity": a.current_activity,
                    "contributions": [
                        {"type": c.type.value, "round": c.round, "content": c.content}
                        for c in a.contributions
                    ],
                }
                for a in self.agents
            ],
            "currentRound": self.current_round,
            "totalRounds": self.total_rounds,
            "currentPhase": self.current_phase.value if self.current_phase else None,
            "solution": (
                {
                    "description": self.solution.description,
                    "synthesizedBy": self.solution.synthesized_by,
                }
                if self.solution
                else None
            ),
            "notifications": [
                {
                    "id": n.id,
                    "type": n.type.value,
                    "message": n.message,
                    "timestamp": n.timestamp.isoformat(),
                }
                for n in self.notifications
            ],
            "isRunning": self.is_running,
        }


def contribution_to_dict(contribution: Contribution) -> dict:
    data = {
        "agentId": contribution.agent_id,
        "agentRole": contribution.agent_role,
        "type": contribution.type.value,
        "content": contribution.content,
    }
    if contribution.target_agent_id:
        data["targetAgentId"] = contribution.target_agent_id
    if contribution.error:
        data["error"] = contribution.error
    if contribution.tool_metadata and contribution.tool_metadata.tool_call_iterations:
        data["metadata"] = contribution.tool_metadata.to_dict()
    return data



def summary_to_dict(summary: DebateSummary) -> dict:
    return {
        "agentId": summary.agent_id,
        "agentRole": summary.agent_role,
        "summary": summary.summary,
        "beforeChars": summary.before_chars,
        "afterChars": summary.after_chars,
    }
