"""Debate sessions: one state machine plus the background task driving it."""

import asyncio
import logging
import uuid

from ..config import config
from ..core.exceptions import DialecticError, FatalDebateError
from . import events as ev
from .barrier import FailurePolicy
from .orchestrator import DebateOrchestrator
from .state_machine import DebateStateMachine
from .tool_loop import DebateAgent
from .tooling import ToolRegistry
from .types import DebateResult, DebateState

logger = logging.getLogger(__name__)


class DebateSession:
    """A single debate running as an asyncio task."""

    def __init__(
        self,
        problem: str,
        agents: list[DebateAgent],
        judge: DebateAgent | None = None,
        rounds: int | None = None,
        clarifications: bool | None = None,
        on_agent_failure: FailurePolicy | None = None,
        tools: ToolRegistry | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())[:8]
        self.machine = DebateStateMachine()
        self.orchestrator = DebateOrchestrator(
            self.machine,
            agents,
            judge=judge,
            tools=tools,
            on_agent_failure=on_agent_failure,
        )
        self._task: asyncio.Task | None = None
        self._configure(problem, rounds, clarifications)

    def _configure(self, problem: str, rounds: int | None, clarifications: bool | None) -> None:
        if not problem.strip():
            raise FatalDebateError("Problem statement is empty")
        rounds = config.debate_default_rounds if rounds is None else rounds
        if not (1 <= rounds <= config.debate_max_rounds):
            raise FatalDebateError(f"rounds must be 1-{config.debate_max_rounds}, got {rounds}")

        self.machine.dispatch(ev.ProblemSet(problem=problem))
        self.machine.dispatch(ev.RoundsSet(rounds=rounds))
        if clarifications is not None and clarifications != self.state.clarifications_enabled:
            self.machine.dispatch(ev.ClarificationsToggled())

    @property
    def state(self) -> DebateState:
        return self.machine.state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Launch the debate in the background (requires a running event loop)."""
        if self._task is not None:
            raise FatalDebateError(f"Debate {self.id} was already started")
        self._task = asyncio.create_task(self.orchestrator.run(self.id), name=f"debate-{self.id}")
        self._task.add_done_callback(self._on_done)

    async def wait(self) -> DebateResult | None:
        """Wait for the debate to finish; returns its result, if any."""
        if self._task is None:
            raise FatalDebateError(f"Debate {self.id} has not been started")
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise

    def submit_clarifications(self, answers: dict[str, str]) -> None:
        self.orchestrator.submit_clarifications(answers)

    async def cancel(self, reason: str = "Debate cancelled") -> bool:
        """Cancel the debate; returns False when it already ended."""
        if self.state.is_terminal:
            return False
        self.machine.dispatch(ev.DebateCancelled(reason=reason))
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        return True

    def clear_notification(self, notification_id: str) -> None:
        self.machine.dispatch(ev.NotificationCleared(notification_id=notification_id))

    def events_since(self, seq: int = 0) -> list[dict]:
        return [
            {"seq": r.seq, "at": r.at.isoformat(), **ev.event_to_dict(r.event)}
            for r in self.machine.events_since(seq)
        ]

    def status(self) -> dict:
        data = self.state.to_dict()
        data["sessionId"] = self.id
        data["eventCount"] = self.state.event_count
        if self.state.result is not None:
            data["result"] = self.state.result.to_dict()
        return data

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Debate {self.id} task crashed: {error}", exc_info=error)


class SessionRegistry:
    """In-memory registry of debate sessions, keyed by session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, DebateSession] = {}
        self._lock = asyncio.Lock()

    async def add(self, session: DebateSession) -> DebateSession:
        """Register and start *session*.

        Raises:
            FatalDebateError: If a debate with the same id is still running.
        """
        async with self._lock:
            existing = self._sessions.get(session.id)
            if existing is not None and existing.running:
                raise FatalDebateError(f"Debate {session.id} is already running")
            self._sessions[session.id] = session
            session.start()
            self._evict_finished()
        return session

    def _evict_finished(self) -> None:
        """Drop the oldest finished sessions beyond ``session_retention``."""
        finished = [s.id for s in self._sessions.values() if not s.running]
        excess = len(finished) - config.session_retention
        for session_id in finished[: max(excess, 0)]:
            del self._sessions[session_id]
            logger.debug(f"Evicted finished debate {session_id}")

    def get(self, session_id: str) -> DebateSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise DialecticError(f"Unknown debate: {session_id}") from None

    def sessions(self) -> list[DebateSession]:
        return list(self._sessions.values())


# Global registry instance
_registry: SessionRegistry | None = None


def get_session_registry() -> SessionRegistry:
    """Get the global session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry()
    return _registry
