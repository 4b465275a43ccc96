"""Debate state machine: a pure reducer plus a single-writer dispatcher.

``reduce(state, event)`` is the only place debate state changes. It either
returns the next immutable ``DebateState`` or raises
``InvalidTransitionError`` and leaves the input untouched. Side effects
(agent calls, tool execution) live in the orchestration layer.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from ..config import config
from ..core.exceptions import InvalidTransitionError
from . import events as ev
from .notifications import (
    append_notification,
    clear_notification,
    new_notification,
    notification_for,
)
from .types import (
    PHASE_ORDER,
    TERMINAL_STATUSES,
    AgentContribution,
    AgentState,
    Contribution,
    DebateState,
    DebateStatus,
    ErrorReason,
    Round,
)

logger = logging.getLogger(__name__)

# Characters of content used to detect a re-delivered contribution
_DUPLICATE_PREFIX = 50

_ALL_STATUSES = frozenset(DebateStatus)
_NON_TERMINAL = _ALL_STATUSES - TERMINAL_STATUSES
_IDLE = frozenset({DebateStatus.IDLE})
_RUNNING = frozenset({DebateStatus.RUNNING})


def _reject(event: ev.DebateEvent, state: DebateState, reason: str) -> InvalidTransitionError:
    return InvalidTransitionError(event.event_type, state.status.value, reason)


def _clear_activities(agents: tuple[AgentState, ...]) -> tuple[AgentState, ...]:
    return tuple(replace(a, current_activity=None) for a in agents)


def _set_activity(
    state: DebateState, event: ev.AgentStarted | ev.AgentCompleted, activity: str | None
) -> DebateState:
    if state.agent_by_name(event.agent_name) is None:
        raise _reject(event, state, f"unknown agent '{event.agent_name}'")
    return replace(
        state,
        agents=tuple(
            replace(a, current_activity=activity) if a.name == event.agent_name else a
            for a in state.agents
        ),
    )


# ---------------------------------------------------------------------------
# Configuration (idle only)
# ---------------------------------------------------------------------------


def _on_problem_set(state: DebateState, event: ev.ProblemSet) -> DebateState:
    return replace(state, problem=event.problem)


def _on_rounds_set(state: DebateState, event: ev.RoundsSet) -> DebateState:
    if not (1 <= event.rounds <= config.debate_max_rounds):
        raise _reject(event, state, f"rounds must be 1-{config.debate_max_rounds}")
    return replace(state, rounds=event.rounds)


def _on_clarifications_toggled(state: DebateState, event: ev.ClarificationsToggled) -> DebateState:
    return replace(state, clarifications_enabled=not state.clarifications_enabled)


def _on_connection_established(
    state: DebateState, event: ev.ConnectionEstablished
) -> DebateState:
    ids = [a.id for a in event.agents]
    if len(ids) != len(set(ids)):
        raise _reject(event, state, "agent ids must be unique")
    return replace(
        state,
        agents=tuple(AgentState(id=a.id, name=a.name, role=a.role.value) for a in event.agents),
        judge=event.judge,
    )


# ---------------------------------------------------------------------------
# Start and clarifications
# ---------------------------------------------------------------------------


def _on_debate_started(state: DebateState, event: ev.DebateStarted) -> DebateState:
    if not state.problem.strip():
        raise _reject(event, state, "problem is empty")
    if not state.agents:
        raise _reject(event, state, "no agents configured")
    direct = not state.clarifications_enabled
    return replace(
        state,
        status=DebateStatus.RUNNING if direct else DebateStatus.COLLECTING_CLARIFICATIONS,
        debate_id=event.debate_id,
        is_running=True,
        current_round=1 if direct else 0,
        total_rounds=state.rounds,
        current_phase=None,
        phase_expected=0,
        phase_recorded=0,
        completed_phases=(),
        round_records=(),
        synthesizing=False,
        solution=None,
        result=None,
        clarification_questions=None,
        agents=tuple(
            AgentState(id=a.id, name=a.name, role=a.role) for a in state.agents
        ),
        error_message=None,
        error_reason=None,
    )


def _on_clarifications_required(
    state: DebateState, event: ev.ClarificationsRequired
) -> DebateState:
    return replace(
        state,
        status=DebateStatus.AWAITING_CLARIFICATIONS,
        clarification_questions=event.questions,
    )


def _on_clarifications_submitted(
    state: DebateState, event: ev.ClarificationsSubmitted
) -> DebateState:
    return replace(
        state,
        status=DebateStatus.RUNNING,
        current_round=1,
        clarification_questions=event.answers,
    )


# ---------------------------------------------------------------------------
# Rounds and phases
# ---------------------------------------------------------------------------


def _on_round_started(state: DebateState, event: ev.RoundStarted) -> DebateState:
    expected = len(state.round_records) + 1
    if event.round != expected:
        raise _reject(event, state, f"expected round {expected}, got {event.round}")
    if event.total != state.total_rounds:
        raise _reject(event, state, f"total rounds is {state.total_rounds}, got {event.total}")
    if event.round > state.total_rounds:
        raise _reject(event, state, "all rounds already started")
    if state.round_records and not state.round_closed:
        raise _reject(event, state, f"round {state.current_round} is not closed")
    return replace(
        state,
        current_round=event.round,
        current_phase=None,
        completed_phases=(),
        phase_expected=0,
        phase_recorded=0,
        round_records=state.round_records + (Round(round_number=event.round),),
    )


def _on_summary_created(state: DebateState, event: ev.SummaryCreated) -> DebateState:
    summary = event.summary
    if event.round != state.current_round or len(state.round_records) != state.current_round:
        raise _reject(event, state, f"round {event.round} is not the active round")
    if state.current_phase is not None or state.completed_phases:
        raise _reject(event, state, "summaries must precede the proposal phase")
    if state.agent_by_id(summary.agent_id) is None:
        raise _reject(event, state, f"unknown agent '{summary.agent_id}'")

    record = state.round_records[-1]
    if any(s.agent_id == summary.agent_id for s in record.summaries):
        logger.debug(f"Ignoring duplicate summary from {summary.agent_id}")
        return state
    updated = replace(record, summaries=record.summaries + (summary,))
    return replace(state, round_records=state.round_records[:-1] + (updated,))


def _on_phase_started(state: DebateState, event: ev.PhaseStarted) -> DebateState:
    if event.round != state.current_round or len(state.round_records) != state.current_round:
        raise _reject(event, state, f"round {event.round} is not the active round")
    if state.current_phase is not None:
        raise _reject(event, state, f"{state.current_phase.value} phase still open")
    if state.round_closed:
        raise _reject(event, state, f"round {event.round} is closed")
    next_phase = PHASE_ORDER[len(state.completed_phases)]
    if event.phase != next_phase:
        raise _reject(event, state, f"next phase is {next_phase.value}, got {event.phase.value}")
    if event.expected_count < 0:
        raise _reject(event, state, "expected count must be >= 0")
    return replace(
        state,
        current_phase=event.phase,
        phase_expected=event.expected_count,
        phase_recorded=0,
    )


def _on_agent_started(state: DebateState, event: ev.AgentStarted) -> DebateState:
    return _set_activity(state, event, event.activity)


def _on_agent_completed(state: DebateState, event: ev.AgentCompleted) -> DebateState:
    return _set_activity(state, event, None)


def _on_contribution_created(state: DebateState, event: ev.ContributionCreated) -> DebateState:
    contribution = event.contribution
    if event.round != state.current_round:
        raise _reject(event, state, f"round {event.round} is not the active round")
    if state.current_phase != contribution.type:
        open_phase = state.current_phase.value if state.current_phase else "none"
        raise _reject(
            event,
            state,
            f"{contribution.type.value} contribution while open phase is {open_phase}",
        )
    if state.agent_by_id(contribution.agent_id) is None:
        raise _reject(event, state, f"unknown agent '{contribution.agent_id}'")

    record = state.round_records[event.round - 1]
    key = _contribution_key(contribution)
    if any(_contribution_key(c) == key for c in record.contributions):
        logger.debug(f"Ignoring duplicate contribution from {contribution.agent_id}")
        return state

    if state.phase_recorded >= state.phase_expected:
        raise _reject(
            event, state, f"phase already holds {state.phase_expected} contribution(s)"
        )

    entry = AgentContribution(
        type=contribution.type, round=event.round, content=contribution.content
    )
    records = list(state.round_records)
    records[event.round - 1] = replace(record, contributions=record.contributions + (contribution,))
    return replace(
        state,
        agents=tuple(
            replace(a, contributions=a.contributions + (entry,))
            if a.id == contribution.agent_id
            else a
            for a in state.agents
        ),
        round_records=tuple(records),
        phase_recorded=state.phase_recorded + 1,
    )


def _contribution_key(contribution: Contribution) -> tuple:
    return (
        contribution.agent_id,
        contribution.type,
        contribution.target_agent_id,
        contribution.content[:_DUPLICATE_PREFIX],
    )


def _on_phase_completed(state: DebateState, event: ev.PhaseCompleted) -> DebateState:
    if event.round != state.current_round or event.phase != state.current_phase:
        raise _reject(event, state, f"{event.phase.value} phase of round {event.round} is not open")
    if state.phase_recorded != state.phase_expected:
        raise _reject(
            event,
            state,
            f"{state.phase_recorded}/{state.phase_expected} contributions recorded",
        )
    return replace(
        state,
        current_phase=None,
        completed_phases=state.completed_phases + (event.phase,),
    )


# ---------------------------------------------------------------------------
# Synthesis and completion
# ---------------------------------------------------------------------------


def _on_synthesis_started(state: DebateState, event: ev.SynthesisStarted) -> DebateState:
    all_closed = (
        len(state.round_records) == state.total_rounds
        and state.current_round == state.total_rounds
        and state.round_closed
    )
    if not all_closed:
        raise _reject(event, state, "rounds are still open")
    if state.synthesizing or state.solution is not None:
        raise _reject(event, state, "synthesis already ran")
    return replace(state, synthesizing=True)


def _on_synthesis_completed(state: DebateState, event: ev.SynthesisCompleted) -> DebateState:
    if not state.synthesizing:
        raise _reject(event, state, "synthesis has not started")
    return replace(state, synthesizing=False, solution=event.solution)


def _on_debate_completed(state: DebateState, event: ev.DebateCompleted) -> DebateState:
    if state.solution is None:
        raise _reject(event, state, "no solution has been synthesized")
    return replace(
        state,
        status=DebateStatus.COMPLETED,
        is_running=False,
        current_round=0,
        current_phase=None,
        result=event.result,
        agents=_clear_activities(state.agents),
    )


# ---------------------------------------------------------------------------
# Errors, warnings, cancellation, notifications
# ---------------------------------------------------------------------------


def _halt(state: DebateState, reason: ErrorReason, message: str) -> DebateState:
    return replace(
        state,
        status=DebateStatus.ERROR,
        error_reason=reason,
        error_message=message,
        is_running=False,
        current_round=0,
        current_phase=None,
        synthesizing=False,
        clarification_questions=None,
        agents=_clear_activities(state.agents),
    )


def _on_error(state: DebateState, event: ev.ErrorOccurred) -> DebateState:
    return _halt(state, ErrorReason.FAILURE, event.message)


def _on_warning(state: DebateState, event: ev.WarningRaised) -> DebateState:
    return state


def _on_debate_cancelled(state: DebateState, event: ev.DebateCancelled) -> DebateState:
    return _halt(state, ErrorReason.CANCELLED, event.reason)


def _on_notification_added(state: DebateState, event: ev.NotificationAdded) -> DebateState:
    return replace(
        state, notifications=append_notification(state.notifications, event.notification)
    )


def _on_notification_cleared(state: DebateState, event: ev.NotificationCleared) -> DebateState:
    return replace(
        state, notifications=clear_notification(state.notifications, event.notification_id)
    )


# event class -> (allowed source statuses, handler)
_TRANSITIONS: dict[type, tuple[frozenset, Callable]] = {
    ev.ProblemSet: (_IDLE, _on_problem_set),
    ev.RoundsSet: (_IDLE, _on_rounds_set),
    ev.ClarificationsToggled: (_IDLE, _on_clarifications_toggled),
    ev.ConnectionEstablished: (_IDLE, _on_connection_established),
    ev.DebateStarted: (_IDLE, _on_debate_started),
    ev.ClarificationsRequired: (
        frozenset({DebateStatus.COLLECTING_CLARIFICATIONS}),
        _on_clarifications_required,
    ),
    ev.ClarificationsSubmitted: (
        frozenset({DebateStatus.AWAITING_CLARIFICATIONS}),
        _on_clarifications_submitted,
    ),
    ev.RoundStarted: (_RUNNING, _on_round_started),
    ev.SummaryCreated: (_RUNNING, _on_summary_created),
    ev.PhaseStarted: (_RUNNING, _on_phase_started),
    ev.AgentStarted: (_RUNNING, _on_agent_started),
    ev.AgentCompleted: (_RUNNING, _on_agent_completed),
    ev.PhaseCompleted: (_RUNNING, _on_phase_completed),
    ev.ContributionCreated: (_RUNNING, _on_contribution_created),
    ev.SynthesisStarted: (_RUNNING, _on_synthesis_started),
    ev.SynthesisCompleted: (_RUNNING, _on_synthesis_completed),
    ev.DebateCompleted: (_RUNNING, _on_debate_completed),
    ev.ErrorOccurred: (_NON_TERMINAL, _on_error),
    ev.WarningRaised: (_NON_TERMINAL, _on_warning),
    ev.DebateCancelled: (_NON_TERMINAL, _on_debate_cancelled),
    ev.NotificationAdded: (_ALL_STATUSES, _on_notification_added),
    ev.NotificationCleared: (_ALL_STATUSES, _on_notification_cleared),
}

_missing = set(ev.EVENT_TYPES) - set(_TRANSITIONS)
if _missing:
    raise RuntimeError(f"No transition for event type(s): {sorted(t.__name__ for t in _missing)}")


def reduce(state: DebateState, event: ev.DebateEvent, at: datetime | None = None) -> DebateState:
    """Apply *event* to *state* and return the next state.

    Raises:
        InvalidTransitionError: If the event is not allowed in the current
            state or its payload is inconsistent with it.
    """
    try:
        allowed, handler = _TRANSITIONS[type(event)]
    except KeyError:
        raise TypeError(f"Not a debate event: {event!r}") from None

    if state.status not in allowed:
        raise _reject(event, state, "")

    new_state = handler(state, event)
    if new_state is state and not isinstance(event, ev.WarningRaised):
        # Absorbed (duplicate delivery)
        return state

    count = state.event_count + 1
    derived = notification_for(event)
    notifications = new_state.notifications
    if derived is not None:
        level, message = derived
        notifications = append_notification(
            notifications,
            new_notification(
                level,
                message,
                notification_id=f"{new_state.debate_id or 'debate'}-{count}",
                timestamp=at,
            ),
        )
    return replace(new_state, event_count=count, notifications=notifications)


@dataclass(frozen=True)
class EventRecord:
    """An accepted event with its sequence number and acceptance time."""

    seq: int
    at: datetime
    event: ev.DebateEvent


Subscriber = Callable[[ev.DebateEvent, DebateState], None]


class DebateStateMachine:
    """Single writer of debate state.

    ``dispatch`` serializes events through ``reduce``, publishes the new
    snapshot, records the event for replay, then notifies subscribers.
    Readers only ever see complete snapshots.
    """

    def __init__(self, initial: DebateState | None = None) -> None:
        self._initial = initial or DebateState(
            rounds=config.debate_default_rounds,
            clarifications_enabled=config.clarifications_enabled,
        )
        self._state = self._initial
        self._log: list[EventRecord] = []
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> DebateState:
        return self._state

    @property
    def events(self) -> tuple[EventRecord, ...]:
        return tuple(self._log)

    def events_since(self, seq: int) -> list[EventRecord]:
        """Accepted events with a sequence number greater than *seq*."""
        return [r for r in self._log if r.seq > seq]

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register an observer; returns a callable that unsubscribes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def dispatch(self, event: ev.DebateEvent) -> DebateState:
        """Apply an event; raises InvalidTransitionError if it is rejected."""
        with self._lock:
            at = datetime.now()
            try:
                new_state = reduce(self._state, event, at=at)
            except InvalidTransitionError as e:
                logger.warning(f"Rejected event: {e}")
                raise
            if new_state is self._state:
                return new_state
            self._state = new_state
            record = EventRecord(seq=new_state.event_count, at=at, event=event)
            self._log.append(record)

        for subscriber in list(self._subscribers):
            try:
                subscriber(event, new_state)
            except Exception:
                logger.warning(f"Subscriber failed on {event.event_type}", exc_info=True)
        return new_state

    def try_dispatch(self, event: ev.DebateEvent) -> bool:
        """Apply an event, returning False instead of raising on rejection."""
        try:
            self.dispatch(event)
        except InvalidTransitionError:
            return False
        return True

    def replay(self) -> DebateState:
        """Rebuild the current state from the initial state and the event log."""
        return replay(self._log, self._initial)


def replay(records: Iterable[EventRecord], initial: DebateState | None = None) -> DebateState:
    """Fold recorded events into a state, reproducing the original snapshot."""
    state = initial or DebateState()
    for record in records:
        state = reduce(state, record.event, at=record.at)
    return state
