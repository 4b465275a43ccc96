"""Tests for the debate reducer and state machine."""

from dataclasses import replace

import pytest

from dialectic_mcp.core.exceptions import InvalidTransitionError
from dialectic_mcp.debate import events as ev
from dialectic_mcp.debate.notifications import new_notification
from dialectic_mcp.debate.state_machine import DebateStateMachine, reduce, replay
from dialectic_mcp.debate.types import (
    PHASE_ORDER,
    AgentClarifications,
    AgentConfig,
    AgentRole,
    ClarificationItem,
    Contribution,
    ContributionType,
    DebateMetadata,
    DebateResult,
    DebateState,
    DebateStatus,
    DebateSummary,
    ErrorReason,
    NotificationLevel,
    Solution,
)

ALPHA = AgentConfig(id="a1", name="Alpha", role=AgentRole.ARCHITECT)
BETA = AgentConfig(id="a2", name="Beta", role=AgentRole.SECURITY)
AGENTS = (ALPHA, BETA)

PROPOSAL = ContributionType.PROPOSAL
CRITIQUE = ContributionType.CRITIQUE
REFINEMENT = ContributionType.REFINEMENT


def _contribution(agent, kind, content, target=None):
    return Contribution(
        agent_id=agent.id,
        agent_role=agent.role.value,
        type=kind,
        content=content,
        target_agent_id=target,
    )


def _setup_events(rounds=2, clarifications=False):
    events = [
        ev.ProblemSet(problem="Design a cache"),
        ev.RoundsSet(rounds=rounds),
        ev.ConnectionEstablished(agents=AGENTS),
    ]
    if clarifications:
        events.append(ev.ClarificationsToggled())
    events.append(ev.DebateStarted(debate_id="d1"))
    return events


def _round_events(n, total):
    events = [ev.RoundStarted(round=n, total=total)]

    events.append(ev.PhaseStarted(round=n, phase=PROPOSAL, expected_count=2))
    for agent in AGENTS:
        events.append(ev.AgentStarted(agent_name=agent.name, activity="proposing"))
        events.append(
            ev.ContributionCreated(
                round=n, contribution=_contribution(agent, PROPOSAL, f"{agent.name} proposal r{n}")
            )
        )
        events.append(ev.AgentCompleted(agent_name=agent.name, activity="proposing"))
    events.append(ev.PhaseCompleted(round=n, phase=PROPOSAL))

    events.append(ev.PhaseStarted(round=n, phase=CRITIQUE, expected_count=2))
    for critic, target in [(ALPHA, BETA), (BETA, ALPHA)]:
        events.append(
            ev.ContributionCreated(
                round=n,
                contribution=_contribution(
                    critic, CRITIQUE, f"{critic.name} on {target.name} r{n}", target.id
                ),
            )
        )
    events.append(ev.PhaseCompleted(round=n, phase=CRITIQUE))

    events.append(ev.PhaseStarted(round=n, phase=REFINEMENT, expected_count=2))
    for agent in AGENTS:
        events.append(
            ev.ContributionCreated(
                round=n, contribution=_contribution(agent, REFINEMENT, f"{agent.name} refined r{n}")
            )
        )
    events.append(ev.PhaseCompleted(round=n, phase=REFINEMENT))
    return events


def _fold(events, state=None):
    state = state or DebateState()
    for event in events:
        state = reduce(state, event)
    return state


def _running(rounds=2):
    return _fold(_setup_events(rounds))


def _check_invariants(previous: DebateState, state: DebateState) -> None:
    if state.status == DebateStatus.RUNNING:
        assert 1 <= state.current_round <= state.total_rounds
    else:
        assert state.current_round == 0
    assert state.phase_recorded <= state.phase_expected or state.current_phase is None
    assert state.completed_phases == PHASE_ORDER[: len(state.completed_phases)]
    if state.solution is not None:
        assert len(state.round_records) == state.total_rounds
        assert state.round_closed
    # Contributions are append-only
    for before, after in zip(previous.round_records, state.round_records, strict=False):
        assert after.contributions[: len(before.contributions)] == before.contributions
    for before, after in zip(previous.agents, state.agents, strict=False):
        if before.id == after.id:
            assert after.contributions[: len(before.contributions)] == before.contributions


class TestConfigurationEvents:
    """Tests for idle-only configuration events."""

    def test_set_problem_and_rounds(self):
        """Problem and rounds are recorded while idle."""
        state = _fold([ev.ProblemSet(problem="P"), ev.RoundsSet(rounds=4)])
        assert state.problem == "P"
        assert state.rounds == 4
        assert state.status == DebateStatus.IDLE

    def test_toggle_clarifications(self):
        """Toggling flips the flag each time."""
        state = reduce(DebateState(), ev.ClarificationsToggled())
        assert state.clarifications_enabled is True
        assert reduce(state, ev.ClarificationsToggled()).clarifications_enabled is False

    def test_rounds_out_of_range_rejected(self):
        """Zero rounds is rejected."""
        with pytest.raises(InvalidTransitionError):
            reduce(DebateState(), ev.RoundsSet(rounds=0))

    def test_configuration_rejected_once_running(self):
        """set-problem is only allowed in idle."""
        state = _running()
        with pytest.raises(InvalidTransitionError) as exc:
            reduce(state, ev.ProblemSet(problem="other"))
        assert exc.value.status == "running"
        assert exc.value.event_type == "set-problem"

    def test_duplicate_agent_ids_rejected(self):
        """Roster agent ids must be unique."""
        with pytest.raises(InvalidTransitionError):
            reduce(DebateState(), ev.ConnectionEstablished(agents=(ALPHA, ALPHA)))

    def test_connection_adds_notification(self):
        """Connection produces a success notification."""
        state = reduce(DebateState(), ev.ConnectionEstablished(agents=AGENTS))
        assert [a.id for a in state.agents] == ["a1", "a2"]
        assert state.notifications[-1].type == NotificationLevel.SUCCESS


class TestDebateStart:
    """Tests for debate-started and clarifications."""

    def test_start_without_clarifications_goes_running(self):
        """Clarifications disabled: idle -> running, round 1."""
        state = _running(rounds=2)
        assert state.status == DebateStatus.RUNNING
        assert state.is_running is True
        assert state.current_round == 1
        assert state.total_rounds == 2
        assert state.debate_id == "d1"

    def test_start_with_clarifications(self):
        """Clarifications enabled: idle -> collecting_clarifications."""
        state = _fold(_setup_events(clarifications=True))
        assert state.status == DebateStatus.COLLECTING_CLARIFICATIONS
        assert state.current_round == 0

    def test_clarification_lifecycle(self):
        """required -> awaiting; submitted -> running with answers stored."""
        state = _fold(_setup_events(clarifications=True))
        questions = (
            AgentClarifications(
                agent_id="a1",
                agent_name="Alpha",
                role="architect",
                items=(ClarificationItem(id="a1.q1", question="Scale?"),),
            ),
        )
        state = reduce(state, ev.ClarificationsRequired(questions=questions))
        assert state.status == DebateStatus.AWAITING_CLARIFICATIONS
        assert state.clarification_questions == questions

        answered = (replace(questions[0], items=(replace(questions[0].items[0], answer="1k"),)),)
        state = reduce(state, ev.ClarificationsSubmitted(answers=answered))
        assert state.status == DebateStatus.RUNNING
        assert state.current_round == 1
        assert state.clarification_questions[0].items[0].answer == "1k"

    def test_submit_without_required_rejected(self):
        """clarifications-submitted needs awaiting_clarifications."""
        state = _fold(_setup_events(clarifications=True))
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.ClarificationsSubmitted())

    def test_start_requires_problem(self):
        """Empty problem is rejected."""
        with pytest.raises(InvalidTransitionError):
            _fold([ev.ConnectionEstablished(agents=AGENTS), ev.DebateStarted(debate_id="x")])

    def test_start_requires_agents(self):
        """No roster is rejected."""
        with pytest.raises(InvalidTransitionError):
            _fold([ev.ProblemSet(problem="P"), ev.DebateStarted(debate_id="x")])


class TestPhaseOrdering:
    """Tests for round and phase sequencing."""

    def test_phase_start_in_idle_rejected(self):
        """phase-start while idle leaves the state unchanged."""
        state = DebateState()
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=2))
        assert state == DebateState()

    def test_critique_before_proposal_completes_rejected(self):
        """A critique cannot be recorded while the proposal phase is open."""
        state = _fold(
            [
                ev.RoundStarted(round=1, total=2),
                ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=2),
            ],
            _running(),
        )
        with pytest.raises(InvalidTransitionError):
            reduce(
                state,
                ev.ContributionCreated(
                    round=1, contribution=_contribution(ALPHA, CRITIQUE, "too early", "a2")
                ),
            )

    def test_critique_phase_cannot_start_first(self):
        """Phases must follow proposal -> critique -> refinement."""
        state = reduce(_running(), ev.RoundStarted(round=1, total=2))
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.PhaseStarted(round=1, phase=CRITIQUE, expected_count=2))

    def test_phase_complete_requires_expected_count(self):
        """Phase completion needs exactly expectedCount contributions."""
        state = _fold(
            [
                ev.RoundStarted(round=1, total=2),
                ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=3),
                ev.ContributionCreated(round=1, contribution=_contribution(ALPHA, PROPOSAL, "p1")),
                ev.ContributionCreated(round=1, contribution=_contribution(BETA, PROPOSAL, "p2")),
            ],
            _running(),
        )
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.PhaseCompleted(round=1, phase=PROPOSAL))

        state = reduce(
            state,
            ev.ContributionCreated(round=1, contribution=_contribution(ALPHA, PROPOSAL, "p3")),
        )
        state = reduce(state, ev.PhaseCompleted(round=1, phase=PROPOSAL))
        assert state.completed_phases == (PROPOSAL,)
        assert state.current_phase is None

    def test_contribution_beyond_expected_rejected(self):
        """More contributions than announced are rejected."""
        state = _fold(
            [
                ev.RoundStarted(round=1, total=2),
                ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=1),
                ev.ContributionCreated(round=1, contribution=_contribution(ALPHA, PROPOSAL, "p1")),
            ],
            _running(),
        )
        with pytest.raises(InvalidTransitionError):
            reduce(
                state,
                ev.ContributionCreated(round=1, contribution=_contribution(BETA, PROPOSAL, "p2")),
            )

    def test_next_round_requires_closed_round(self):
        """round-start is rejected while the current round is open."""
        state = _fold(
            [
                ev.RoundStarted(round=1, total=2),
                ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=0),
                ev.PhaseCompleted(round=1, phase=PROPOSAL),
            ],
            _running(),
        )
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.RoundStarted(round=2, total=2))

    def test_round_numbers_are_sequential(self):
        """Skipping a round is rejected."""
        with pytest.raises(InvalidTransitionError):
            reduce(_running(), ev.RoundStarted(round=2, total=2))

    def test_contributions_appended_to_agent_and_round(self):
        """contribution-created updates the round record and the agent."""
        state = _fold(_round_events(1, 2), _running())
        record = state.round_records[0]
        assert len(record.contributions) == 6
        alpha = state.agent_by_id("a1")
        assert [c.type for c in alpha.contributions] == [PROPOSAL, CRITIQUE, REFINEMENT]
        assert state.round_closed

    def test_activity_set_and_cleared(self):
        """agent-start sets currentActivity; agent-complete clears it."""
        state = reduce(_running(), ev.AgentStarted(agent_name="Alpha", activity="proposing"))
        assert state.agent_by_name("Alpha").current_activity == "proposing"
        state = reduce(state, ev.AgentCompleted(agent_name="Alpha", activity="proposing"))
        assert state.agent_by_name("Alpha").current_activity is None

    def test_unknown_agent_activity_rejected(self):
        """Activity for an agent outside the roster is rejected."""
        with pytest.raises(InvalidTransitionError):
            reduce(_running(), ev.AgentStarted(agent_name="Gamma", activity="proposing"))

    def test_duplicate_contribution_absorbed(self):
        """A re-delivered contribution does not change the state."""
        first = ev.ContributionCreated(round=1, contribution=_contribution(ALPHA, PROPOSAL, "p1"))
        state = _fold(
            [
                ev.RoundStarted(round=1, total=2),
                ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=2),
                first,
            ],
            _running(),
        )
        assert reduce(state, first) is state


class TestSummaries:
    """Tests for summary-created."""

    @staticmethod
    def _summary(agent=ALPHA, text="condensed"):
        return DebateSummary(
            agent_id=agent.id,
            agent_role=agent.role.value,
            summary=text,
            before_chars=400,
            after_chars=len(text),
        )

    def _round_two(self):
        return _fold([*_round_events(1, 2), ev.RoundStarted(round=2, total=2)], _running())

    def test_stored_on_current_round(self):
        """A summary lands on the active round and adds a notification."""
        state = reduce(self._round_two(), ev.SummaryCreated(round=2, summary=self._summary()))
        assert state.round_records[1].summaries == (self._summary(),)
        assert state.round_records[0].summaries == ()
        assert state.notifications[-1].message == "Summarized history for a1 (400 to 9 chars)"

    def test_duplicate_absorbed(self):
        """A second summary from the same agent in one round is ignored."""
        event = ev.SummaryCreated(round=2, summary=self._summary())
        state = reduce(self._round_two(), event)
        again = ev.SummaryCreated(round=2, summary=self._summary(text="other"))
        assert reduce(state, again) is state

    def test_rejected_once_proposals_started(self):
        """Summaries must come before the proposal phase."""
        state = reduce(
            self._round_two(), ev.PhaseStarted(round=2, phase=PROPOSAL, expected_count=2)
        )
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.SummaryCreated(round=2, summary=self._summary()))

    def test_wrong_round_or_agent_rejected(self):
        """The round must be active and the agent must be on the roster."""
        state = self._round_two()
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.SummaryCreated(round=1, summary=self._summary()))
        gamma = AgentConfig(id="a3", name="Gamma")
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.SummaryCreated(round=2, summary=self._summary(agent=gamma)))


class TestSynthesisAndCompletion:
    """Tests for synthesis and debate completion."""

    def test_synthesis_before_rounds_close_rejected(self):
        """synthesis-start needs every round closed."""
        state = _fold(_round_events(1, 2), _running(rounds=2))
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.SynthesisStarted())

    def test_full_debate(self):
        """Two rounds, synthesis once, debate-complete with the result."""
        state = DebateState()
        previous = state
        events = _setup_events(rounds=2) + _round_events(1, 2) + _round_events(2, 2)
        events += [
            ev.SynthesisStarted(),
            ev.SynthesisCompleted(solution=Solution(description="final", synthesized_by="judge")),
        ]
        for event in events:
            state = reduce(state, event)
            _check_invariants(previous, state)
            previous = state

        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.SynthesisStarted())

        result = DebateResult(
            debate_id="d1",
            solution=state.solution,
            rounds=state.round_records,
            metadata=DebateMetadata(total_rounds=2, duration_ms=10),
        )
        final = reduce(state, ev.DebateCompleted(result=result))
        _check_invariants(state, final)
        assert final.status == DebateStatus.COMPLETED
        assert final.is_running is False
        assert final.current_round == 0
        assert final.result.metadata.total_rounds == 2
        assert final.solution.synthesized_by == "judge"

    def test_complete_without_solution_rejected(self):
        """debate-complete needs a synthesized solution."""
        result = DebateResult(
            debate_id="d1",
            solution=Solution(description="x"),
            rounds=(),
            metadata=DebateMetadata(total_rounds=2, duration_ms=0),
        )
        with pytest.raises(InvalidTransitionError):
            reduce(_running(), ev.DebateCompleted(result=result))


class TestTerminalStates:
    """Tests for error and cancellation."""

    def test_error_halts(self):
        """error records the message and halts the debate."""
        state = reduce(_running(), ev.ErrorOccurred(message="boom"))
        assert state.status == DebateStatus.ERROR
        assert state.error_reason == ErrorReason.FAILURE
        assert state.error_message == "boom"
        assert state.current_round == 0
        assert state.notifications[-1].type == NotificationLevel.ERROR

    def test_cancel_is_distinguishable(self):
        """Cancellation routes to error with the cancelled reason."""
        state = reduce(_running(), ev.DebateCancelled())
        assert state.status == DebateStatus.ERROR
        assert state.is_cancelled

    def test_no_events_after_cancel(self):
        """Contributions are rejected once cancelled."""
        state = _fold(
            [
                ev.RoundStarted(round=1, total=2),
                ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=2),
                ev.DebateCancelled(),
            ],
            _running(),
        )
        with pytest.raises(InvalidTransitionError):
            reduce(
                state,
                ev.ContributionCreated(round=1, contribution=_contribution(ALPHA, PROPOSAL, "p")),
            )
        with pytest.raises(InvalidTransitionError):
            reduce(state, ev.ErrorOccurred(message="late"))

    def test_warning_keeps_status(self):
        """A warning only adds a notification."""
        state = reduce(_running(), ev.WarningRaised(message="careful"))
        assert state.status == DebateStatus.RUNNING
        assert state.notifications[-1].message == "careful"

    def test_notifications_allowed_after_terminal(self):
        """Notification add/clear still work once the debate ended."""
        state = reduce(_running(), ev.DebateCancelled())
        note = new_notification(NotificationLevel.INFO, "later", notification_id="n1")
        state = reduce(state, ev.NotificationAdded(notification=note))
        assert state.notifications[-1].id == "n1"
        state = reduce(state, ev.NotificationCleared(notification_id="n1"))
        assert all(n.id != "n1" for n in state.notifications)


class TestDebateStateMachine:
    """Tests for the single-writer dispatcher."""

    def test_rejected_event_leaves_state(self):
        """dispatch raises and keeps the previous snapshot."""
        machine = DebateStateMachine()
        before = machine.state
        with pytest.raises(InvalidTransitionError):
            machine.dispatch(ev.PhaseStarted(round=1, phase=PROPOSAL, expected_count=1))
        assert machine.state is before
        assert machine.events == ()

    def test_try_dispatch(self):
        """try_dispatch reports rejection as False."""
        machine = DebateStateMachine()
        assert machine.try_dispatch(ev.ProblemSet(problem="P")) is True
        assert machine.try_dispatch(ev.SynthesisStarted()) is False

    def test_subscribers_receive_new_state(self):
        """Subscribers see each accepted event with its snapshot."""
        machine = DebateStateMachine()
        seen = []
        unsubscribe = machine.subscribe(lambda event, state: seen.append((event, state.problem)))
        machine.dispatch(ev.ProblemSet(problem="P"))
        unsubscribe()
        machine.dispatch(ev.ProblemSet(problem="Q"))
        assert seen == [(ev.ProblemSet(problem="P"), "P")]

    def test_failing_subscriber_does_not_block(self):
        """A subscriber exception is logged, not propagated."""
        machine = DebateStateMachine()

        def broken(event, state):
            raise RuntimeError("observer bug")

        machine.subscribe(broken)
        machine.dispatch(ev.ProblemSet(problem="P"))
        assert machine.state.problem == "P"

    def test_events_since(self):
        """Event log is ordered by sequence number."""
        machine = DebateStateMachine()
        for event in _setup_events():
            machine.dispatch(event)
        records = machine.events
        assert [r.seq for r in records] == list(range(1, len(records) + 1))
        assert [r.event for r in machine.events_since(2)] == [r.event for r in records[2:]]

    def test_replay_reproduces_state(self):
        """Folding the event log rebuilds the identical snapshot."""
        machine = DebateStateMachine(DebateState())
        for event in _setup_events(rounds=1) + _round_events(1, 1):
            machine.dispatch(event)
        machine.dispatch(ev.WarningRaised(message="w"))
        assert machine.replay() == machine.state
        assert replay(machine.events, DebateState()) == machine.state

    def test_notification_ids_are_unique(self):
        """Derived notifications get distinct ids."""
        machine = DebateStateMachine()
        for event in _setup_events(rounds=1) + _round_events(1, 1):
            machine.dispatch(event)
        ids = [n.id for n in machine.state.notifications]
        assert len(ids) == len(set(ids))
