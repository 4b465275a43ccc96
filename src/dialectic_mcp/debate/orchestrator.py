"""Debate orchestrator: rounds, phases, and synthesis.

Drives a configured ``DebateStateMachine`` from ``idle`` to a terminal
state. Every state change goes through ``machine.dispatch``; agent turns
run through the phase barrier and the tool-call loop.
"""

import asyncio
import logging
import time
import uuid

from ..audit import audit_event
from ..config import config
from ..core.exceptions import (
    AgentTurnError,
    DialecticError,
    FatalDebateError,
    InvalidTransitionError,
)
from . import events as ev
from .agents import GeminiDebateAgent, judge_config
from .barrier import FailurePolicy, PhaseBarrier, PhaseTurn
from .builtin_tools import builtin_registry
from .clarifications import apply_answers, collect_clarifications
from .prompts import critique_prompt, proposal_prompt, refinement_prompt, synthesis_prompt
from .state_machine import DebateStateMachine
from .summarizer import SUMMARY_ACTIVITY, HistorySummarizer, latest_summary
from .tool_loop import DebateAgent, ToolCallLoopExecutor, TurnContext
from .tooling import RegistryToolExecutor, ToolRegistry
from .types import (
    Contribution,
    ContributionType,
    DebateMetadata,
    DebateResult,
    DebateStatus,
    Round,
    Solution,
)

logger = logging.getLogger(__name__)


class DebateOrchestrator:
    """Runs one debate over a state machine that already holds the problem.

    Turn failures follow ``on_agent_failure`` (see ``PhaseBarrier``); any
    other ``DialecticError`` ends the debate with a single ``error`` event.
    Cancelling the task running ``run`` ends it in the cancelled variant of
    ``error``.
    """

    def __init__(
        self,
        machine: DebateStateMachine,
        agents: list[DebateAgent],
        judge: DebateAgent | None = None,
        tools: ToolRegistry | None = None,
        executor: ToolCallLoopExecutor | None = None,
        on_agent_failure: FailurePolicy | None = None,
        include_full_history: bool | None = None,
        clarifications_max_per_agent: int | None = None,
        summarizer: HistorySummarizer | None = None,
    ) -> None:
        if not agents:
            raise FatalDebateError("A debate needs at least one agent")
        self.machine = machine
        self.agents = list(agents)
        self.judge = judge or GeminiDebateAgent(judge_config())

        if executor is None:
            registry = (tools or ToolRegistry()).extend(builtin_registry())
            executor = ToolCallLoopExecutor(RegistryToolExecutor(registry), registry.schemas())
        self.executor = executor
        self.barrier = PhaseBarrier(machine, executor, on_agent_failure)
        self.summarizer = summarizer or HistorySummarizer()

        self.include_full_history = (
            config.include_full_history if include_full_history is None else include_full_history
        )
        self.max_questions = clarifications_max_per_agent or config.clarifications_max_per_agent
        self._answers: asyncio.Future | None = None
        self._started = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, debate_id: str | None = None) -> DebateResult | None:
        """Run the debate to completion.

        Returns the result, or None when the debate ended in ``error``.
        """
        debate_id = debate_id or str(uuid.uuid4())[:8]
        self._started = time.monotonic()

        self.machine.dispatch(
            ev.ConnectionEstablished(
                agents=tuple(a.config for a in self.agents), judge=self.judge.config
            )
        )
        self.machine.dispatch(ev.DebateStarted(debate_id=debate_id))
        audit_event("debate_started", debate_id=debate_id, agents=str(len(self.agents)))
        logger.info(f"Debate {debate_id} started with {len(self.agents)} agent(s)")

        try:
            if self.machine.state.status == DebateStatus.COLLECTING_CLARIFICATIONS:
                await self._clarify()

            for round_number in range(1, self.machine.state.total_rounds + 1):
                await self._run_round(round_number)

            solution = await self._synthesize()
            result = DebateResult(
                debate_id=debate_id,
                solution=solution,
                rounds=self.machine.state.round_records,
                metadata=DebateMetadata(
                    total_rounds=self.machine.state.total_rounds,
                    duration_ms=int((time.monotonic() - self._started) * 1000),
                ),
            )
            self.machine.dispatch(ev.DebateCompleted(result=result))
        except asyncio.CancelledError:
            if not self.machine.state.is_terminal:
                self.machine.dispatch(ev.DebateCancelled())
            audit_event("debate_cancelled", debate_id=debate_id)
            logger.info(f"Debate {debate_id} cancelled")
            raise
        except DialecticError as e:
            logger.exception(f"Debate {debate_id} failed")
            if not self.machine.state.is_terminal:
                self.machine.dispatch(ev.ErrorOccurred(message=str(e)))
            audit_event("debate_failed", debate_id=debate_id, error=str(e))
            return None
        except Exception as e:
            logger.exception(f"Debate {debate_id} crashed")
            if not self.machine.state.is_terminal:
                self.machine.dispatch(ev.ErrorOccurred(message=f"Internal error: {e}"))
            audit_event("debate_failed", debate_id=debate_id, error=str(e))
            raise
        finally:
            if self._answers is not None and not self._answers.done():
                self._answers.cancel()

        audit_event("debate_completed", debate_id=debate_id)
        logger.info(f"Debate {debate_id} completed in {result.metadata.duration_ms}ms")
        return result

    def submit_clarifications(self, answers: dict[str, str]) -> None:
        """Deliver the user's answers, keyed by clarification item id."""
        if self._answers is None or self._answers.done():
            raise InvalidTransitionError(
                ev.ClarificationsSubmitted.event_type,
                self.machine.state.status.value,
                "no clarifications are pending",
            )
        self._answers.set_result(dict(answers))

    # ------------------------------------------------------------------
    # Clarifications
    # ------------------------------------------------------------------

    async def _clarify(self) -> None:
        problem = self.machine.state.problem
        questions = await collect_clarifications(
            problem, self.agents, self.executor, self.max_questions, self._warn
        )
        if not any(group.items for group in questions):
            self.machine.dispatch(ev.ClarificationsRequired(questions=questions))
            self.machine.dispatch(ev.ClarificationsSubmitted(answers=questions))
            return

        self._answers = asyncio.get_running_loop().create_future()
        self.machine.dispatch(ev.ClarificationsRequired(questions=questions))
        answers = await self._answers
        self.machine.dispatch(ev.ClarificationsSubmitted(answers=apply_answers(questions, answers)))

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.machine.dispatch(ev.WarningRaised(message=message))

    # ------------------------------------------------------------------
    # Rounds
    # ------------------------------------------------------------------

    async def _run_round(self, round_number: int) -> None:
        self.machine.dispatch(
            ev.RoundStarted(round=round_number, total=self.machine.state.total_rounds)
        )
        if round_number > 1:
            await self._summarization_phase(round_number)
        proposals = await self._proposal_phase(round_number)
        critiques = await self._critique_phase(round_number, proposals)
        await self._refinement_phase(round_number, proposals, critiques)

    async def _summarization_phase(self, round_number: int) -> None:
        """Let agents with a long history condense it, one agent at a time.

        A failed summary is a warning; the agent keeps the full history.
        """
        history = self._history(round_number)
        for agent in self.agents:
            if not self.summarizer.should_summarize(history, agent.config.id):
                continue
            name = agent.config.name
            self.machine.dispatch(ev.AgentStarted(agent_name=name, activity=SUMMARY_ACTIVITY))
            try:
                summary = await self.summarizer.summarize(
                    agent, history, self.executor, self.machine.state
                )
            except AgentTurnError as e:
                self._warn(f"Agent {name} could not summarize its history: {e}")
            else:
                self.machine.dispatch(ev.SummaryCreated(round=round_number, summary=summary))
            self.machine.dispatch(ev.AgentCompleted(agent_name=name, activity=SUMMARY_ACTIVITY))

    def _history(self, round_number: int) -> tuple[Round, ...]:
        return self.machine.state.round_records[: round_number - 1]

    def _summary(self, round_number: int, agent_id: str) -> str | None:
        return latest_summary(self.machine.state.round_records[:round_number], agent_id)

    def _context(self, prompt: str) -> TurnContext:
        return TurnContext(prompt=prompt, tool_context=self.machine.state)

    async def _proposal_phase(self, round_number: int) -> dict[str, Contribution]:
        state = self.machine.state
        previous = state.round_records[round_number - 2] if round_number > 1 else None
        turns = []
        for agent in self.agents:
            carried = _refinement_of(previous, agent.config.id) if previous else None
            if carried is not None:
                turns.append(PhaseTurn(agent=agent, activity="proposing", carry_over=carried))
                continue
            if previous is not None:
                logger.warning(
                    f"No refinement from {agent.config.name} in round {round_number - 1}, "
                    "requesting a new proposal"
                )
            prompt = proposal_prompt(
                state.problem,
                state.clarification_questions,
                self._history(round_number),
                self.include_full_history,
                self._summary(round_number, agent.config.id),
            )
            turns.append(
                PhaseTurn(agent=agent, activity="proposing", context=self._context(prompt))
            )

        contributions = await self.barrier.run_phase(
            round_number, ContributionType.PROPOSAL, turns
        )
        return {c.agent_id: c for c in contributions}

    async def _critique_phase(
        self, round_number: int, proposals: dict[str, Contribution]
    ) -> list[Contribution]:
        state = self.machine.state
        turns = []
        for critic in self.agents:
            for target in self.agents:
                proposal = proposals.get(target.config.id)
                if target is critic or proposal is None or proposal.failed:
                    continue
                prompt = critique_prompt(
                    state.problem,
                    target.config.name,
                    proposal.content,
                    state.clarification_questions,
                    self._history(round_number),
                    self.include_full_history,
                    self._summary(round_number, critic.config.id),
                )
                turns.append(
                    PhaseTurn(
                        agent=critic,
                        activity=f"critiquing {target.config.name}",
                        context=self._context(prompt),
                        target_agent_id=target.config.id,
                    )
                )
        return await self.barrier.run_phase(round_number, ContributionType.CRITIQUE, turns)

    async def _refinement_phase(
        self,
        round_number: int,
        proposals: dict[str, Contribution],
        critiques: list[Contribution],
    ) -> list[Contribution]:
        state = self.machine.state
        names = {a.config.id: a.config.name for a in self.agents}
        turns = []
        for agent in self.agents:
            proposal = proposals.get(agent.config.id)
            if proposal is None or proposal.failed:
                continue
            received = [
                (names.get(c.agent_id, c.agent_id), c.content)
                for c in critiques
                if c.target_agent_id == agent.config.id and not c.failed
            ]
            prompt = refinement_prompt(
                state.problem,
                proposal.content,
                received,
                state.clarification_questions,
                self._history(round_number),
                self.include_full_history,
                self._summary(round_number, agent.config.id),
            )
            turns.append(PhaseTurn(agent=agent, activity="refining", context=self._context(prompt)))
        return await self.barrier.run_phase(round_number, ContributionType.REFINEMENT, turns)

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def _synthesize(self) -> Solution:
        self.machine.dispatch(ev.SynthesisStarted())
        state = self.machine.state
        logger.info(f"Synthesizing with {self.judge.config.name}")
        prompt = synthesis_prompt(state.problem, state.round_records, state.clarification_questions)
        result = await self.executor.run_turn(self.judge, self._context(prompt))
        solution = Solution(description=result.final_content, synthesized_by=self.judge.config.id)
        self.machine.dispatch(ev.SynthesisCompleted(solution=solution))
        return solution


def _refinement_of(record: Round, agent_id: str) -> str | None:
    for c in record.contributions:
        if c.type == ContributionType.REFINEMENT and c.agent_id == agent_id and not c.failed:
            return c.content
    return None
