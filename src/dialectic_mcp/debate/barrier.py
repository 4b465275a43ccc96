"""Phase barrier: run one concurrent turn per agent and join them.

The barrier announces the phase with its expected contribution count,
starts every turn as its own task, records each contribution the moment
its turn finishes (completion order), and closes the phase only when all
turns are settled. A failed turn is recorded as a failure note under the
``continue`` policy; under ``abort``, or when the tool loop ran out of
iterations, the remaining turns are cancelled and the error propagates.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Literal

from ..config import config
from ..core.exceptions import AgentTurnError, IterationLimitExceeded
from . import events as ev
from .notifications import new_notification
from .state_machine import DebateStateMachine
from .tool_loop import DebateAgent, ToolCallLoopExecutor, TurnContext
from .types import Contribution, ContributionType, NotificationLevel

logger = logging.getLogger(__name__)

FailurePolicy = Literal["abort", "continue"]


@dataclass(frozen=True)
class PhaseTurn:
    """One agent's participation in a phase.

    ``carry_over`` supplies ready-made content: the contribution is recorded
    without calling the agent.
    """

    agent: DebateAgent
    activity: str
    context: TurnContext | None = None
    target_agent_id: str | None = None
    carry_over: str | None = None


class PhaseBarrier:
    """Coordinates the concurrent turns of a single phase."""

    def __init__(
        self,
        machine: DebateStateMachine,
        executor: ToolCallLoopExecutor,
        on_agent_failure: FailurePolicy | None = None,
    ) -> None:
        self.machine = machine
        self.executor = executor
        self.on_agent_failure = on_agent_failure or config.on_agent_failure

    async def run_phase(
        self, round_number: int, phase: ContributionType, turns: list[PhaseTurn]
    ) -> list[Contribution]:
        """Run all *turns* and return their contributions in completion order.

        Raises:
            AgentTurnError: First turn failure that the policy does not absorb.
            asyncio.CancelledError: If the debate was halted while the phase ran.
        """
        self.machine.dispatch(
            ev.PhaseStarted(round=round_number, phase=phase, expected_count=len(turns))
        )
        logger.info(f"Round {round_number}: {phase.value} phase with {len(turns)} turn(s)")

        contributions: list[Contribution] = []
        tasks = [
            asyncio.create_task(
                self._run_turn(round_number, phase, turn, contributions),
                name=f"{phase.value}-{turn.agent.config.id}-{index}",
            )
            for index, turn in enumerate(turns)
        ]
        pending = set(tasks)
        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                for task in done:
                    error = task.exception()
                    if error is not None:
                        raise error
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if self.machine.state.is_terminal:
            raise asyncio.CancelledError(f"Debate halted during {phase.value} phase")
        self.machine.dispatch(ev.PhaseCompleted(round=round_number, phase=phase))
        return contributions

    async def _run_turn(
        self,
        round_number: int,
        phase: ContributionType,
        turn: PhaseTurn,
        sink: list[Contribution],
    ) -> None:
        agent = turn.agent.config

        if turn.carry_over is not None:
            contribution = Contribution(
                agent_id=agent.id,
                agent_role=agent.role.value,
                type=phase,
                content=turn.carry_over,
                target_agent_id=turn.target_agent_id,
            )
            self._record(round_number, contribution, sink)
            return

        self._emit(ev.AgentStarted(agent_name=agent.name, activity=turn.activity))
        try:
            result = await self.executor.run_turn(turn.agent, turn.context or TurnContext(""))
        except AgentTurnError as e:
            if isinstance(e, IterationLimitExceeded) or self.on_agent_failure == "abort":
                raise
            logger.warning(f"{agent.name} failed during {phase.value}: {e}")
            note = Contribution(
                agent_id=agent.id,
                agent_role=agent.role.value,
                type=phase,
                content=f"[{agent.name} did not produce a {phase.value}: {e}]",
                target_agent_id=turn.target_agent_id,
                error=str(e),
            )
            self._record(round_number, note, sink)
            self._emit(
                ev.NotificationAdded(
                    new_notification(
                        NotificationLevel.ERROR,
                        f"{agent.name} failed during round {round_number} {phase.value}: {e}",
                    )
                )
            )
        else:
            contribution = Contribution(
                agent_id=agent.id,
                agent_role=agent.role.value,
                type=phase,
                content=result.final_content,
                target_agent_id=turn.target_agent_id,
                tool_metadata=result.tool_metadata,
            )
            self._record(round_number, contribution, sink)
        self._emit(ev.AgentCompleted(agent_name=agent.name, activity=turn.activity))

    def _record(self, round_number: int, contribution: Contribution, sink: list) -> None:
        if self._emit(ev.ContributionCreated(round=round_number, contribution=contribution)):
            sink.append(contribution)

    def _emit(self, event: ev.DebateEvent) -> bool:
        """Dispatch unless the debate already halted; late results are discarded."""
        if self.machine.state.is_terminal:
            logger.debug(f"Discarding {event.event_type}: debate already halted")
            return False
        self.machine.dispatch(event)
        return True
