"""Per-agent history summarization.

Before a round's proposals, each agent whose own history (its proposals and
refinements plus the critiques aimed at it) has grown past a character
threshold condenses that history through its own model. Later prompts of
the agent carry the summary instead of the raw round listing.
"""

import logging
from collections.abc import Iterator
from typing import Any

from ..config import config
from ..core.exceptions import AgentTurnError
from .prompts import summary_prompt
from .tool_loop import DebateAgent, ToolCallLoopExecutor, TurnContext
from .types import Contribution, ContributionType, DebateSummary, Round

logger = logging.getLogger(__name__)

SUMMARY_ACTIVITY = "summarizing context"
_SEPARATOR = "\n\n---\n\n"


def _relevant(rounds: tuple[Round, ...], agent_id: str) -> Iterator[tuple[int, Contribution]]:
    for record in rounds:
        for c in record.contributions:
            if c.failed:
                continue
            if c.type == ContributionType.CRITIQUE:
                if c.target_agent_id == agent_id:
                    yield record.round_number, c
            elif c.agent_id == agent_id:
                yield record.round_number, c


def relevant_history(rounds: tuple[Round, ...], agent_id: str) -> list[str]:
    """The parts of *rounds* that matter to *agent_id*, one labelled entry each."""
    entries = []
    for number, c in _relevant(rounds, agent_id):
        if c.type == ContributionType.CRITIQUE:
            entries.append(f"Round {number} - Critique from {c.agent_role}:\n{c.content}")
        else:
            entries.append(f"Round {number} - {c.type.value}:\n{c.content}")
    return entries


def latest_summary(rounds: tuple[Round, ...], agent_id: str) -> str | None:
    """Most recent summary *agent_id* produced within *rounds*."""
    for record in reversed(rounds):
        for s in record.summaries:
            if s.agent_id == agent_id:
                return s.summary
    return None


class HistorySummarizer:
    """Length-based summarization policy."""

    def __init__(
        self,
        enabled: bool | None = None,
        threshold: int | None = None,
        max_length: int | None = None,
    ) -> None:
        self.enabled = config.summarization_enabled if enabled is None else enabled
        self.threshold = threshold or config.summarization_threshold
        self.max_length = max_length or config.summarization_max_length

    def should_summarize(self, rounds: tuple[Round, ...], agent_id: str) -> bool:
        if not self.enabled or not rounds:
            return False
        size = sum(len(c.content) for _, c in _relevant(rounds, agent_id))
        return size >= self.threshold

    async def summarize(
        self,
        agent: DebateAgent,
        rounds: tuple[Round, ...],
        executor: ToolCallLoopExecutor,
        tool_context: Any = None,
    ) -> DebateSummary:
        """Condense *rounds* from *agent*'s perspective.

        The reply is cut to ``max_length`` characters.

        Raises:
            AgentTurnError: If the agent fails or returns an empty summary.
        """
        cfg = agent.config
        history = _SEPARATOR.join(relevant_history(rounds, cfg.id))
        result = await executor.run_turn(
            agent,
            TurnContext(
                prompt=summary_prompt(cfg.role, history, self.max_length),
                tool_context=tool_context,
            ),
        )
        text = result.final_content.strip()[: self.max_length]
        if not text:
            raise AgentTurnError(cfg.id, f"Agent {cfg.name} returned an empty summary")
        logger.info(f"{cfg.name} summarized {len(history)} chars of history into {len(text)}")
        return DebateSummary(
            agent_id=cfg.id,
            agent_role=cfg.role.value,
            summary=text,
            before_chars=len(history),
            after_chars=len(text),
        )
