"""Pre-debate clarification round: collect questions, apply the user's answers."""

import asyncio
import json
import logging
import re
from collections.abc import Callable

from ..core.exceptions import AgentTurnError
from .prompts import clarification_prompt
from .tool_loop import DebateAgent, ToolCallLoopExecutor, TurnContext
from .types import AgentClarifications, ClarificationItem

logger = logging.getLogger(__name__)

# Stored for questions the user left unanswered
UNANSWERED = "NA"


def extract_json_object(text: str) -> dict | None:
    """Parse a JSON object from model output.

    Tries the raw text, then the text without markdown fences, then the
    first bracket-balanced ``{...}`` block.
    """
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?\s*", "", text)
        text = re.sub(r"\s*```$", "", text)
        try:
            parsed = json.loads(text)
            return parsed if isinstance(parsed, dict) else None
        except json.JSONDecodeError:
            pass

    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        c = text[i]
        if escape:
            escape = False
            continue
        if c == "\\":
            escape = True
            continue
        if c == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start : i + 1])
                except json.JSONDecodeError:
                    return None
    return None


def parse_questions(text: str) -> list[tuple[str, str]]:
    """Return ``(id, text)`` pairs from a ``{"questions": [...]}`` reply.

    Entries without text are skipped; missing ids become ``q1``, ``q2``, ...
    """
    data = extract_json_object(text)
    if data is None:
        logger.warning("Clarification reply is not a JSON object")
        return []
    raw = data.get("questions")
    if not isinstance(raw, list):
        return []

    questions = []
    for index, entry in enumerate(raw, start=1):
        if isinstance(entry, str):
            entry = {"text": entry}
        if not isinstance(entry, dict):
            continue
        question = str(entry.get("text") or entry.get("question") or "").strip()
        if not question:
            continue
        questions.append((str(entry.get("id") or f"q{index}"), question))
    return questions


async def collect_clarifications(
    problem: str,
    agents: list[DebateAgent],
    executor: ToolCallLoopExecutor,
    max_per_agent: int,
    warn: Callable[[str], None],
) -> tuple[AgentClarifications, ...]:
    """Ask every agent for clarifying questions concurrently.

    Item ids are prefixed with the agent id so answers can be keyed by item
    id alone. Groups come back in agent order.
    """

    async def ask(agent: DebateAgent) -> AgentClarifications:
        cfg = agent.config
        try:
            result = await executor.run_turn(
                agent, TurnContext(prompt=clarification_prompt(problem, max_per_agent))
            )
            questions = parse_questions(result.final_content)
        except AgentTurnError as e:
            warn(f"Agent {cfg.name} could not provide clarifying questions: {e}")
            questions = []

        if len(questions) > max_per_agent:
            warn(
                f"Agent {cfg.name} returned {len(questions)} questions; "
                f"limited to {max_per_agent}."
            )
            questions = questions[:max_per_agent]

        seen: set[str] = set()
        items = []
        for qid, question in questions:
            item_id = f"{cfg.id}.{qid}"
            counter = len(seen) + 1
            while item_id in seen:
                item_id = f"{cfg.id}.q{counter}"
                counter += 1
            seen.add(item_id)
            items.append(ClarificationItem(id=item_id, question=question))
        return AgentClarifications(
            agent_id=cfg.id, agent_name=cfg.name, role=cfg.role.value, items=tuple(items)
        )

    groups = await asyncio.gather(*(ask(agent) for agent in agents))
    total = sum(len(g.items) for g in groups)
    logger.info(f"Collected {total} clarifying question(s) from {len(groups)} agent(s)")
    return tuple(groups)


def apply_answers(
    groups: tuple[AgentClarifications, ...], answers: dict[str, str]
) -> tuple[AgentClarifications, ...]:
    """Fill answers by item id; blank or missing answers become ``"NA"``."""
    known = {item.id for g in groups for item in g.items}
    unknown = set(answers) - known
    if unknown:
        logger.warning(f"Ignoring answers for unknown question id(s): {sorted(unknown)}")

    return tuple(
        AgentClarifications(
            agent_id=g.agent_id,
            agent_name=g.agent_name,
            role=g.role,
            items=tuple(
                ClarificationItem(
                    id=item.id,
                    question=item.question,
                    answer=(answers.get(item.id) or "").strip() or UNANSWERED,
                )
                for item in g.items
            ),
        )
        for g in groups
    )
