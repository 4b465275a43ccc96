"""Tool-call loop: one agent turn, bounded by an explicit iteration counter.

A turn alternates between asking the agent for a reply and executing the
tool calls that reply requests:

    awaiting model -> tool calls present -> executing tools -> awaiting model
    awaiting model -> no tool calls -> done

``tool_call_iterations`` counts passes that executed tools. Once it reaches
the configured maximum, a further request for tools fails the turn with
``IterationLimitExceeded`` instead of looping again.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

from ..config import config
from ..core.exceptions import AgentTurnError, GeminiTimeoutError, IterationLimitExceeded
from .tooling import (
    TOOL_ROLE,
    RegistryToolExecutor,
    ToolCall,
    ToolCallMetadata,
    ToolExecutor,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    tool_error_json,
)
from .types import AgentConfig

logger = logging.getLogger(__name__)

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"


@dataclass(frozen=True)
class AgentMessage:
    """One entry of the conversation handed to an agent.

    Tool output messages carry ``tool_call_id`` and the tool ``name``;
    assistant messages that requested tools carry ``tool_calls``.
    """

    role: str
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class AgentRequest:
    """Input of a single model pass."""

    agent: AgentConfig
    messages: tuple[AgentMessage, ...]
    tools: tuple[ToolSchema, ...] = ()


@dataclass(frozen=True)
class AgentReply:
    """Output of a single model pass: final content or tool requests."""

    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()


class DebateAgent(Protocol):
    """Agent invocation interface.

    ``respond`` must be safe to call again after a timeout; the loop may
    retry a timed-out pass.
    """

    config: AgentConfig

    async def respond(self, request: AgentRequest) -> AgentReply: ...


@dataclass(frozen=True)
class TurnContext:
    """What an agent sees at the start of its turn.

    ``tool_context`` is handed untouched to every tool execution.
    """

    prompt: str
    history: tuple[AgentMessage, ...] = ()
    tool_context: Any = None


@dataclass(frozen=True)
class TurnResult:
    final_content: str
    tool_metadata: ToolCallMetadata


class ToolCallLoopExecutor:
    """Runs agent turns against a tool executor with bounded iterations."""

    def __init__(
        self,
        tool_executor: ToolExecutor | None = None,
        tools: list[ToolSchema] | None = None,
        max_iterations: int | None = None,
        turn_timeout: float | None = None,
        retries: int | None = None,
    ) -> None:
        if tool_executor is None:
            registry = ToolRegistry()
            tool_executor = RegistryToolExecutor(registry)
            tools = tools if tools is not None else registry.schemas()
        elif tools is None and isinstance(tool_executor, RegistryToolExecutor):
            tools = tool_executor.registry.schemas()

        self.tool_executor = tool_executor
        self.tools = tuple(tools or ())
        self.max_iterations = max_iterations or config.max_tool_iterations
        self.turn_timeout = turn_timeout or config.agent_turn_timeout
        self.retries = config.agent_call_retries if retries is None else retries

    async def run_turn(
        self,
        agent: DebateAgent,
        context: TurnContext,
        max_iterations: int | None = None,
    ) -> TurnResult:
        """Drive *agent* until it answers without requesting tools.

        Raises:
            IterationLimitExceeded: If the agent still requests tools after
                ``max_iterations`` tool passes.
            AgentTurnError: If a model call fails or times out on every attempt.
        """
        limit = max_iterations or self.max_iterations
        agent_id = agent.config.id
        messages = list(context.history)
        messages.append(AgentMessage(role=USER_ROLE, content=context.prompt))

        calls: list[ToolCall] = []
        results: list[ToolResult] = []
        seen_ids: set[str] = set()
        iterations = 0

        while True:
            reply = await self._call_agent(agent, messages)
            if not reply.tool_calls:
                logger.debug(f"{agent.config.name} finished after {iterations} tool pass(es)")
                return TurnResult(
                    final_content=reply.content,
                    tool_metadata=ToolCallMetadata(
                        tool_calls=tuple(calls),
                        tool_results=tuple(results),
                        tool_call_iterations=iterations,
                    ),
                )

            if iterations >= limit:
                logger.warning(f"{agent.config.name} hit the tool-call iteration limit ({limit})")
                raise IterationLimitExceeded(agent_id, limit)
            iterations += 1

            requested = _unique_ids(reply.tool_calls, seen_ids, iterations)
            messages.append(
                AgentMessage(role=ASSISTANT_ROLE, content=reply.content, tool_calls=requested)
            )
            for call in requested:
                result = await self._execute_tool(call, context)
                calls.append(call)
                results.append(result)
                messages.append(
                    AgentMessage(
                        role=TOOL_ROLE,
                        content=result.content,
                        tool_call_id=call.id,
                        name=call.name,
                    )
                )

    async def _execute_tool(self, call: ToolCall, context: TurnContext) -> ToolResult:
        """Run one tool call; a raising executor becomes an error payload."""
        try:
            return await self.tool_executor.execute(call, context.tool_context)
        except Exception as e:
            logger.warning(f"Tool '{call.name}' failed: {e}")
            return ToolResult(call.id, tool_error_json(str(e)))

    async def _call_agent(self, agent: DebateAgent, messages: list[AgentMessage]) -> AgentReply:
        """One model pass with per-call timeout and retry-on-timeout."""
        request = AgentRequest(agent=agent.config, messages=tuple(messages), tools=self.tools)
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(agent.respond(request), timeout=self.turn_timeout)
            except (TimeoutError, GeminiTimeoutError) as e:
                if attempt < attempts:
                    logger.warning(
                        f"{agent.config.name} timed out (attempt {attempt}/{attempts}), retrying"
                    )
                    continue
                raise AgentTurnError(
                    agent.config.id,
                    f"Agent {agent.config.name} timed out after {self.turn_timeout}s "
                    f"({attempts} attempt(s))",
                ) from e
            except AgentTurnError:
                raise
            except Exception as e:
                logger.error(f"Agent {agent.config.name} failed: {e}")
                raise AgentTurnError(
                    agent.config.id, f"Agent {agent.config.name} failed: {e}"
                ) from e
        raise AgentTurnError(agent.config.id, f"Agent {agent.config.name} was never called")


def _unique_ids(
    tool_calls: tuple[ToolCall, ...], seen: set[str], iteration: int
) -> tuple[ToolCall, ...]:
    """Give every call an id that is unique within the turn."""
    unique = []
    for index, call in enumerate(tool_calls):
        call_id = call.id
        if not call_id or call_id in seen:
            call_id = f"call_{iteration}_{index}"
            suffix = 1
            while call_id in seen:
                call_id = f"call_{iteration}_{index}_{suffix}"
                suffix += 1
            call = ToolCall(id=call_id, name=call.name, arguments=call.arguments)
        seen.add(call_id)
        unique.append(call)
    return tuple(unique)
