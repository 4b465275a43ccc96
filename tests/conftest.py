"""Pytest configuration and fixtures."""

import asyncio
import inspect

import pytest

from dialectic_mcp.debate import events as ev
from dialectic_mcp.debate.state_machine import DebateStateMachine
from dialectic_mcp.debate.tool_loop import AgentReply, AgentRequest
from dialectic_mcp.debate.tooling import ToolRegistry, ToolSchema, tool_success_json
from dialectic_mcp.debate.types import AgentConfig, AgentRole


class ScriptedAgent:
    """Fake debate agent.

    Replies come from ``responder(request)`` when given (sync or async),
    otherwise from the ``replies`` queue, otherwise a numbered default.
    String replies become final content; exceptions are raised.
    """

    def __init__(
        self,
        agent_id: str,
        name: str | None = None,
        role: AgentRole = AgentRole.GENERALIST,
        replies=None,
        responder=None,
        delay: float = 0.0,
    ):
        self.config = AgentConfig(id=agent_id, name=name or agent_id.title(), role=role)
        self.replies = list(replies or [])
        self.responder = responder
        self.delay = delay
        self.requests: list[AgentRequest] = []

    async def respond(self, request: AgentRequest) -> AgentReply:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.responder is not None:
            reply = self.responder(request)
            if inspect.isawaitable(reply):
                reply = await reply
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            reply = f"{self.config.name} reply {len(self.requests)}"
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, str):
            reply = AgentReply(content=reply)
        return reply

    @property
    def calls(self) -> int:
        return len(self.requests)


class EchoTool:
    name = "echo"
    schema = ToolSchema(
        name="echo",
        description="Echo the given text",
        parameters={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        },
    )

    def execute(self, args, context=None):
        return tool_success_json(args["text"])


@pytest.fixture
def echo_registry():
    """Registry holding only the echo tool."""
    registry = ToolRegistry()
    registry.register(EchoTool())
    return registry


@pytest.fixture
def make_agent():
    """Factory for scripted agents."""
    return ScriptedAgent


@pytest.fixture
def machine():
    """Fresh state machine."""
    return DebateStateMachine()


@pytest.fixture
def running_machine():
    """Factory: a state machine in round 1 of a running debate."""

    def build(agents, rounds: int = 1, problem: str = "Design a rate limiter"):
        m = DebateStateMachine()
        m.dispatch(ev.ProblemSet(problem=problem))
        m.dispatch(ev.RoundsSet(rounds=rounds))
        m.dispatch(ev.ConnectionEstablished(agents=tuple(a.config for a in agents)))
        m.dispatch(ev.DebateStarted(debate_id="test"))
        m.dispatch(ev.RoundStarted(round=1, total=rounds))
        return m

    return build


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until *predicate* holds."""

    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout=timeout)


@pytest.fixture
def until():
    return wait_until
