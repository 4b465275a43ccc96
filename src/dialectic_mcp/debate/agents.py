"""Debate participants: role presets, the agent registry, and the Gemini-backed agent."""

import json
import logging

from google.genai import types

from ..config import config
from ..core.exceptions import FatalDebateError, GeminiAPIError
from ..core.gemini import GeminiClient, GeminiRequest, get_client
from .prompts import JUDGE_SYSTEM_PROMPT, system_prompt_for
from .tool_loop import ASSISTANT_ROLE, USER_ROLE, AgentMessage, AgentReply, AgentRequest
from .tooling import TOOL_ROLE, ToolCall
from .types import AgentConfig, AgentRole

logger = logging.getLogger(__name__)

JUDGE_ID = "judge"


# =============================================================================
# Role presets
# =============================================================================

ARCHITECT = AgentConfig(id="architect", name="Architect", role=AgentRole.ARCHITECT)
SECURITY = AgentConfig(id="security", name="Security Expert", role=AgentRole.SECURITY)
PERFORMANCE = AgentConfig(
    id="performance", name="Performance Engineer", role=AgentRole.PERFORMANCE
)
TESTING = AgentConfig(id="testing", name="Test Engineer", role=AgentRole.TESTING, temperature=0.4)
GENERALIST = AgentConfig(
    id="generalist", name="Generalist", role=AgentRole.GENERALIST, temperature=0.7
)

DEFAULT_ROSTER = (AgentRole.ARCHITECT, AgentRole.PERFORMANCE)


def judge_config() -> AgentConfig:
    """The synthesizing judge; uses ``judge_model`` when configured."""
    return AgentConfig(
        id=JUDGE_ID,
        name="Judge",
        role=AgentRole.GENERALIST,
        model=config.judge_model or None,
        temperature=0.3,
        system_prompt=JUDGE_SYSTEM_PROMPT,
    )


class AgentRegistry:
    """Registry of agent configurations, keyed by agent id."""

    def __init__(self) -> None:
        self._agents: dict[str, AgentConfig] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        for agent in [ARCHITECT, SECURITY, PERFORMANCE, TESTING, GENERALIST]:
            self._agents[agent.id] = agent

    def register(self, agent: AgentConfig) -> None:
        """Register a custom agent, replacing any agent with the same id."""
        self._agents[agent.id] = agent
        logger.info(f"Registered agent: {agent.name}")

    def get(self, agent_id: str) -> AgentConfig:
        if agent_id not in self._agents:
            raise ValueError(f"Unknown agent: {agent_id}")
        return self._agents[agent_id]

    def for_role(self, role: AgentRole | str) -> AgentConfig:
        """First registered agent playing *role*."""
        role = AgentRole(role)
        for agent in self._agents.values():
            if agent.role == role:
                return agent
        raise ValueError(f"No agent registered for role: {role}")

    def list_agents(self) -> list[str]:
        return list(self._agents)

    def roster(self, selection: list[str] | None = None) -> tuple[AgentConfig, ...]:
        """Resolve agent ids or role names into a debate roster.

        Raises:
            FatalDebateError: On unknown entries or repeated agents.
        """
        if not selection:
            return tuple(self.for_role(role) for role in DEFAULT_ROSTER)

        agents: list[AgentConfig] = []
        for entry in selection:
            key = entry.strip().lower()
            try:
                agent = self._agents[key] if key in self._agents else self.for_role(key)
            except ValueError as e:
                raise FatalDebateError(f"Unknown agent or role: {entry}") from e
            if agent in agents:
                raise FatalDebateError(f"Agent listed twice: {agent.id}")
            agents.append(agent)
        return tuple(agents)


# =============================================================================
# Gemini-backed agent
# =============================================================================


def to_contents(messages: tuple[AgentMessage, ...]) -> list[types.Content]:
    """Convert loop messages into Gemini turns.

    Consecutive tool results are merged into one user turn of
    function responses, matching the function-calling turn structure.
    """
    contents: list[types.Content] = []
    for message in messages:
        if message.role == TOOL_ROLE:
            part = types.Part.from_function_response(
                name=message.name or "tool", response=_response_payload(message.content)
            )
            last = contents[-1] if contents else None
            if last is not None and last.role == USER_ROLE and _is_function_response(last):
                last.parts.append(part)
            else:
                contents.append(types.Content(role=USER_ROLE, parts=[part]))
        elif message.role == ASSISTANT_ROLE:
            parts = [types.Part.from_text(text=message.content)] if message.content else []
            for call in message.tool_calls:
                parts.append(
                    types.Part.from_function_call(name=call.name, args=json.loads(call.arguments))
                )
            contents.append(types.Content(role="model", parts=parts))
        else:
            contents.append(
                types.Content(role=USER_ROLE, parts=[types.Part.from_text(text=message.content)])
            )
    return contents


def _is_function_response(content: types.Content) -> bool:
    return bool(content.parts) and all(p.function_response is not None for p in content.parts)


def _response_payload(content: str) -> dict:
    try:
        payload = json.loads(content)
    except json.JSONDecodeError:
        return {"result": content}
    return payload if isinstance(payload, dict) else {"result": payload}


class GeminiDebateAgent:
    """Debate agent answering through the Gemini API with function calling."""

    def __init__(self, agent_config: AgentConfig, client: GeminiClient | None = None) -> None:
        self.config = agent_config
        self.client = client or get_client()
        self.system_prompt = system_prompt_for(agent_config.role, agent_config.system_prompt)

    async def respond(self, request: AgentRequest) -> AgentReply:
        gemini_request = GeminiRequest(
            contents=to_contents(request.messages),
            model=self.config.model or self.client.default_model,
            system_instruction=self.system_prompt,
            temperature=self.config.temperature,
            function_declarations=[t.to_dict() for t in request.tools] or None,
        )
        response = await self.client.generate(gemini_request)
        if response.error:
            raise GeminiAPIError(response.error)

        tool_calls = tuple(
            ToolCall(
                id=fc.get("id") or f"{self.config.id}-call-{index}",
                name=fc["name"],
                arguments=json.dumps(fc.get("args") or {}),
            )
            for index, fc in enumerate(response.function_calls)
        )
        if response.stats:
            logger.debug(
                f"{self.config.name}: {response.stats.total_tokens} tokens "
                f"in {response.elapsed_seconds:.1f}s"
            )
        return AgentReply(content=response.text, tool_calls=tool_calls)


def build_agents(
    configs: tuple[AgentConfig, ...], client: GeminiClient | None = None
) -> list[GeminiDebateAgent]:
    return [GeminiDebateAgent(c, client) for c in configs]


# Global registry instance
_registry: AgentRegistry | None = None


def get_agent_registry() -> AgentRegistry:
    """Get the global agent registry."""
    global _registry
    if _registry is None:
        _registry = AgentRegistry()
    return _registry
