"""Tool-calling protocol: schemas, calls, results, and the tool registry.

Only the protocol lives here. Tool bodies are supplied by callers as
``ToolImplementation`` objects registered in a ``ToolRegistry``.
"""

import inspect
import json
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from ..audit import audit_event

logger = logging.getLogger(__name__)

# Role marker carried by every tool result message
TOOL_ROLE = "tool"


class ToolStatus(StrEnum):
    """Status values of a serialized tool result."""

    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class ToolSchema:
    """Function-calling declaration of a tool.

    ``parameters`` follows the JSON-schema object form:
    ``{"type": "object", "properties": {...}, "required": [...]}``.
    When ``required`` is absent no parameter is mandatory.
    """

    name: str
    description: str
    parameters: dict = field(default_factory=lambda: {"type": "object", "properties": {}})

    def __post_init__(self) -> None:
        if self.parameters.get("type") != "object":
            raise ValueError(f"Tool '{self.name}' parameters must have type 'object'")
        properties = self.parameters.get("properties", {})
        for param in self.parameters.get("required", []):
            if param not in properties:
                raise ValueError(f"Tool '{self.name}' requires unknown parameter '{param}'")

    @property
    def required(self) -> list[str]:
        return list(self.parameters.get("required", []))

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ToolSchema":
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            parameters=data.get("parameters", {"type": "object", "properties": {}}),
        )


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is the JSON-serialized argument object.
    """

    id: str
    name: str
    arguments: str = "{}"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}


@dataclass(frozen=True)
class ToolResult:
    """Serialized outcome of a tool call, fed back to the model."""

    tool_call_id: str
    content: str
    role: str = TOOL_ROLE

    @property
    def payload(self) -> dict:
        return json.loads(self.content)

    @property
    def status(self) -> ToolStatus:
        return ToolStatus(self.payload.get("status", ToolStatus.ERROR))

    def to_dict(self) -> dict:
        return {"tool_call_id": self.tool_call_id, "role": self.role, "content": self.content}


@dataclass(frozen=True)
class ToolCallMetadata:
    """Audit record of the tool exchange of one turn."""

    tool_calls: tuple[ToolCall, ...] = ()
    tool_results: tuple[ToolResult, ...] = ()
    tool_call_iterations: int = 0

    def to_dict(self) -> dict:
        data: dict = {"toolCallIterations": self.tool_call_iterations}
        if self.tool_calls:
            data["toolCalls"] = [c.to_dict() for c in self.tool_calls]
        if self.tool_results:
            data["toolResults"] = [r.to_dict() for r in self.tool_results]
        return data


def tool_success_json(result: Any) -> str:
    """Serialize a successful tool result payload."""
    return json.dumps({"status": ToolStatus.SUCCESS.value, "result": result})


def tool_error_json(message: str) -> str:
    """Serialize a failed tool result payload."""
    return json.dumps({"status": ToolStatus.ERROR.value, "error": message})


class ToolImplementation(Protocol):
    """A tool body: declared schema plus an execute callable.

    ``execute`` returns the JSON payload string (see ``tool_success_json``),
    either directly or as an awaitable.
    """

    name: str
    schema: ToolSchema

    def execute(self, args: dict, context: Any = None) -> str | Awaitable[str]: ...


class ToolExecutor(Protocol):
    """Executes a single ToolCall and always returns a ToolResult."""

    async def execute(self, call: ToolCall, context: Any = None) -> ToolResult: ...


class ToolRegistry:
    """Registry of tool implementations, keyed by tool name."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolImplementation] = {}

    def register(self, tool: ToolImplementation) -> None:
        """Register a tool, replacing any tool with the same name."""
        if tool.name in self._tools:
            logger.debug(f"Overriding tool: {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolImplementation | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def has_tools(self) -> bool:
        return bool(self._tools)

    def schemas(self) -> list[ToolSchema]:
        """All tool schemas, in registration order."""
        return [tool.schema for tool in self._tools.values()]

    def extend(self, base: "ToolRegistry") -> "ToolRegistry":
        """Return a new registry with *base* tools overridden by this registry's tools."""
        extended = ToolRegistry()
        for tool in base._tools.values():
            extended.register(tool)
        for tool in self._tools.values():
            extended.register(tool)
        return extended


class RegistryToolExecutor:
    """ToolExecutor backed by a ToolRegistry.

    Failures never raise: unknown tools, malformed arguments and exceptions
    from the tool body all produce an ``{"status": "error"}`` result so the
    model can react on its next pass.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def execute(self, call: ToolCall, context: Any = None) -> ToolResult:
        audit_event("agent_tool_call", tool=call.name, call_id=call.id)
        tool = self.registry.get(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool '{call.name}'")
            return ToolResult(call.id, tool_error_json(f"Unknown tool: {call.name}"))

        try:
            args = json.loads(call.arguments) if call.arguments else {}
        except json.JSONDecodeError as e:
            return ToolResult(call.id, tool_error_json(f"Invalid arguments JSON: {e}"))
        if not isinstance(args, dict):
            return ToolResult(call.id, tool_error_json("Tool arguments must be a JSON object"))

        missing = [p for p in tool.schema.required if p not in args]
        if missing:
            return ToolResult(
                call.id, tool_error_json(f"Missing required argument(s): {', '.join(missing)}")
            )

        try:
            content = tool.execute(args, context)
            if inspect.isawaitable(content):
                content = await content
        except Exception as e:
            logger.warning(f"Tool '{call.name}' failed: {e}")
            return ToolResult(call.id, tool_error_json(str(e)))

        return ToolResult(call.id, _normalize_payload(content))


def _normalize_payload(content: Any) -> str:
    """Ensure the tool output is a JSON object with a status field."""
    if isinstance(content, str):
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            return tool_success_json(content)
        if isinstance(parsed, dict) and parsed.get("status") in (
            ToolStatus.SUCCESS.value,
            ToolStatus.ERROR.value,
        ):
            return content
        return tool_success_json(parsed)
    return tool_success_json(content)
