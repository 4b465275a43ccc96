"""Tests for the tool-calling protocol and registry."""

import json

import pytest

from dialectic_mcp.debate.tooling import (
    RegistryToolExecutor,
    ToolCall,
    ToolCallMetadata,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    ToolStatus,
    tool_error_json,
    tool_success_json,
)


class _AsyncTool:
    name = "lookup"
    schema = ToolSchema(name="lookup", description="Async lookup")

    async def execute(self, args, context=None):
        return tool_success_json({"context": context})


class _BrokenTool:
    name = "broken"
    schema = ToolSchema(name="broken", description="Always fails")

    def execute(self, args, context=None):
        raise RuntimeError("disk on fire")


class _RawTool:
    name = "raw"
    schema = ToolSchema(name="raw", description="Returns unwrapped output")

    def __init__(self, output):
        self.output = output

    def execute(self, args, context=None):
        return self.output


class TestToolSchema:
    """Tests for ToolSchema validation."""

    def test_defaults_to_empty_object(self):
        """Default parameters are an empty object schema."""
        schema = ToolSchema(name="t", description="d")
        assert schema.parameters == {"type": "object", "properties": {}}
        assert schema.required == []

    def test_non_object_rejected(self):
        """Parameters must be an object schema."""
        with pytest.raises(ValueError):
            ToolSchema(name="t", description="d", parameters={"type": "string"})

    def test_required_must_be_declared(self):
        """Required names must appear in properties."""
        with pytest.raises(ValueError):
            ToolSchema(
                name="t",
                description="d",
                parameters={"type": "object", "properties": {}, "required": ["x"]},
            )

    def test_dict_round_trip(self):
        """from_dict restores what to_dict produced."""
        schema = ToolSchema(
            name="t",
            description="d",
            parameters={"type": "object", "properties": {"x": {"type": "string"}}},
        )
        assert ToolSchema.from_dict(schema.to_dict()) == schema


class TestToolResult:
    """Tests for result payload helpers."""

    def test_success_payload(self):
        """Successful results carry status and result."""
        result = ToolResult("c1", tool_success_json([1, 2]))
        assert result.status == ToolStatus.SUCCESS
        assert result.payload["result"] == [1, 2]
        assert result.role == "tool"

    def test_error_payload(self):
        """Errors carry status and message."""
        result = ToolResult("c1", tool_error_json("nope"))
        assert result.status == ToolStatus.ERROR
        assert result.payload["error"] == "nope"

    def test_metadata_to_dict(self):
        """Empty call lists are omitted from the metadata dict."""
        assert ToolCallMetadata().to_dict() == {"toolCallIterations": 0}
        call = ToolCall(id="c1", name="echo", arguments='{"text": "hi"}')
        data = ToolCallMetadata(tool_calls=(call,), tool_call_iterations=1).to_dict()
        assert data["toolCalls"] == [call.to_dict()]
        assert "toolResults" not in data


class TestToolRegistry:
    """Tests for ToolRegistry."""

    def test_register_and_lookup(self, echo_registry):
        """Registered tools are found by name."""
        assert echo_registry.has("echo")
        assert echo_registry.has_tools()
        assert echo_registry.get("missing") is None
        assert [s.name for s in echo_registry.schemas()] == ["echo"]

    def test_extend_overrides_base(self, echo_registry):
        """Tools of the extending registry win over the base."""
        override = ToolRegistry()
        override.register(_RawTool("override"))
        base = ToolRegistry()
        base.register(_RawTool("base"))
        base.register(_AsyncTool())

        merged = override.extend(base)
        assert [s.name for s in merged.schemas()] == ["raw", "lookup"]
        assert merged.get("raw").output == "override"
        assert not echo_registry.has("raw")


class TestRegistryToolExecutor:
    """Tests for RegistryToolExecutor."""

    @pytest.mark.asyncio
    async def test_success(self, echo_registry):
        """A valid call runs the tool."""
        executor = RegistryToolExecutor(echo_registry)
        result = await executor.execute(ToolCall(id="c1", name="echo", arguments='{"text": "hi"}'))
        assert result.tool_call_id == "c1"
        assert result.payload == {"status": "success", "result": "hi"}

    @pytest.mark.asyncio
    async def test_async_tool_gets_context(self):
        """Awaitable tool output is awaited; context is passed through."""
        registry = ToolRegistry()
        registry.register(_AsyncTool())
        result = await RegistryToolExecutor(registry).execute(
            ToolCall(id="c1", name="lookup"), context="ctx"
        )
        assert result.payload["result"] == {"context": "ctx"}

    @pytest.mark.asyncio
    async def test_unknown_tool(self, echo_registry):
        """Unknown tools produce an error result."""
        result = await RegistryToolExecutor(echo_registry).execute(ToolCall(id="c1", name="nope"))
        assert result.status == ToolStatus.ERROR
        assert "Unknown tool" in result.payload["error"]

    @pytest.mark.asyncio
    async def test_invalid_json(self, echo_registry):
        """Malformed argument JSON produces an error result."""
        result = await RegistryToolExecutor(echo_registry).execute(
            ToolCall(id="c1", name="echo", arguments="{not json")
        )
        assert result.status == ToolStatus.ERROR

    @pytest.mark.asyncio
    async def test_arguments_must_be_object(self, echo_registry):
        """A JSON array is not an argument object."""
        result = await RegistryToolExecutor(echo_registry).execute(
            ToolCall(id="c1", name="echo", arguments="[1]")
        )
        assert result.payload["error"] == "Tool arguments must be a JSON object"

    @pytest.mark.asyncio
    async def test_missing_required(self, echo_registry):
        """Missing required arguments are reported by name."""
        result = await RegistryToolExecutor(echo_registry).execute(
            ToolCall(id="c1", name="echo", arguments="{}")
        )
        assert "text" in result.payload["error"]

    @pytest.mark.asyncio
    async def test_tool_exception(self):
        """Exceptions from the tool body become error results."""
        registry = ToolRegistry()
        registry.register(_BrokenTool())
        result = await RegistryToolExecutor(registry).execute(ToolCall(id="c1", name="broken"))
        assert result.payload == {"status": "error", "error": "disk on fire"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "output,expected",
        [
            ("plain text", {"status": "success", "result": "plain text"}),
            ('{"a": 1}', {"status": "success", "result": {"a": 1}}),
            ({"a": 1}, {"status": "success", "result": {"a": 1}}),
            (tool_error_json("bad"), {"status": "error", "error": "bad"}),
        ],
    )
    async def test_output_normalized(self, output, expected):
        """Tool output is always a status-tagged JSON object."""
        registry = ToolRegistry()
        registry.register(_RawTool(output))
        result = await RegistryToolExecutor(registry).execute(ToolCall(id="c1", name="raw"))
        assert json.loads(result.content) == expected
