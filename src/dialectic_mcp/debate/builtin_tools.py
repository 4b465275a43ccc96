"""Built-in tools available to every debate agent."""

import logging

from .tooling import ToolRegistry, ToolSchema, tool_error_json, tool_success_json
from .types import Contribution, DebateState

logger = logging.getLogger(__name__)

# Maximum length of content snippets returned by context search
MAX_SNIPPET_LENGTH = 200


class ContextSearchTool:
    """Case-insensitive search over the contributions of the running debate.

    The tool context must be the ``DebateState`` snapshot of the turn.
    """

    name = "context_search"
    schema = ToolSchema(
        name="context_search",
        description=(
            "Search for a term in the debate history. "
            "Returns contributions containing the search term."
        ),
        parameters={
            "type": "object",
            "properties": {
                "term": {
                    "type": "string",
                    "description": "The search term to find in debate history",
                },
            },
            "required": ["term"],
        },
    )

    def execute(self, args: dict, context: DebateState | None = None) -> str:
        if not isinstance(context, DebateState):
            return tool_error_json("Debate state is required for context search")
        term = args.get("term")
        if not isinstance(term, str) or not term.strip():
            return tool_error_json("Search term is required and must be a string")

        needle = term.lower()
        matches = [
            _match(record.round_number, c)
            for record in context.round_records
            for c in record.contributions
            if needle in c.content.lower()
        ]
        logger.debug(f"context_search '{term}': {len(matches)} match(es)")
        return tool_success_json({"matches": matches})


def _match(round_number: int, contribution: Contribution) -> dict:
    snippet = contribution.content[:MAX_SNIPPET_LENGTH]
    if len(contribution.content) > MAX_SNIPPET_LENGTH:
        snippet += "..."
    return {
        "roundNumber": round_number,
        "agentId": contribution.agent_id,
        "agentRole": contribution.agent_role,
        "type": contribution.type.value,
        "contentSnippet": snippet,
    }


def builtin_registry() -> ToolRegistry:
    """Registry holding the built-in tools."""
    registry = ToolRegistry()
    registry.register(ContextSearchTool())
    return registry
