"""Tools for the Dialectic MCP Server."""

from .debate_tools import (
    debate_cancel,
    debate_clear_notification,
    debate_events,
    debate_start,
    debate_status,
    debate_submit_clarifications,
)

__all__ = [
    "debate_start",
    "debate_status",
    "debate_events",
    "debate_submit_clarifications",
    "debate_cancel",
    "debate_clear_notification",
]
