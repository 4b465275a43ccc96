"""Dialectic MCP Server - Main entry point.

This module defines the MCP server and registers the debate tools.
"""

import logging

from mcp.server.fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .config import config

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

__version__ = "0.1.0"

# Initialize FastMCP server
mcp = FastMCP(
    config.server_name,
    host=config.server_host,
    port=config.server_port,
)


# =============================================================================
# Health Check: HTTP endpoint for load-balancer health checks + MCP tool
# =============================================================================
@mcp.custom_route(path="/health", methods=["GET"])
async def health_check(request: Request) -> Response:
    """HTTP health-check endpoint."""
    from .debate.session import get_session_registry

    running = sum(1 for s in get_session_registry().sessions() if s.running)
    return JSONResponse({"status": "healthy", "version": __version__, "running_debates": running})


@mcp.tool()
def ping() -> str:
    """Health check - returns 'pong' if server is running."""
    return "pong"


# =============================================================================
# Debate Tools
# =============================================================================
from .audit import audit_event  # noqa: E402
from .tools.debate_tools import (  # noqa: E402
    debate_cancel,
    debate_clear_notification,
    debate_events,
    debate_start,
    debate_status,
    debate_submit_clarifications,
)


@mcp.tool(name="debate_start")
async def start_debate(
    problem: str,
    rounds: int | None = None,
    agents: list[str] | None = None,
    clarifications: bool | None = None,
    on_agent_failure: str | None = None,
    debate_id: str | None = None,
) -> dict:
    """
    Start a multi-agent debate: proposals, critiques and refinements over
    several rounds, then a judge synthesizes the final solution.

    Args:
        problem: Problem statement to debate
        rounds: Number of rounds (default from server config)
        agents: Agent ids or roles - architect, security, performance, testing, generalist
        clarifications: Collect clarifying questions before the debate starts
        on_agent_failure: "abort" or "continue" when an agent turn fails
        debate_id: Optional debate id

    Returns:
        Debate id and initial status
    """
    audit_event("tool_call", tool="debate_start", rounds=str(rounds))
    return await debate_start(
        problem=problem,
        rounds=rounds,
        agents=agents,
        clarifications=clarifications,
        on_agent_failure=on_agent_failure,
        debate_id=debate_id,
    )


@mcp.tool(name="debate_status")
async def debate_state(debate_id: str) -> dict:
    """
    Get the current state of a debate.

    Args:
        debate_id: The debate id

    Returns:
        Status, round progress, agents, notifications, and the result when done
    """
    return await debate_status(debate_id=debate_id)


@mcp.tool(name="debate_events")
async def debate_event_log(debate_id: str, since: int = 0) -> dict:
    """
    Read the event stream of a debate.

    Args:
        debate_id: The debate id
        since: Return events after this sequence number

    Returns:
        Events in acceptance order
    """
    return await debate_events(debate_id=debate_id, since=since)


@mcp.tool(name="debate_submit_clarifications")
async def answer_clarifications(debate_id: str, answers: dict[str, str]) -> dict:
    """
    Answer the clarifying questions of a debate awaiting clarifications.

    Args:
        debate_id: The debate id
        answers: Answers keyed by question id

    Returns:
        Acknowledgement
    """
    audit_event("tool_call", tool="debate_submit_clarifications", debate_id=debate_id)
    return await debate_submit_clarifications(debate_id=debate_id, answers=answers)


@mcp.tool(name="debate_cancel")
async def cancel_debate(debate_id: str, reason: str = "Cancelled by user") -> dict:
    """
    Cancel a running debate.

    Args:
        debate_id: The debate id
        reason: Reason recorded with the cancellation

    Returns:
        Final status
    """
    audit_event("tool_call", tool="debate_cancel", debate_id=debate_id)
    return await debate_cancel(debate_id=debate_id, reason=reason)


@mcp.tool(name="debate_clear_notification")
async def clear_notification(debate_id: str, notification_id: str) -> dict:
    """
    Dismiss a debate notification.

    Args:
        debate_id: The debate id
        notification_id: The notification id

    Returns:
        Remaining notification count
    """
    return await debate_clear_notification(debate_id=debate_id, notification_id=notification_id)


# =============================================================================
# Entry Point
# =============================================================================
def main() -> None:
    """Run the Dialectic MCP server."""
    logger.info(f"Starting {config.server_name} v{__version__}")
    logger.info(f"Transport: {config.transport}")
    logger.info(
        f"Rounds: {config.debate_default_rounds} (max {config.debate_max_rounds}), "
        f"on_agent_failure={config.on_agent_failure}"
    )
    mcp.run(transport=config.transport)


if __name__ == "__main__":
    main()
