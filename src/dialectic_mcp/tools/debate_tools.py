"""Debate tools exposed over MCP.

Each tool returns a JSON-ready dict. Failures are reported as
``{"error": ...}`` rather than raised, so the MCP client always gets a
readable answer.
"""

import logging

from ..core.exceptions import DialecticError

logger = logging.getLogger(__name__)


async def debate_start(
    problem: str,
    rounds: int | None = None,
    agents: list[str] | None = None,
    clarifications: bool | None = None,
    on_agent_failure: str | None = None,
    debate_id: str | None = None,
) -> dict:
    """
    Start a multi-agent debate in the background.

    Args:
        problem: Problem statement to debate
        rounds: Number of proposal/critique/refinement rounds
        agents: Agent ids or role names (default: architect + performance)
        clarifications: Ask the agents for clarifying questions first
        on_agent_failure: "abort" or "continue" when a single agent turn fails
        debate_id: Optional id for the debate

    Returns:
        Debate id and initial status
    """
    from ..config import config
    from ..debate.agents import build_agents, get_agent_registry
    from ..debate.session import DebateSession, get_session_registry

    if on_agent_failure is not None and on_agent_failure not in ("abort", "continue"):
        return {
            "error": f"on_agent_failure must be 'abort' or 'continue', got {on_agent_failure!r}"
        }

    try:
        roster = get_agent_registry().roster(agents)
        session = DebateSession(
            problem=problem,
            agents=build_agents(roster),
            rounds=rounds,
            clarifications=clarifications,
            on_agent_failure=on_agent_failure,  # type: ignore[arg-type]
            session_id=debate_id,
        )
        await get_session_registry().add(session)
    except DialecticError as e:
        logger.warning(f"Debate start rejected: {e}")
        return {"error": str(e)}

    return {
        "debate_id": session.id,
        "status": session.state.status.value,
        "agents": [a.id for a in roster],
        "rounds": session.state.rounds,
        "on_agent_failure": on_agent_failure or config.on_agent_failure,
    }


async def debate_status(debate_id: str) -> dict:
    """
    Current state snapshot of a debate.

    Args:
        debate_id: The debate id

    Returns:
        Debate state (status, rounds, agents, notifications, result when done)
    """
    from ..debate.session import get_session_registry

    try:
        return get_session_registry().get(debate_id).status()
    except DialecticError as e:
        return {"error": str(e)}


async def debate_events(debate_id: str, since: int = 0) -> dict:
    """
    Events accepted after sequence number ``since``.

    Args:
        debate_id: The debate id
        since: Last sequence number already seen (0 for all)

    Returns:
        Ordered list of events with sequence numbers
    """
    from ..debate.session import get_session_registry

    try:
        session = get_session_registry().get(debate_id)
    except DialecticError as e:
        return {"error": str(e)}
    events = session.events_since(since)
    return {
        "debate_id": debate_id,
        "events": events,
        "last_seq": events[-1]["seq"] if events else since,
    }


async def debate_submit_clarifications(debate_id: str, answers: dict[str, str]) -> dict:
    """
    Answer the clarifying questions of a debate.

    Args:
        debate_id: The debate id
        answers: Answers keyed by question id; unanswered questions become "NA"

    Returns:
        Acknowledgement or error
    """
    from ..debate.session import get_session_registry

    try:
        session = get_session_registry().get(debate_id)
        session.submit_clarifications(answers)
    except DialecticError as e:
        return {"error": str(e)}
    return {"debate_id": debate_id, "submitted": len(answers)}


async def debate_cancel(debate_id: str, reason: str = "Cancelled by user") -> dict:
    """
    Cancel a running debate.

    Args:
        debate_id: The debate id
        reason: Reason recorded with the cancellation

    Returns:
        Whether the debate was cancelled and its final status
    """
    from ..debate.session import get_session_registry

    try:
        session = get_session_registry().get(debate_id)
    except DialecticError as e:
        return {"error": str(e)}
    cancelled = await session.cancel(reason)
    return {"debate_id": debate_id, "cancelled": cancelled, "status": session.state.status.value}


async def debate_clear_notification(debate_id: str, notification_id: str) -> dict:
    """
    Remove one notification from a debate.

    Args:
        debate_id: The debate id
        notification_id: Id of the notification to clear

    Returns:
        Remaining notification count
    """
    from ..debate.session import get_session_registry

    try:
        session = get_session_registry().get(debate_id)
        session.clear_notification(notification_id)
    except DialecticError as e:
        return {"error": str(e)}
    return {"debate_id": debate_id, "notifications": len(session.state.notifications)}
