"""Custom exceptions for the Dialectic MCP Server."""


class DialecticError(Exception):
    """Base exception for Dialectic errors."""

    pass


class GeminiAPIError(DialecticError):
    """Error communicating with Gemini API."""

    pass


class GeminiParseError(DialecticError):
    """Error parsing Gemini response."""

    pass


class GeminiTimeoutError(DialecticError):
    """Timeout waiting for Gemini response."""

    pass


class InvalidTransitionError(DialecticError):
    """Event delivered in a state that forbids it.

    The state machine leaves its state unchanged when this is raised.
    """

    def __init__(self, event_type: str, status: str, reason: str = "") -> None:
        self.event_type = event_type
        self.status = status
        self.reason = reason
        message = f"Event '{event_type}' not allowed in status '{status}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class AgentTurnError(DialecticError):
    """An agent turn failed (model call, timeout, or cancellation)."""

    def __init__(self, agent_id: str, message: str) -> None:
        self.agent_id = agent_id
        super().__init__(message)


class IterationLimitExceeded(AgentTurnError):
    """The tool-call loop reached its iteration cap without a final answer."""

    def __init__(self, agent_id: str, max_iterations: int) -> None:
        self.max_iterations = max_iterations
        super().__init__(
            agent_id,
            f"Agent {agent_id} exceeded the tool-call iteration limit ({max_iterations})",
        )


class FatalDebateError(DialecticError):
    """Unrecoverable debate condition (invalid configuration and similar)."""

    pass
