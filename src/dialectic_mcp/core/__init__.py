"""Core modules for the Dialectic MCP Server."""

from .exceptions import (
    AgentTurnError,
    DialecticError,
    FatalDebateError,
    GeminiAPIError,
    GeminiParseError,
    GeminiTimeoutError,
    InvalidTransitionError,
    IterationLimitExceeded,
)
from .gemini import GeminiClient, GeminiRequest
from .response import GeminiResponse, GeminiStats

__all__ = [
    "GeminiClient",
    "GeminiRequest",
    "GeminiResponse",
    "GeminiStats",
    "DialecticError",
    "GeminiAPIError",
    "GeminiParseError",
    "GeminiTimeoutError",
    "InvalidTransitionError",
    "AgentTurnError",
    "IterationLimitExceeded",
    "FatalDebateError",
]
