"""Response types for the Gemini backend."""

from dataclasses import dataclass, field


@dataclass
class GeminiStats:
    """Statistics from a Gemini API call."""

    prompt_tokens: int = 0
    response_tokens: int = 0
    total_tokens: int = 0
    duration_ms: int = 0


@dataclass
class GeminiResponse:
    """Response from a Gemini API call.

    ``function_calls`` holds the raw function-call requests of the model as
    ``{"id": ..., "name": ..., "args": {...}}`` dicts, in the order emitted.
    """

    text: str = ""
    stats: GeminiStats | None = None
    error: str | None = None
    elapsed_seconds: float = 0.0
    model: str = ""
    function_calls: list[dict] = field(default_factory=list)

    @property
    def has_function_calls(self) -> bool:
        """True when the model asked for at least one tool."""
        return bool(self.function_calls)
