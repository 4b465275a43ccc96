"""Gemini API client using the google-genai SDK."""

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from typing import Any

from google import genai
from google.genai import types

from ..config import config
from .exceptions import GeminiAPIError, GeminiParseError, GeminiTimeoutError
from .response import GeminiResponse, GeminiStats

logger = logging.getLogger(__name__)


@dataclass
class GeminiRequest:
    """Request configuration for Gemini API.

    Attributes:
        contents: A prompt string or a list of ``types.Content`` turns
        model: Model to use (default from config)
        system_instruction: Optional system prompt
        temperature: Controls randomness (0.0-1.0)
        max_output_tokens: Maximum tokens to generate
        timeout: Request timeout in seconds
        function_declarations: Tool schemas offered to the model
    """

    contents: Any
    model: str | None = None
    system_instruction: str | None = None
    temperature: float | None = None
    max_output_tokens: int | None = None
    timeout: int | None = None
    function_declarations: list[dict] | None = None


class GeminiClient:
    """Client for Google's Gemini API using the genai SDK."""

    def __init__(self) -> None:
        """Initialize the Gemini client.

        Uses the GOOGLE_API_KEY environment variable when present, otherwise
        falls back to Application Default Credentials.
        """
        self.default_model = config.default_model
        self.fast_model = config.fast_model

        api_key = os.getenv("GOOGLE_API_KEY")
        try:
            if api_key:
                self.client = genai.Client(api_key=api_key)
                logger.info("Authenticated using API key (Developer API)")
            else:
                self.client = genai.Client()
                logger.info("Initialized client with Application Default Credentials")
        except Exception as e:
            logger.error(f"Failed to initialize Gemini Client: {e}")
            # We don't raise here to allow the server to start, but requests will fail
            self.client = None

    def _build_config(self, request: GeminiRequest) -> types.GenerateContentConfig:
        tools = None
        if request.function_declarations:
            tools = [
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=decl["name"],
                            description=decl.get("description", ""),
                            parameters_json_schema=decl.get("parameters"),
                        )
                        for decl in request.function_declarations
                    ]
                )
            ]
        return types.GenerateContentConfig(
            temperature=request.temperature,
            max_output_tokens=request.max_output_tokens,
            system_instruction=request.system_instruction,
            tools=tools,
            # The debate engine runs its own bounded tool loop
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

    async def generate(self, request: GeminiRequest) -> GeminiResponse:
        """Generate content using Gemini API.

        Args:
            request: Request configuration

        Returns:
            GeminiResponse with generated content and any function calls

        Raises:
            GeminiAPIError: If API call fails
            GeminiTimeoutError: If the request exceeds its timeout
            GeminiParseError: If response parsing fails
        """
        if self.client is None:
            raise GeminiAPIError("Gemini client is not initialized")

        model = request.model or self.default_model
        start_time = time.time()

        try:
            call = self.client.aio.models.generate_content(
                model=model,
                contents=request.contents,
                config=self._build_config(request),
            )
            if request.timeout:
                response = await asyncio.wait_for(call, timeout=request.timeout)
            else:
                response = await call
        except TimeoutError as e:
            raise GeminiTimeoutError(
                f"Request to {model} timed out after {request.timeout}s"
            ) from e
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            if "401" in str(e) or "Unauthenticated" in str(e):
                logger.error("Authentication failed. Set GOOGLE_API_KEY")
            raise GeminiAPIError(f"API request failed: {e}") from e

        elapsed = time.time() - start_time
        return self._parse_response(response, elapsed, model)

    def _parse_response(self, response: Any, elapsed: float, model: str) -> GeminiResponse:
        """Parse API response into GeminiResponse."""
        try:
            function_calls = [
                {
                    "id": getattr(fc, "id", None) or "",
                    "name": fc.name,
                    "args": dict(fc.args or {}),
                }
                for fc in (getattr(response, "function_calls", None) or [])
            ]
            # .text warns and returns None when only function calls are present
            text = "" if function_calls else (getattr(response, "text", None) or "")

            usage = getattr(response, "usage_metadata", None)
            stats = GeminiStats(
                prompt_tokens=getattr(usage, "prompt_token_count", 0) or 0 if usage else 0,
                response_tokens=(getattr(usage, "candidates_token_count", 0) or 0 if usage else 0),
                total_tokens=getattr(usage, "total_token_count", 0) or 0 if usage else 0,
                duration_ms=int(elapsed * 1000),
            )

            return GeminiResponse(
                text=text,
                stats=stats,
                elapsed_seconds=elapsed,
                model=model,
                function_calls=function_calls,
            )

        except Exception as e:
            raise GeminiParseError(f"Failed to parse response: {e}") from e


# Global client instance
_client: GeminiClient | None = None


def get_client() -> GeminiClient:
    """Get or create the global Gemini client."""
    global _client
    if _client is None:
        _client = GeminiClient()
    return _client
