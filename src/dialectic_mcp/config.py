"""Configuration management for the Dialectic MCP Server."""

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings


class DialecticConfig(BaseSettings):
    """Configuration for the Dialectic MCP Server.

    All settings can be overridden via environment variables with DIALECTIC_ prefix.
    Example: DIALECTIC_ON_AGENT_FAILURE=abort
    """

    # =========================================================================
    # Server Settings
    # =========================================================================
    server_name: str = "dialectic-mcp"
    server_host: str = "0.0.0.0"
    server_port: int = 8765
    transport: Literal["stdio", "sse", "streamable-http"] = "stdio"

    # =========================================================================
    # Gemini Model Settings
    # =========================================================================
    default_model: str = "gemini-3-pro-preview"
    fast_model: str = "gemini-3-flash-preview"
    # Empty means the judge uses default_model
    judge_model: str = ""

    # =========================================================================
    # Debate Settings
    # =========================================================================
    debate_default_rounds: int = 3
    debate_max_rounds: int = 10
    clarifications_enabled: bool = False
    clarifications_max_per_agent: int = 5
    # What the phase barrier does when a single agent turn fails
    on_agent_failure: Literal["abort", "continue"] = "continue"
    include_full_history: bool = True
    # Finished sessions kept for status queries; oldest evicted first
    session_retention: int = 100

    # =========================================================================
    # History Summarization
    # =========================================================================
    summarization_enabled: bool = True
    # Characters of an agent's own history that trigger a summary
    summarization_threshold: int = 5000
    summarization_max_length: int = 2500

    # =========================================================================
    # Turn Limits
    # =========================================================================
    max_tool_iterations: int = 5
    agent_turn_timeout: int = 180  # seconds per agent call
    agent_call_retries: int = 1  # retries after a timed-out agent call

    # =========================================================================
    # Notifications
    # =========================================================================
    notification_capacity: int = 500  # oldest dropped first when exceeded

    # =========================================================================
    # Logging
    # =========================================================================
    log_level: str = "INFO"
    # Enable structured JSON audit logging for tool invocations
    audit_log: bool = False

    # =========================================================================
    # Validators: bounds checking for numeric / enum fields
    # =========================================================================
    @field_validator("server_port")
    @classmethod
    def _port_range(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError(f"server_port must be 1-65535, got {v}")
        return v

    @field_validator("debate_default_rounds", "debate_max_rounds")
    @classmethod
    def _rounds_range(cls, v: int) -> int:
        if not (1 <= v <= 100):
            raise ValueError(f"Round count must be 1-100, got {v}")
        return v

    @field_validator("clarifications_max_per_agent")
    @classmethod
    def _clarification_limit(cls, v: int) -> int:
        if not (1 <= v <= 20):
            raise ValueError(f"clarifications_max_per_agent must be 1-20, got {v}")
        return v

    @field_validator("max_tool_iterations")
    @classmethod
    def _iterations_range(cls, v: int) -> int:
        if not (1 <= v <= 50):
            raise ValueError(f"max_tool_iterations must be 1-50, got {v}")
        return v

    @field_validator("agent_turn_timeout")
    @classmethod
    def _positive_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Timeout must be >= 1 second, got {v}")
        return v

    @field_validator("agent_call_retries")
    @classmethod
    def _retries_range(cls, v: int) -> int:
        if not (0 <= v <= 3):
            raise ValueError(f"agent_call_retries must be 0-3, got {v}")
        return v

    @field_validator("notification_capacity")
    @classmethod
    def _capacity_floor(cls, v: int) -> int:
        if v < 10:
            raise ValueError(f"notification_capacity must be >= 10, got {v}")
        return v

    @field_validator("session_retention")
    @classmethod
    def _retention_floor(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"session_retention must be >= 1, got {v}")
        return v

    @field_validator("summarization_threshold", "summarization_max_length")
    @classmethod
    def _summary_sizes(cls, v: int) -> int:
        if v < 100:
            raise ValueError(f"Summarization sizes must be >= 100 characters, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {valid}, got {v}")
        return v.upper()

    model_config = {
        "env_prefix": "DIALECTIC_",
        "env_file": ".env",
        "extra": "ignore",
    }


# Global configuration instance
config = DialecticConfig()
