"""Multi-agent debate engine."""

from .orchestrator import DebateOrchestrator
from .session import DebateSession, SessionRegistry, get_session_registry
from .state_machine import DebateStateMachine, reduce, replay
from .types import DebateResult, DebateState, DebateStatus

__all__ = [
    "DebateOrchestrator",
    "DebateSession",
    "SessionRegistry",
    "get_session_registry",
    "DebateStateMachine",
    "reduce",
    "replay",
    "DebateResult",
    "DebateState",
    "DebateStatus",
]
