"""
State Layer - Runtime Data Models

Defines the per-session runtime state: message history, variables and
TTL bookkeeping.
"""

from stateflow.state.models import (
    Message,
    SessionState,
)

__all__ = [
    "Message",
    "SessionState",
]
