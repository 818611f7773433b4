"""
State Layer - Runtime Data Models

This module defines the runtime state that survives between turns: the
message history and the variable map of a session, together with the
timestamps that drive TTL expiry.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

DEFAULT_TTL_SECONDS = 1800


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    role: Literal["system", "user", "assistant", "tool"]
    content: str
    tool_call_id: Optional[str] = None


class SessionState(BaseModel):
    """
    The state of a single conversational session.

    Expiry is derived from last_active_at and ttl_seconds; nothing sweeps
    sessions unless the backend chooses to.
    """
    session_id: str
    messages: List[Message] = Field(default_factory=list)
    variables: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    last_active_at: datetime = Field(default_factory=utcnow)
    ttl_seconds: int = DEFAULT_TTL_SECONDS

    @property
    def expires_at(self) -> datetime:
        return self.last_active_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def touch(self, now: Optional[datetime] = None):
        self.last_active_at = now or utcnow()

    def clear(self):
        self.messages = []
        self.variables = {}

    def truncate_history(self, max_messages: int):
        """
        Sliding window over the message log. Leading system messages are
        kept; the oldest conversational messages are dropped first.
        """
        if max_messages <= 0 or len(self.messages) <= max_messages:
            return
        leading = 0
        while leading < len(self.messages) and self.messages[leading].role == "system":
            leading += 1
        keep = max(max_messages - leading, 0)
        tail = self.messages[leading:]
        self.messages = self.messages[:leading] + (tail[-keep:] if keep else [])

    @property
    def latest_content(self) -> Optional[str]:
        if not self.messages:
            return None
        return self.messages[-1].content
