"""
Schemas - Turn Events and Responses

Pydantic models for the event sequence a turn produces and the response
envelope returned to callers, batched or streamed.
"""
import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """
    Node lifecycle and content events.

    NODE_START: The node was entered.
    CONTENT: A fragment of node output (model text or HTTP response body).
    NODE_COMPLETE: Terminal. The node's delta was committed.
    NODE_ERROR: Terminal. The node failed and its delta was discarded.
    """
    NODE_START = "node_start"
    CONTENT = "content"
    NODE_COMPLETE = "node_complete"
    NODE_ERROR = "node_error"

    @property
    def is_terminal(self) -> bool:
        return self in (EventType.NODE_COMPLETE, EventType.NODE_ERROR)


class Event(BaseModel):
    type: EventType
    node_id: str
    content: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)
    metadata: Optional[Dict[str, Any]] = None


class Usage(BaseModel):
    total_tokens: int = 0
    total_time: float = 0.0


class ErrorInfo(BaseModel):
    type: str
    message: str


class TurnResponse(BaseModel):
    """
    The response envelope for one turn.
    `error` is only set when the turn itself ended in a terminal error.
    """
    id: str = Field(default_factory=lambda: f"resp_{uuid.uuid4().hex}")
    object: str = "response"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    session_id: str
    events: List[Event] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    error: Optional[ErrorInfo] = None
