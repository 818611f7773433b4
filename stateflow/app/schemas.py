"""
API Layer - Session Resource Schemas

Pydantic models for the session endpoints. Turn requests and responses
live in stateflow.schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    session_id: Optional[str] = None
    state_ttl: Optional[int] = Field(None, ge=1)


class CreateSessionResponse(BaseModel):
    session_id: str
    expires_at: datetime


class ChatMessage(BaseModel):
    role: str
    content: str
    tool_call_id: Optional[str] = None


class SessionRead(BaseModel):
    session_id: str
    messages: List[ChatMessage]
    variables: Dict[str, Any]
    created_at: datetime
    last_active_at: datetime
    ttl_seconds: int
    expires_at: datetime


class ErrorResponse(BaseModel):
    error: str
    detail: str
