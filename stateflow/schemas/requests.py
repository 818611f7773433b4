"""
Schemas - Turn Requests

The request body accepted by the responses endpoint and the service layer.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator

from ..domain.models import ContentMessage, Graph, VariableDeclaration


class ResponseRequest(BaseModel):
    """
    One turn against a session.

    Attributes:
        model: Model name forwarded to the generation backend.
        input: A user message string or a list of messages.
        states: The node graph for this turn.
        tools: Tool specs offered to every talk node.
        variables: Variable declarations for this turn.
        stream: Deliver events incrementally as server-sent events.
        session_id: Existing session to continue.
        create_session: Create the session when absent or expired.
        state_ttl: Session TTL in seconds.
    """
    model: str
    input: Union[str, List[ContentMessage]] = Field(default_factory=list)
    states: Graph
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    variables: List[VariableDeclaration] = Field(default_factory=list)
    stream: bool = False
    session_id: Optional[str] = None
    create_session: bool = False
    state_ttl: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def _check_unique_variables(self) -> "ResponseRequest":
        ids = [declaration.variable_id for declaration in self.variables]
        duplicates = sorted({v for v in ids if ids.count(v) > 1})
        if duplicates:
            raise ValueError(f"Duplicate variable ids: {duplicates}")
        return self

    def input_messages(self) -> List[ContentMessage]:
        """Normalises `input` and applies ignore_first_system_prompt."""
        if isinstance(self.input, str):
            return [ContentMessage(role="user", content=self.input)] if self.input else []
        messages = list(self.input)
        if self.states.ignore_first_system_prompt:
            for index, message in enumerate(messages):
                if message.role == "system":
                    del messages[index]
                    break
        return messages
