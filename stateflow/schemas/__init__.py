"""
Schemas - Wire and Structured Output Models

Request, event and response models exchanged with callers, and the
structured output model used for variable extraction.
"""

from stateflow.schemas.events import ErrorInfo, Event, EventType, TurnResponse, Usage
from stateflow.schemas.extraction import ExtractedValue, ExtractionResult
from stateflow.schemas.requests import ResponseRequest

__all__ = [
    "ErrorInfo",
    "Event",
    "EventType",
    "ExtractedValue",
    "ExtractionResult",
    "ResponseRequest",
    "TurnResponse",
    "Usage",
]
