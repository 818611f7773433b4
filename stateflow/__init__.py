"""
Stateflow

A stateful, graph-based orchestration engine that drives multi-step
conversations through typed nodes (model calls and external API calls),
gating transitions on extracted variables and streaming progress events.
"""

from stateflow.domain import (
    ApiRequestNode,
    Graph,
    TalkNode,
    TransitionCondition,
    VariableDeclaration,
    VariableFormat,
)
from stateflow.state import Message, SessionState
from stateflow.schemas import Event, EventType, ResponseRequest, TurnResponse
from stateflow.variables import VariableStore
from stateflow.execution import ConditionEvaluator, GraphOrchestrator, build_executors
from stateflow.streaming import EventStream
from stateflow.services.session_manager import SessionManager
from stateflow.services.responses import ResponseService

__all__ = [
    # Domain Layer
    "ApiRequestNode",
    "Graph",
    "TalkNode",
    "TransitionCondition",
    "VariableDeclaration",
    "VariableFormat",
    # State Layer
    "Message",
    "SessionState",
    # Schemas
    "Event",
    "EventType",
    "ResponseRequest",
    "TurnResponse",
    # Variables
    "VariableStore",
    # Execution Layer
    "ConditionEvaluator",
    "GraphOrchestrator",
    "build_executors",
    # Streaming
    "EventStream",
    # Services
    "ResponseService",
    "SessionManager",
]
