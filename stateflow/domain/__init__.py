"""
Domain Layer - Graph Definition Models

Defines the static structure of a request: the node graph, transition
conditions, and variable declarations.
"""

from stateflow.domain.models import (
    ApiRequestNode,
    ContentMessage,
    Graph,
    Node,
    TalkNode,
    TransitionCondition,
    VariableDeclaration,
    VariableFormat,
    VariableType,
)

__all__ = [
    "ApiRequestNode",
    "ContentMessage",
    "Graph",
    "Node",
    "TalkNode",
    "TransitionCondition",
    "VariableDeclaration",
    "VariableFormat",
    "VariableType",
]
