"""
Execution Layer - Graph Orchestration and Node Execution

Defines the GraphOrchestrator (deterministic state machine), the
ConditionEvaluator gating node entry, and the per-variant Node Executors.
"""

from stateflow.execution.conditions import ConditionEvaluator
from stateflow.execution.engine import GraphOrchestrator, TurnOutcome, TurnState
from stateflow.execution.executors import (
    ApiRequestExecutor,
    ExecutionContext,
    ExecutionResult,
    NodeExecutor,
    TalkExecutor,
    build_executors,
)


__all__ = [
    "ApiRequestExecutor",
    "ConditionEvaluator",
    "ExecutionContext",
    "ExecutionResult",
    "GraphOrchestrator",
    "NodeExecutor",
    "TalkExecutor",
    "TurnOutcome",
    "TurnState",
    "build_executors",
]
