"""
Executor interface shared by every node variant.

Executors never mutate the session. They read it through the
ExecutionContext, stream content fragments, and describe their effect in an
ExecutionResult that the orchestrator commits only when the node completes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List

from ...domain.models import Graph
from ...state.models import Message, SessionState
from ...variables.store import VariableStore


@dataclass
class ExecutionContext:
    session: SessionState
    graph: Graph
    store: VariableStore
    model: str
    tools: List[Dict[str, Any]] = field(default_factory=list)
    stream: bool = False


@dataclass
class ExecutionResult:
    """Pending delta of one node execution."""
    variables: Dict[str, Any] = field(default_factory=dict)
    messages: List[Message] = field(default_factory=list)
    diagnostics: List[Dict[str, Any]] = field(default_factory=list)
    total_tokens: int = 0

    def add_diagnostic(self, code: str, variable_id: str, reason: str, **extra: Any):
        self.diagnostics.append(
            {"code": code, "variable_id": variable_id, "reason": reason, **extra}
        )


class NodeExecutor(ABC):
    @abstractmethod
    def execute(
        self, node: Any, context: ExecutionContext, result: ExecutionResult
    ) -> AsyncIterator[str]:
        """
        Runs the node, yielding content fragments as they are produced and
        filling `result`. Raises NodeExecutionError on failure.
        """
        pass
