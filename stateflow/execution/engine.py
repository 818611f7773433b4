"""
Engine - Graph Orchestration Layer

The GraphOrchestrator is the deterministic state machine that drives one
turn through a node graph. It picks nodes with the ConditionEvaluator,
delegates their work to the Node Executors, commits their deltas to the
session and reports progress on an EventStream.
-----------------------------------------------

Traversal is single-pass, order-respecting, first-match:
1. The entry node is the first node, in declaration order, that can be entered.
2. After a node finishes (complete or error) the orchestrator scans the
    remaining nodes in declaration order, or the node's explicit `next`
    list, and runs the first one that can be entered.
3. Nodes skipped during a scan are not revisited in the same turn. When
    no candidate qualifies the turn ends successfully.

Explicit `next` lists may point backwards, so graphs can loop; the step
ceiling guarantees every turn terminates.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, Iterable, List, Optional

from ..domain.models import Graph, NodeBase
from ..exceptions import GraphStepLimitExceeded, NodeExecutionError, StateflowError
from ..schemas.events import Event, EventType
from ..state.models import SessionState
from ..streaming.emitter import EventStream
from .conditions import ConditionEvaluator
from .executors.base import ExecutionContext, ExecutionResult, NodeExecutor

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 64


class TurnState(Enum):
    """Where the orchestrator is within a turn."""

    READY = auto()  # Entry node not yet selected
    EXECUTING = auto()  # A node is running
    ADVANCING = auto()  # Selecting the next node
    AWAITING_VARIABLES = auto()  # Candidates exist but their variables are unbound
    TERMINAL_SUCCESS = auto()
    TERMINAL_ERROR = auto()


@dataclass
class TurnOutcome:
    state: TurnState = TurnState.READY
    steps: int = 0
    total_tokens: int = 0
    executed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    awaiting: List[str] = field(default_factory=list)
    error: Optional[StateflowError] = None


class GraphOrchestrator:
    def __init__(
        self,
        executors: Dict[str, NodeExecutor],
        evaluator: Optional[ConditionEvaluator] = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        node_timeout: Optional[float] = None,
    ):
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.executors = executors
        self.evaluator = evaluator or ConditionEvaluator()
        self.max_steps = max_steps
        self.node_timeout = node_timeout

    async def run_turn(
        self, context: ExecutionContext, events: EventStream
    ) -> TurnOutcome:
        """
        Walks the graph for one turn.

        Each completed node's delta is committed to `context.session` before
        the next node is selected. Cancellation propagates; the node that was
        running at that point commits nothing.
        """
        graph = context.graph
        session = context.session
        outcome = TurnOutcome()

        index = self._select(graph, range(len(graph.nodes)), session, outcome)

        while index is not None:
            if outcome.steps >= self.max_steps:
                outcome.error = GraphStepLimitExceeded(self.max_steps)
                self._transition(outcome, TurnState.TERMINAL_ERROR)
                logger.warning(
                    f"Session {session.session_id}: step limit {self.max_steps} reached"
                )
                return outcome

            node = graph.nodes[index]
            outcome.steps += 1
            self._transition(outcome, TurnState.EXECUTING, node.id)
            await self._run_node(node, context, events, outcome)

            self._transition(outcome, TurnState.ADVANCING, node.id)
            index = self._select(graph, self._successors(graph, index), session, outcome)

        self._transition(outcome, TurnState.TERMINAL_SUCCESS)
        return outcome

    # ==========================================================================
    # Node Selection
    # ==========================================================================

    def _successors(self, graph: Graph, index: int) -> Iterable[int]:
        node = graph.nodes[index]
        if node.next:
            return [graph.index_of(target) for target in node.next]
        return range(index + 1, len(graph.nodes))

    def _select(
        self,
        graph: Graph,
        candidates: Iterable[int],
        session: SessionState,
        outcome: TurnOutcome,
    ) -> Optional[int]:
        """First candidate that can be entered, or None."""
        blocked: List[str] = []
        for index in candidates:
            node = graph.nodes[index]
            if self.evaluator.can_enter(node, session):
                return index
            if self._missing_variables(node, session):
                blocked.append(node.id)

        if blocked:
            outcome.awaiting = blocked
            self._transition(outcome, TurnState.AWAITING_VARIABLES, ", ".join(blocked))
        return None

    def _missing_variables(self, node: NodeBase, session: SessionState) -> List[str]:
        gate = node.transition_condition
        if gate is None:
            return []
        return [v for v in gate.required_variables if v not in session.variables]

    # ==========================================================================
    # Node Execution & Commit
    # ==========================================================================

    async def _run_node(
        self,
        node: NodeBase,
        context: ExecutionContext,
        events: EventStream,
        outcome: TurnOutcome,
    ):
        executor = self.executors.get(node.type)
        await events.emit(Event(type=EventType.NODE_START, node_id=node.id))

        if executor is None:
            await self._fail(
                node, events, outcome, "unsupported_node", f"No executor for node type '{node.type}'"
            )
            return

        result = ExecutionResult()
        try:
            async with asyncio.timeout(self.node_timeout):
                async for fragment in executor.execute(node, context, result):
                    await events.emit(
                        Event(type=EventType.CONTENT, node_id=node.id, content=fragment)
                    )
        except NodeExecutionError as e:
            outcome.total_tokens += result.total_tokens
            await self._fail(node, events, outcome, e.error_type, str(e))
            return
        except TimeoutError:
            outcome.total_tokens += result.total_tokens
            await self._fail(
                node, events, outcome, "timeout", f"Node exceeded {self.node_timeout}s"
            )
            return

        self._commit(context.session, result)
        outcome.total_tokens += result.total_tokens
        outcome.executed.append(node.id)

        metadata = {"diagnostics": result.diagnostics} if result.diagnostics else None
        await events.emit(
            Event(type=EventType.NODE_COMPLETE, node_id=node.id, metadata=metadata)
        )

    def _commit(self, session: SessionState, result: ExecutionResult):
        session.variables.update(result.variables)
        session.messages.extend(result.messages)

    async def _fail(
        self,
        node: NodeBase,
        events: EventStream,
        outcome: TurnOutcome,
        error_type: str,
        message: str,
    ):
        logger.warning(f"Node {node.id} failed ({error_type}): {message}")
        outcome.failed.append(node.id)
        await events.emit(
            Event(
                type=EventType.NODE_ERROR,
                node_id=node.id,
                content=message,
                metadata={"error": {"type": error_type, "message": message}},
            )
        )

    def _transition(self, outcome: TurnOutcome, state: TurnState, detail: str = ""):
        logger.debug(f"{outcome.state.name} -> {state.name} {detail}".rstrip())
        outcome.state = state
