"""
Response Service - Application Orchestration Layer

This service is the entry point for every turn. It orchestrates the
interaction between the Session Manager, the Graph Orchestrator and the
API, making sure sessions are resolved under their lock, processed, and
saved exactly once, whether the caller collects events or streams them.
"""

import asyncio
import contextlib
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Set

from ..exceptions import GraphValidationError, SessionNotFound
from ..execution.engine import GraphOrchestrator, TurnOutcome
from ..execution.executors.base import ExecutionContext
from ..schemas.events import ErrorInfo, TurnResponse, Usage
from ..schemas.requests import ResponseRequest
from ..state.models import Message, SessionState
from ..streaming.emitter import SSE_DONE, EventStream, format_sse
from ..variables.store import VariableStore
from .session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class _OpenTurn:
    """A turn whose session is checked out and locked."""
    request: ResponseRequest
    session: SessionState
    scope: AsyncExitStack


class ResponseService:
    def __init__(self, session_manager: SessionManager, orchestrator: GraphOrchestrator):
        self.sessions = session_manager
        self.orchestrator = orchestrator

    async def create_response(self, request: ResponseRequest) -> TurnResponse:
        """Runs a turn and returns the complete event list."""
        turn = await self.open_turn(request)
        return await self._run(turn, EventStream(incremental=False))

    async def stream_response(self, request: ResponseRequest) -> AsyncIterator[str]:
        """
        Opens the turn (session errors raise here, before anything is sent)
        and returns an iterator of SSE chunks.
        """
        turn = await self.open_turn(request)
        events = EventStream(incremental=True)
        # Started eagerly so the session lock is released even if the
        # iterator is never consumed.
        task = asyncio.create_task(self._run(turn, events))
        return self._stream(turn, events, task)

    async def open_turn(self, request: ResponseRequest) -> _OpenTurn:
        """
        1. Reject an invalid graph before any session is created for it
        2. Check out the session (lock + resolve)
        3. Re-validate the graph against the locked session's variables
        4. Record the turn's input messages
        """
        if self._undeclared_requirements(request):
            self._validate_graph(request, self._bound_before_turn(request))

        scope = AsyncExitStack()
        session = await scope.enter_async_context(
            self.sessions.checkout(
                session_id=request.session_id,
                create_session=request.create_session,
                state_ttl=request.state_ttl,
            )
        )
        try:
            self._validate_graph(request, session.variables)
        except GraphValidationError:
            await scope.aclose()
            raise

        for item in request.input_messages():
            session.messages.append(
                Message(role=item.role, content=item.content, tool_call_id=item.tool_call_id)
            )
        return _OpenTurn(request=request, session=session, scope=scope)

    # ==========================================================================
    # Turn Execution
    # ==========================================================================

    async def _run(self, turn: _OpenTurn, events: EventStream) -> TurnResponse:
        request, session = turn.request, turn.session
        started = time.monotonic()
        context = ExecutionContext(
            session=session,
            graph=request.states,
            store=VariableStore(request.variables),
            model=request.model,
            tools=request.tools,
            stream=events.incremental,
        )

        try:
            outcome = await self.orchestrator.run_turn(context, events)
        finally:
            events.close()
            # Saves the session once and releases its lock.
            await turn.scope.aclose()

        logger.info(
            f"Turn for session {session.session_id} finished in {outcome.state.name} "
            f"after {outcome.steps} steps"
        )
        return self._build_response(request, session, events, outcome, time.monotonic() - started)

    async def _stream(
        self, turn: _OpenTurn, events: EventStream, task: "asyncio.Task[TurnResponse]"
    ) -> AsyncIterator[str]:
        try:
            async for event in events:
                yield format_sse(event)
            response = await task
            yield format_sse(response.model_dump(mode="json", exclude={"events"}, exclude_none=True))
            yield SSE_DONE
        finally:
            # Consumer went away mid-stream: stop the turn cooperatively.
            if not task.done():
                logger.info(f"Stream for session {turn.session.session_id} closed early; cancelling turn")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                # A task cancelled before its first step never ran _run's cleanup.
                await turn.scope.aclose()

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _undeclared_requirements(self, request: ResponseRequest) -> Set[str]:
        declared = {d.variable_id for d in request.variables}
        return {
            v
            for node in request.states.nodes
            if node.transition_condition is not None
            for v in node.transition_condition.required_variables
            if v not in declared
        }

    def _bound_before_turn(self, request: ResponseRequest) -> Dict[str, Any]:
        """Variables of the targeted live session. Never creates or refreshes it."""
        if request.session_id is None:
            return {}
        try:
            return self.sessions.get(request.session_id).variables
        except SessionNotFound:
            if request.create_session:
                return {}
            raise

    def _validate_graph(self, request: ResponseRequest, bound: Dict[str, Any]):
        declared = {d.variable_id for d in request.variables}
        for node in request.states.nodes:
            gate = node.transition_condition
            if gate is None:
                continue
            unknown = [
                v for v in gate.required_variables
                if v not in declared and v not in bound
            ]
            if unknown:
                raise GraphValidationError(
                    f"Node '{node.id}' requires undeclared variables: {unknown}"
                )

    def _build_response(
        self,
        request: ResponseRequest,
        session: SessionState,
        events: EventStream,
        outcome: TurnOutcome,
        elapsed: float,
    ) -> TurnResponse:
        error = None
        if outcome.error is not None:
            error = ErrorInfo(type=type(outcome.error).__name__, message=str(outcome.error))
        return TurnResponse(
            model=request.model,
            session_id=session.session_id,
            events=list(events.events),
            usage=Usage(total_tokens=outcome.total_tokens, total_time=round(elapsed, 3)),
            error=error,
        )
