import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ..config import settings
from ..exceptions import GraphValidationError, SessionNotFound
from ..schemas.events import TurnResponse
from ..schemas.requests import ResponseRequest
from ..services.responses import ResponseService
from ..services.session_manager import SessionManager
from ..state.models import SessionState
from .dependencies import (
    get_http_transport,
    get_response_service,
    get_session_manager,
    get_session_repository,
)
from .schemas import (
    ChatMessage,
    CreateSessionRequest,
    CreateSessionResponse,
    ErrorResponse,
    SessionRead,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Shutting down; closing transport and session backend")
    # Teardown: close outbound connections and the session backend.
    if get_http_transport.cache_info().currsize:
        await get_http_transport().aclose()
    if get_session_repository.cache_info().currsize:
        get_session_repository().close()


app = FastAPI(title="Stateflow Graph Orchestrator", lifespan=lifespan)


# --- Error Mapping ---

@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(error="session_not_found", detail=str(exc)).model_dump(),
    )


@app.exception_handler(GraphValidationError)
async def graph_validation_handler(request: Request, exc: GraphValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ErrorResponse(error="invalid_graph", detail=str(exc)).model_dump(),
    )


# --- Endpoints ---

@app.post(
    "/v1/responses",
    response_model=TurnResponse,
    response_model_exclude_none=True,
    responses={404: {"model": ErrorResponse}, 400: {"model": ErrorResponse}},
)
async def create_response(
    request: ResponseRequest,
    service: ResponseService = Depends(get_response_service)
):
    """
    Runs one turn through the node graph.
    With stream=true the events are delivered as server-sent events.
    """
    if request.stream:
        chunks = await service.stream_response(request)
        return StreamingResponse(
            chunks,
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )
    return await service.create_response(request)


@app.post(
    "/v1/sessions",
    response_model=CreateSessionResponse,
    status_code=status.HTTP_201_CREATED
)
def create_session(
    body: Optional[CreateSessionRequest] = None,
    manager: SessionManager = Depends(get_session_manager)
):
    """Starts a new empty session, optionally with a caller-chosen id."""
    body = body or CreateSessionRequest()
    if body.session_id:
        # Only an expired holder of the id may be replaced.
        try:
            manager.get(body.session_id)
        except SessionNotFound:
            pass
        else:
            raise HTTPException(status_code=409, detail="Session already exists")
    session = manager.create(session_id=body.session_id, state_ttl=body.state_ttl)
    return CreateSessionResponse(session_id=session.session_id, expires_at=session.expires_at)


@app.get("/v1/sessions/{session_id}", response_model=SessionRead)
def get_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
):
    """Retrieves the full session resource."""
    return _to_session_read(manager.get(session_id))


@app.post("/v1/sessions/{session_id}/clear", response_model=SessionRead)
async def clear_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
):
    """Empties messages and variables, keeping the id and TTL."""
    session = await manager.clear_state(session_id)
    return _to_session_read(session)


@app.delete("/v1/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    manager: SessionManager = Depends(get_session_manager)
):
    """
    Deletes a session. Returns 204 No Content on success.
    """
    success = await manager.delete(session_id)
    if not success:
        raise HTTPException(status_code=404, detail="Session not found")

    # For 204, we must explicitly return a Response object with no content
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _to_session_read(session: SessionState) -> SessionRead:
    # Map the internal 'Message' onto the public 'ChatMessage'.
    messages = [
        ChatMessage(role=m.role, content=m.content, tool_call_id=m.tool_call_id)
        for m in session.messages
    ]
    return SessionRead(
        session_id=session.session_id,
        messages=messages,
        variables=session.variables,
        created_at=session.created_at,
        last_active_at=session.last_active_at,
        ttl_seconds=session.ttl_seconds,
        expires_at=session.expires_at,
    )
