"""
Dependency Injection Wiring (Composition Root).

This module acts as the central "container" for the application's services.
It is responsible for:
1. Instantiating the core Singleton services (Repositories, Adapters, Orchestrator).
2. Wiring them together (e.g., injecting the LLM and HTTP adapters into the executors).
3. Managing the lifecycle of these objects using @lru_cache to ensure
   they are created only once per application process.

Tests override get_response_service / get_session_manager through
FastAPI's dependency_overrides.
"""


from functools import lru_cache
from fastapi import Depends

from ..config import settings
from ..llm.interface import LLMProvider
from ..llm.adapters.openai_adapter import OpenAIAdapter
from ..transport.interface import HttpTransport
from ..transport.adapters.httpx_adapter import HttpxTransport
from ..repositories.session import SessionRepository, InMemorySessionRepository, PostgresSessionRepository
from ..execution.conditions import ConditionEvaluator
from ..execution.engine import GraphOrchestrator
from ..execution.executors import build_executors
from ..services.session_manager import SessionManager
from ..services.responses import ResponseService

# LLM Provider (Singleton)
@lru_cache()
def get_llm_provider() -> LLMProvider:
    return OpenAIAdapter(
        api_key=settings.OPENAI_API_KEY,
        model_name=settings.OPENAI_MODEL,
        temperature=settings.LLM_TEMPERATURE,
    )

# HTTP Transport (Singleton, shares one connection pool)
@lru_cache()
def get_http_transport() -> HttpTransport:
    return HttpxTransport(timeout=settings.HTTP_TIMEOUT_SECONDS)

# Session Repository (Singleton)
# Note: In-memory storage must be a singleton so data persists across requests!
@lru_cache()
def get_session_repository() -> SessionRepository:
    if settings.SESSION_BACKEND == "postgres":
        return PostgresSessionRepository()
    return InMemorySessionRepository()

# Session Manager (Singleton: owns the per-session locks)
@lru_cache()
def get_session_manager(
    repo: SessionRepository = Depends(get_session_repository)
) -> SessionManager:
    return SessionManager(
        repository=repo,
        default_ttl=settings.DEFAULT_STATE_TTL_SECONDS,
        history_window=settings.HISTORY_WINDOW,
    )

# The Orchestrator (Singleton Service)
@lru_cache()
def get_orchestrator(
    llm: LLMProvider = Depends(get_llm_provider),
    transport: HttpTransport = Depends(get_http_transport)
) -> GraphOrchestrator:
    return GraphOrchestrator(
        executors=build_executors(llm, transport),
        evaluator=ConditionEvaluator(),
        max_steps=settings.MAX_GRAPH_STEPS,
        node_timeout=settings.NODE_TIMEOUT_SECONDS,
    )

# The Response Service (Singleton Service)
@lru_cache()
def get_response_service(
    session_manager: SessionManager = Depends(get_session_manager),
    orchestrator: GraphOrchestrator = Depends(get_orchestrator)
) -> ResponseService:
    """
    Injects all necessary components into the ResponseService.
    """
    return ResponseService(
        session_manager=session_manager,
        orchestrator=orchestrator
    )
