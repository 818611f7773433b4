"""
Node Executors

One executor per node variant, looked up by the node's `type` tag.
"""

from typing import Dict

from ...llm.interface import LLMProvider
from ...transport.interface import HttpTransport
from .api_request import ApiRequestExecutor
from .base import ExecutionContext, ExecutionResult, NodeExecutor
from .talk import TalkExecutor


def build_executors(llm_provider: LLMProvider, transport: HttpTransport) -> Dict[str, NodeExecutor]:
    return {
        "talk": TalkExecutor(llm_provider),
        "api_request": ApiRequestExecutor(transport),
    }


__all__ = [
    "ApiRequestExecutor",
    "ExecutionContext",
    "ExecutionResult",
    "NodeExecutor",
    "TalkExecutor",
    "build_executors",
]
