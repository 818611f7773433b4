"""In-process stand-ins for the generation backend, HTTP transport and clock."""

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from stateflow.domain.models import Graph, VariableDeclaration
from stateflow.execution.executors.base import ExecutionContext, ExecutionResult
from stateflow.llm.interface import Generation, GenerationChunk, LLMProvider
from stateflow.schemas.extraction import ExtractedValue, ExtractionResult
from stateflow.state.models import SessionState
from stateflow.transport.interface import HttpResult, HttpTransport
from stateflow.variables.store import VariableStore


class FakeLLM(LLMProvider):
    """
    Replies are consumed in order; an Exception entry is raised instead.
    Extractions map variable_id -> value_json, one dict per extraction call.
    Calls with index >= block_from wait until `release` is set.
    """

    def __init__(
        self,
        replies: Iterable[Union[str, Exception]] = (),
        extractions: Iterable[Union[Dict[str, Optional[str]], Exception]] = (),
        tokens: int = 0,
        block_from: Optional[int] = None,
    ):
        self.replies = list(replies)
        self.extractions = list(extractions)
        self.tokens = tokens
        self.block_from = block_from
        self.calls: List[Dict[str, Any]] = []
        self.extraction_calls: List[List[dict]] = []
        self.blocked = asyncio.Event()
        self.release = asyncio.Event()

    async def _record(self, messages, tools, model):
        self.calls.append({"messages": messages, "tools": tools, "model": model})
        if self.block_from is not None and len(self.calls) > self.block_from:
            self.blocked.set()
            await self.release.wait()

    def _next_reply(self) -> str:
        if not self.replies:
            return "ok"
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate(self, messages, tools=None, model=None) -> Generation:
        await self._record(messages, tools, model)
        return Generation(text=self._next_reply(), total_tokens=self.tokens)

    async def stream(self, messages, tools=None, model=None):
        await self._record(messages, tools, model)
        text = self._next_reply()
        for piece in re.findall(r"\S+\s*", text):
            yield GenerationChunk(text=piece)
        yield GenerationChunk(total_tokens=self.tokens)

    async def generate_structured_output(self, messages, response_model, temperature=0.0, model=None):
        self.extraction_calls.append(messages)
        if not self.extractions:
            return response_model()
        item = self.extractions.pop(0)
        if isinstance(item, Exception):
            raise item
        return ExtractionResult(
            values=[ExtractedValue(variable_id=k, value_json=v) for k, v in item.items()]
        )


class FakeTransport(HttpTransport):
    """Answers by endpoint; unknown endpoints get a 404. Exceptions are raised."""

    def __init__(self, responses: Optional[Dict[str, Union[HttpResult, Exception]]] = None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def call(self, endpoint, method="GET", headers=None, body=None, timeout=None) -> HttpResult:
        self.calls.append(
            {"endpoint": endpoint, "method": method, "headers": headers, "body": body, "timeout": timeout}
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.get(endpoint, HttpResult(status_code=404, text="not found"))
        if isinstance(response, Exception):
            raise response
        return response


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


def make_context(
    nodes: list,
    variables: Iterable[VariableDeclaration] = (),
    session: Optional[SessionState] = None,
    stream: bool = False,
    append_system_prompt: bool = False,
    tools: Iterable[dict] = (),
) -> ExecutionContext:
    graph = Graph(nodes=nodes, append_system_prompt=append_system_prompt)
    return ExecutionContext(
        session=session or SessionState(session_id="session-1"),
        graph=graph,
        store=VariableStore(variables),
        model="test-model",
        tools=list(tools),
        stream=stream,
    )


async def run_executor(executor, node, context):
    result = ExecutionResult()
    fragments = [fragment async for fragment in executor.execute(node, context, result)]
    return fragments, result


def list_variable(variable_id: str, options: List[str], **kwargs) -> VariableDeclaration:
    return VariableDeclaration(
        variable_id=variable_id,
        extraction_description=kwargs.pop("extraction_description", f"The {variable_id}"),
        format={"type": "list", "options": options},
        **kwargs,
    )
