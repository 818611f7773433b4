"""
Event Stream - Ordered delivery of turn events.

The orchestrator is the producer: it emits events in execution order. The
consumer either reads them incrementally (async iteration, used for
server-sent events) or takes the recorded list once the turn is over.
"""

import asyncio
import json
from typing import Any, AsyncIterator, List, Union

from pydantic import BaseModel

from ..schemas.events import Event

SSE_DONE = "data: [DONE]\n\n"

_CLOSED = object()


class EventStream:
    def __init__(self, incremental: bool = False):
        self.incremental = incremental
        self.events: List[Event] = []
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: Event):
        if self._closed:
            raise RuntimeError("Cannot emit on a closed event stream.")
        self.events.append(event)
        if self.incremental:
            await self._queue.put(event)

    def close(self):
        """Signals the consumer that no more events will arrive. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self.incremental:
            self._queue.put_nowait(_CLOSED)

    async def __aiter__(self) -> AsyncIterator[Event]:
        if not self.incremental:
            raise RuntimeError("Batched event streams cannot be iterated; read .events instead.")
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


def format_sse(payload: Union[BaseModel, dict]) -> str:
    """Frames one payload as a server-sent event chunk."""
    if isinstance(payload, BaseModel):
        data = payload.model_dump_json(exclude_none=True)
    else:
        data = json.dumps(payload, default=str)
    return f"data: {data}\n\n"
