from stateflow.streaming.emitter import SSE_DONE, EventStream, format_sse

__all__ = ["EventStream", "SSE_DONE", "format_sse"]
