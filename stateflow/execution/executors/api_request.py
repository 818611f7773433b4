"""
API Request Executor - External HTTP Node Execution

Renders the node's endpoint, headers and body with session variables,
calls the transport, and binds output variables from the JSON response.
Any failure to obtain a usable response is a NodeExecutionError; the
orchestrator turns it into a node_error event.
"""

import logging
from typing import Any, AsyncIterator

from ...domain.models import ApiRequestNode
from ...exceptions import FormatError, NodeExecutionError
from ...transport.interface import HttpTransport
from ..rendering import render_text, render_value
from .base import ExecutionContext, ExecutionResult, NodeExecutor

logger = logging.getLogger(__name__)

_MISSING = object()


class ApiRequestExecutor(NodeExecutor):
    def __init__(self, transport: HttpTransport):
        self.transport = transport

    async def execute(
        self, node: ApiRequestNode, context: ExecutionContext, result: ExecutionResult
    ) -> AsyncIterator[str]:
        variables = context.session.variables
        endpoint = render_text(node.endpoint, variables)
        headers = {key: render_text(value, variables) for key, value in node.headers.items()}
        payload = node.body if node.body is not None else node.content
        body = render_value(payload, variables) if payload is not None else None

        logger.info(f"Node {node.id}: {node.method.upper()} {endpoint}")
        response = await self.transport.call(
            endpoint,
            method=node.method,
            headers=headers,
            body=body,
            timeout=node.timeout,
        )

        if not response.ok:
            raise NodeExecutionError(
                f"{node.method.upper()} {endpoint} returned HTTP {response.status_code}",
                error_type="http_status",
            )

        if response.text:
            yield response.text

        if not node.output_variables:
            return

        try:
            document = response.json()
        except ValueError as e:
            raise NodeExecutionError(
                f"Response from {endpoint} is not valid JSON: {e}",
                error_type="malformed_response",
            )

        for variable_id, path in node.output_variables.items():
            value = _select(document, path)
            if value is _MISSING:
                result.add_diagnostic("binding_failed", variable_id, "path_not_found", path=path)
                continue
            try:
                context.store.bind(result.variables, variable_id, value)
            except FormatError as e:
                result.add_diagnostic("binding_failed", variable_id, e.reason, path=path)


def _select(document: Any, path: str) -> Any:
    """Follows a dotted path (dict keys and list indices) into a JSON document."""
    value = document
    if not path:
        return value
    for part in path.split("."):
        if isinstance(value, dict) and part in value:
            value = value[part]
        elif isinstance(value, list) and part.lstrip("-").isdigit():
            index = int(part)
            if not -len(value) <= index < len(value):
                return _MISSING
            value = value[index]
        else:
            return _MISSING
    return value
