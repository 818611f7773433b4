"""
Talk Executor - Language Model Node Execution

Builds the message list for a talk node (system prompt, session history,
node content), invokes the generation backend, and extracts declared
variables from the exchange with a structured-output call.
"""

import logging
from typing import Any, AsyncIterator, Dict, List

from ...domain.models import TalkNode
from ...exceptions import FormatError, NodeExecutionError
from ...llm.interface import LLMProvider
from ...schemas.extraction import ExtractionResult
from ...state.models import Message
from ..prompts import Template, render
from ..rendering import render_text
from .base import ExecutionContext, ExecutionResult, NodeExecutor

logger = logging.getLogger(__name__)


class TalkExecutor(NodeExecutor):
    def __init__(self, llm_provider: LLMProvider):
        self.llm = llm_provider

    async def execute(
        self, node: TalkNode, context: ExecutionContext, result: ExecutionResult
    ) -> AsyncIterator[str]:
        # 1. Initial bindings declared on the node
        for variable_id, value in node.state.items():
            try:
                context.store.bind(result.variables, variable_id, value)
            except FormatError as e:
                logger.warning(f"Node {node.id}: state value for '{variable_id}' rejected: {e}")
                result.add_diagnostic("state_invalid", variable_id, e.reason)

        variables = {**context.session.variables, **result.variables}

        # 2. Prepare Messages (System + History + Node Content)
        messages = self._build_messages(node, context, variables)
        tools = list(context.tools) + list(node.tools)

        # 3. Generate
        fragments: List[str] = []
        try:
            if context.stream:
                async for chunk in self.llm.stream(messages, tools=tools or None, model=context.model):
                    result.total_tokens += chunk.total_tokens
                    if chunk.text:
                        fragments.append(chunk.text)
                        yield chunk.text
            else:
                generation = await self.llm.generate(messages, tools=tools or None, model=context.model)
                result.total_tokens += generation.total_tokens
                if generation.text:
                    fragments.append(generation.text)
                    yield generation.text
        except NodeExecutionError:
            raise
        except Exception as e:
            logger.error(f"Generation failed for node {node.id}: {e}")
            raise NodeExecutionError(f"Generation failed: {e}", error_type="generation_error") from e

        reply = Message(role="assistant", content="".join(fragments))
        result.messages.append(reply)

        # 4. Extract declared variables from the exchange
        await self._extract(node, context, result, messages, reply)

    # ==========================================================================
    # Message Assembly
    # ==========================================================================

    def _build_messages(
        self, node: TalkNode, context: ExecutionContext, variables: Dict[str, Any]
    ) -> List[dict]:
        history = list(context.session.messages)

        if node.system_prompt:
            prompt = render_text(node.system_prompt, variables)
            has_system = any(m.role == "system" for m in history)
            if context.graph.append_system_prompt and has_system:
                # Append to the first system message, keep its position.
                first = next(i for i, m in enumerate(history) if m.role == "system")
                merged = history[first].content + "\n\n" + prompt
                history[first] = Message(role="system", content=merged)
            else:
                history = [Message(role="system", content=prompt)] + [
                    m for m in history if m.role != "system"
                ]

        for item in node.content:
            history.append(
                Message(
                    role=item.role,
                    content=render_text(item.content, variables),
                    tool_call_id=item.tool_call_id,
                )
            )

        return [_to_provider_message(m) for m in history]

    # ==========================================================================
    # Variable Extraction
    # ==========================================================================

    async def _extract(
        self,
        node: TalkNode,
        context: ExecutionContext,
        result: ExecutionResult,
        messages: List[dict],
        reply: Message,
    ):
        declarations = context.store.extractable_for(node.id)
        if not declarations:
            return

        known = {
            d.variable_id: context.session.variables[d.variable_id]
            for d in declarations
            if d.variable_id in context.session.variables
        }
        system_prompt = render(
            Template.VARIABLE_EXTRACTION,
            declarations=declarations,
            current_values=known,
        )
        transcript = _transcript(messages + [_to_provider_message(reply)])

        try:
            extraction = await self.llm.generate_structured_output(
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": transcript},
                ],
                response_model=ExtractionResult,
                model=context.model,
            )
        except Exception as e:
            logger.warning(f"Variable extraction failed for node {node.id}: {e}")
            for declaration in declarations:
                result.add_diagnostic("extraction_failed", declaration.variable_id, "extraction_error")
            return

        wanted = {d.variable_id for d in declarations}
        for item in extraction.values:
            if item.variable_id not in wanted or item.value_json is None:
                continue
            try:
                value = context.store.parse(item.variable_id, item.value_json)
            except FormatError as e:
                logger.info(
                    f"Node {node.id}: extracted value for '{item.variable_id}' rejected ({e.reason})"
                )
                result.add_diagnostic(
                    "extraction_failed", item.variable_id, e.reason, value=item.value_json
                )
                continue
            result.variables[item.variable_id] = value


def _to_provider_message(message: Message) -> dict:
    payload = {"role": message.role, "content": message.content}
    if message.tool_call_id:
        payload["tool_call_id"] = message.tool_call_id
    return payload


def _transcript(messages: List[dict]) -> str:
    lines = ["CONVERSATION:"]
    for message in messages:
        if message["role"] == "system":
            continue
        lines.append(f"{message['role'].upper()}: {message['content']}")
    return "\n".join(lines)
