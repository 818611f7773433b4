"""Test the talk and api_request node executors"""

import unittest

from stateflow.domain.models import (
    ApiRequestNode,
    ContentMessage,
    TalkNode,
    VariableDeclaration,
)
from stateflow.exceptions import NodeExecutionError, TransportError
from stateflow.execution.executors import ApiRequestExecutor, TalkExecutor
from stateflow.state.models import Message, SessionState
from stateflow.transport.interface import HttpResult

from fakes import FakeLLM, FakeTransport, list_variable, make_context, run_executor


class TestTalkExecutor(unittest.IsolatedAsyncioTestCase):

    async def test_collects_reply(self):
        llm = FakeLLM(replies=["Hello there"], tokens=12)
        node = TalkNode(id="greet", system_prompt="Be brief.")
        context = make_context([node])

        fragments, result = await run_executor(TalkExecutor(llm), node, context)

        self.assertEqual(fragments, ["Hello there"])
        self.assertEqual(result.messages, [Message(role="assistant", content="Hello there")])
        self.assertEqual(result.total_tokens, 12)
        self.assertEqual(llm.calls[0]["model"], "test-model")
        self.assertEqual(llm.calls[0]["messages"][0], {"role": "system", "content": "Be brief."})

    async def test_streams_fragments(self):
        llm = FakeLLM(replies=["one two three"], tokens=5)
        node = TalkNode(id="n")
        fragments, result = await run_executor(
            TalkExecutor(llm), node, make_context([node], stream=True)
        )
        self.assertEqual(fragments, ["one ", "two ", "three"])
        self.assertEqual(result.messages[0].content, "one two three")
        self.assertEqual(result.total_tokens, 5)

    async def test_does_not_mutate_session(self):
        session = SessionState(session_id="s", messages=[Message(role="user", content="hi")])
        node = TalkNode(id="n", state={"step": 1})
        await run_executor(TalkExecutor(FakeLLM()), node, make_context([node], session=session))
        self.assertEqual(len(session.messages), 1)
        self.assertEqual(session.variables, {})

    async def test_system_prompt_replaces_prior_system_messages(self):
        session = SessionState(
            session_id="s",
            messages=[
                Message(role="system", content="old rules"),
                Message(role="user", content="hi"),
            ],
        )
        llm = FakeLLM()
        node = TalkNode(id="n", system_prompt="new rules")
        await run_executor(TalkExecutor(llm), node, make_context([node], session=session))
        self.assertEqual(
            llm.calls[0]["messages"],
            [{"role": "system", "content": "new rules"}, {"role": "user", "content": "hi"}],
        )

    async def test_system_prompt_appended_when_configured(self):
        session = SessionState(
            session_id="s",
            messages=[
                Message(role="system", content="old rules"),
                Message(role="user", content="hi"),
            ],
        )
        llm = FakeLLM()
        node = TalkNode(id="n", system_prompt="new rules")
        context = make_context([node], session=session, append_system_prompt=True)
        await run_executor(TalkExecutor(llm), node, context)
        self.assertEqual(
            llm.calls[0]["messages"][0], {"role": "system", "content": "old rules\n\nnew rules"}
        )

    async def test_append_without_prior_system_message_prepends(self):
        llm = FakeLLM()
        node = TalkNode(id="n", system_prompt="rules")
        await run_executor(TalkExecutor(llm), node, make_context([node], append_system_prompt=True))
        self.assertEqual(llm.calls[0]["messages"], [{"role": "system", "content": "rules"}])

    async def test_node_content_and_prompt_are_rendered(self):
        session = SessionState(session_id="s", variables={"city": "Oslo"})
        llm = FakeLLM()
        node = TalkNode(
            id="n",
            system_prompt="Destination: {{ city }}",
            content=[ContentMessage(role="user", content="Weather in {{ city }}? {{ unknown }}")],
        )
        await run_executor(TalkExecutor(llm), node, make_context([node], session=session))
        messages = llm.calls[0]["messages"]
        self.assertEqual(messages[0]["content"], "Destination: Oslo")
        self.assertEqual(messages[-1], {"role": "user", "content": "Weather in Oslo? "})

    async def test_tools_are_merged(self):
        llm = FakeLLM()
        request_tool = {"type": "function", "function": {"name": "a"}}
        node_tool = {"type": "function", "function": {"name": "b"}}
        node = TalkNode(id="n", tools=[node_tool])
        await run_executor(TalkExecutor(llm), node, make_context([node], tools=[request_tool]))
        self.assertEqual(llm.calls[0]["tools"], [request_tool, node_tool])

    async def test_state_bindings_are_validated(self):
        cabin = list_variable("cabin", ["Economy", "First"])
        node = TalkNode(id="n", state={"cabin": "Premium", "step": 2})
        fragments, result = await run_executor(
            TalkExecutor(FakeLLM()), node, make_context([node], variables=[cabin])
        )
        self.assertEqual(result.variables, {"step": 2})
        self.assertEqual(result.diagnostics[0]["code"], "state_invalid")

    async def test_extraction_binds_valid_values(self):
        cabin = list_variable("cabin", ["Economy", "Business", "First"])
        party = VariableDeclaration(
            variable_id="party", extraction_description="Party size", format={"type": "number"}
        )
        llm = FakeLLM(replies=["Booked."], extractions=[{"cabin": '"Business"', "party": "3"}])
        node = TalkNode(id="n")
        _, result = await run_executor(
            TalkExecutor(llm), node, make_context([node], variables=[cabin, party])
        )
        self.assertEqual(result.variables, {"cabin": "Business", "party": 3})
        self.assertEqual(result.diagnostics, [])
        system_prompt = llm.extraction_calls[0][0]["content"]
        self.assertIn("'cabin'", system_prompt)
        self.assertIn("Economy, Business, First", system_prompt)
        self.assertIn("ASSISTANT: Booked.", llm.extraction_calls[0][1]["content"])

    async def test_extraction_outside_options_leaves_variable_unset(self):
        cabin = list_variable("cabin", ["Economy", "Business", "First"])
        llm = FakeLLM(extractions=[{"cabin": '"Premium"'}])
        node = TalkNode(id="n")
        _, result = await run_executor(TalkExecutor(llm), node, make_context([node], variables=[cabin]))
        self.assertNotIn("cabin", result.variables)
        self.assertEqual(
            result.diagnostics,
            [{"code": "extraction_failed", "variable_id": "cabin", "reason": "invalid_option", "value": '"Premium"'}],
        )

    async def test_missing_values_are_not_diagnostics(self):
        cabin = list_variable("cabin", ["Economy"])
        llm = FakeLLM(extractions=[{"cabin": None}])
        node = TalkNode(id="n")
        _, result = await run_executor(TalkExecutor(llm), node, make_context([node], variables=[cabin]))
        self.assertEqual(result.variables, {})
        self.assertEqual(result.diagnostics, [])

    async def test_extraction_failure_is_not_fatal(self):
        cabin = list_variable("cabin", ["Economy"])
        llm = FakeLLM(replies=["Fine"], extractions=[RuntimeError("parser down")])
        node = TalkNode(id="n")
        fragments, result = await run_executor(
            TalkExecutor(llm), node, make_context([node], variables=[cabin])
        )
        self.assertEqual(fragments, ["Fine"])
        self.assertEqual(result.diagnostics[0]["reason"], "extraction_error")

    async def test_extraction_skipped_for_other_nodes(self):
        cabin = list_variable("cabin", ["Economy"], node_ids=["ask_cabin"])
        llm = FakeLLM()
        node = TalkNode(id="other")
        await run_executor(TalkExecutor(llm), node, make_context([node], variables=[cabin]))
        self.assertEqual(llm.extraction_calls, [])

    async def test_generation_failure_raises_node_error(self):
        llm = FakeLLM(replies=[RuntimeError("backend unavailable")])
        node = TalkNode(id="n")
        with self.assertRaises(NodeExecutionError) as ctx:
            await run_executor(TalkExecutor(llm), node, make_context([node]))
        self.assertEqual(ctx.exception.error_type, "generation_error")


class TestApiRequestExecutor(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.session = SessionState(
            session_id="s",
            variables={"flight": "LH123", "party": 2, "profile": {"name": "Ada"}},
        )

    async def test_substitutes_variables(self):
        transport = FakeTransport(
            {"https://api.test/flights/LH123": HttpResult(status_code=200, text='{"ok": true}')}
        )
        node = ApiRequestNode(
            id="lookup",
            endpoint="https://api.test/flights/{{ flight }}",
            method="post",
            headers={"X-Flight": "{{ flight }}"},
            body={"party": "{{ party }}", "who": "{{ profile }}", "note": "for {{ profile.name }}"},
            timeout=3,
        )
        fragments, _ = await run_executor(
            ApiRequestExecutor(transport), node, make_context([node], session=self.session)
        )
        call = transport.calls[0]
        self.assertEqual(call["method"], "post")
        self.assertEqual(call["headers"], {"X-Flight": "LH123"})
        self.assertEqual(call["body"], {"party": 2, "who": {"name": "Ada"}, "note": "for Ada"})
        self.assertEqual(call["timeout"], 3)
        self.assertEqual(fragments, ['{"ok": true}'])

    async def test_content_used_when_body_absent(self):
        transport = FakeTransport({"https://api.test/x": HttpResult(status_code=204)})
        node = ApiRequestNode(id="n", endpoint="https://api.test/x", content="Flight {{ flight }}")
        fragments, _ = await run_executor(
            ApiRequestExecutor(transport), node, make_context([node], session=self.session)
        )
        self.assertEqual(transport.calls[0]["body"], "Flight LH123")
        self.assertEqual(fragments, [])

    async def test_binds_output_variables(self):
        price = VariableDeclaration(variable_id="price", format={"type": "number"})
        body = '{"data": {"fares": [{"amount": 420.5}], "currency": "EUR"}}'
        transport = FakeTransport({"https://api.test/fare": HttpResult(status_code=200, text=body)})
        node = ApiRequestNode(
            id="fare",
            endpoint="https://api.test/fare",
            output_variables={"price": "data.fares.0.amount", "currency": "data.currency", "raw": ""},
        )
        _, result = await run_executor(
            ApiRequestExecutor(transport), node, make_context([node], variables=[price])
        )
        self.assertEqual(result.variables["price"], 420.5)
        self.assertEqual(result.variables["currency"], "EUR")
        self.assertEqual(result.variables["raw"]["data"]["currency"], "EUR")

    async def test_binding_problems_become_diagnostics(self):
        price = VariableDeclaration(variable_id="price", format={"type": "number"})
        transport = FakeTransport(
            {"https://api.test/fare": HttpResult(status_code=200, text='{"amount": "cheap"}')}
        )
        node = ApiRequestNode(
            id="fare",
            endpoint="https://api.test/fare",
            output_variables={"price": "amount", "tax": "tax.total"},
        )
        _, result = await run_executor(
            ApiRequestExecutor(transport), node, make_context([node], variables=[price])
        )
        self.assertEqual(result.variables, {})
        reasons = {d["variable_id"]: d["reason"] for d in result.diagnostics}
        self.assertEqual(reasons, {"price": "type_mismatch", "tax": "path_not_found"})

    async def test_non_2xx_is_node_error(self):
        transport = FakeTransport({"https://api.test/fare": HttpResult(status_code=500, text="oops")})
        node = ApiRequestNode(id="fare", endpoint="https://api.test/fare", output_variables={"price": "amount"})
        with self.assertRaises(NodeExecutionError) as ctx:
            await run_executor(ApiRequestExecutor(transport), node, make_context([node]))
        self.assertEqual(ctx.exception.error_type, "http_status")

    async def test_transport_failure_is_node_error(self):
        transport = FakeTransport(
            {"https://api.test/fare": TransportError("timed out", error_type="timeout")}
        )
        node = ApiRequestNode(id="fare", endpoint="https://api.test/fare")
        with self.assertRaises(NodeExecutionError) as ctx:
            await run_executor(ApiRequestExecutor(transport), node, make_context([node]))
        self.assertEqual(ctx.exception.error_type, "timeout")

    async def test_malformed_body_is_node_error(self):
        transport = FakeTransport(
            {"https://api.test/fare": HttpResult(status_code=200, text="<html>")}
        )
        node = ApiRequestNode(id="fare", endpoint="https://api.test/fare", output_variables={"price": "amount"})
        with self.assertRaises(NodeExecutionError) as ctx:
            await run_executor(ApiRequestExecutor(transport), node, make_context([node]))
        self.assertEqual(ctx.exception.error_type, "malformed_response")

    async def test_template_error_is_node_error(self):
        node = ApiRequestNode(id="n", endpoint="https://api.test/{{ flight")
        with self.assertRaises(NodeExecutionError) as ctx:
            await run_executor(ApiRequestExecutor(FakeTransport()), node, make_context([node]))
        self.assertEqual(ctx.exception.error_type, "template_error")

    async def test_render_time_failure_is_node_error(self):
        session = SessionState(session_id="s", variables={"name": "Ada", "count": 3})
        transport = FakeTransport()
        for endpoint in ["https://api.test/{{ name + 1 }}", "https://api.test/{{ count / 0 }}"]:
            with self.subTest(endpoint=endpoint):
                node = ApiRequestNode(id="n", endpoint=endpoint)
                with self.assertRaises(NodeExecutionError) as ctx:
                    await run_executor(
                        ApiRequestExecutor(transport), node, make_context([node], session=session)
                    )
                self.assertEqual(ctx.exception.error_type, "template_error")
        self.assertEqual(transport.calls, [])

    async def test_talk_prompt_render_failure_is_node_error(self):
        session = SessionState(session_id="s", variables={"count": "three"})
        llm = FakeLLM()
        node = TalkNode(id="n", system_prompt="Count is {{ count + 1 }}")
        with self.assertRaises(NodeExecutionError) as ctx:
            await run_executor(TalkExecutor(llm), node, make_context([node], session=session))
        self.assertEqual(ctx.exception.error_type, "template_error")
        self.assertEqual(llm.calls, [])


if __name__ == "__main__":
    unittest.main()
