"""Unit tests for the Gateway conversation loop."""

import asyncio

import pytest
import pytest_asyncio

from switchboard_server.conversation import Conversation, Message, Role, ToolCallRequest
from switchboard_server.errors import (
    AuthError,
    CapabilityNotFoundError,
    ToolLoopLimitError,
    TransportError,
)
from switchboard_server.services import Gateway
from switchboard_server.tools import CapabilityDescriptor, CapabilityRegistry, CapabilityResult


class FakeToolServer:
    """Tool server stand-in hosting a fixed set of tools."""

    def __init__(self, results):
        self.results = results
        self.executed = []

    @property
    def hosted_capabilities(self):
        return [CapabilityDescriptor(name=name) for name in self.results]

    def hosts(self, name):
        return name in self.results

    async def execute(self, name, arguments):
        self.executed.append((name, arguments))
        result = self.results[name]
        if isinstance(result, Exception):
            raise result
        return result


@pytest_asyncio.fixture
async def registry(math_tools):
    registry = CapabilityRegistry()
    await registry.register(math_tools)
    return registry


@pytest.fixture
def gateway(registry):
    return Gateway(registry, transport_retries=1, transport_retry_backoff=0)


def question(text="What is 2+2?"):
    return Conversation([Message.user(text)])


def add_call(call_id="call_1", a=2, b=2):
    return ToolCallRequest(call_id, "add", {"a": a, "b": b})


@pytest.mark.asyncio
async def test_plain_reply(gateway, scripted_provider, make_reply):
    provider = scripted_provider([make_reply("Hello!")])
    original = question("Hi")

    result = await gateway.converse(original, provider, system_prompt="Be nice")

    assert [m.role for m in result] == [Role.USER, Role.ASSISTANT]
    assert result[-1].content == "Hello!"
    assert len(original) == 1
    assert provider.calls[0][0] == "send"


@pytest.mark.asyncio
async def test_tool_loop_end_to_end(gateway, scripted_provider, make_reply):
    provider = scripted_provider(
        [make_reply(tool_calls=[add_call()]), make_reply("2+2 is 4")]
    )
    appended = []

    result = await gateway.converse(
        question(), provider, ["add"], on_message=appended.append
    )

    assert [m.role for m in result] == [Role.USER, Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
    tool_message = result[2]
    assert tool_message.content == "4"
    assert tool_message.tool_call_id == "call_1"
    assert tool_message.name == "add"
    assert result[-1].content == "2+2 is 4"
    assert appended == result[1:]
    # The second request carried the tool result and the same capability list
    kind, sent, names = provider.calls[1]
    assert kind == "tools"
    assert names == ["add"]
    assert sent[-1] == tool_message


@pytest.mark.asyncio
async def test_parallel_calls_keep_order(gateway, scripted_provider, make_reply):
    provider = scripted_provider(
        [
            make_reply(tool_calls=[add_call("c1", 2, 2), add_call("c2", 3, 3)]),
            make_reply("4 and 6"),
        ]
    )

    result = await gateway.converse(question("2+2 and 3+3?"), provider, ["add"])

    assert [(m.tool_call_id, m.content) for m in result if m.role is Role.TOOL] == [
        ("c1", "4"),
        ("c2", "6"),
    ]


@pytest.mark.asyncio
async def test_tool_failure_is_reported_to_model(gateway, scripted_provider, make_reply):
    provider = scripted_provider(
        [
            make_reply(tool_calls=[ToolCallRequest("c1", "divide", {"a": 1, "b": 0})]),
            make_reply("Cannot divide by zero"),
        ]
    )

    result = await gateway.converse(question("1/0?"), provider, ["divide"])

    assert result[2].content.startswith("Error:")
    assert result[-1].content == "Cannot divide by zero"


@pytest.mark.asyncio
async def test_loop_limit(registry, scripted_provider, make_reply):
    gateway = Gateway(registry, max_tool_iterations=2, transport_retry_backoff=0)
    provider = scripted_provider([make_reply(tool_calls=[add_call(f"c{i}")]) for i in range(3)])

    with pytest.raises(ToolLoopLimitError) as exc_info:
        await gateway.converse(question(), provider, ["add"])

    partial = exc_info.value.conversation
    assert len(partial) == 6
    assert partial[-1].tool_calls[0].id == "c2"
    assert provider.replies == []


@pytest.mark.asyncio
async def test_unknown_capability_fails_before_sending(gateway, scripted_provider):
    provider = scripted_provider()

    with pytest.raises(CapabilityNotFoundError):
        await gateway.converse(question(), provider, ["add", "multiply"])

    assert provider.calls == []


@pytest.mark.asyncio
async def test_transport_error_is_retried(gateway, scripted_provider, make_reply):
    provider = scripted_provider(
        [TransportError("timeout", provider="scripted"), make_reply("ok")]
    )

    result = await gateway.converse(question(), provider)

    assert result[-1].content == "ok"
    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_retries_are_bounded(gateway, scripted_provider):
    provider = scripted_provider(
        [TransportError("down", provider="scripted") for _ in range(3)]
    )

    with pytest.raises(TransportError):
        await gateway.converse(question(), provider)

    assert len(provider.calls) == 2


@pytest.mark.asyncio
async def test_auth_error_is_not_retried(gateway, scripted_provider, make_reply):
    provider = scripted_provider([AuthError("bad key", provider="scripted"), make_reply("ok")])

    with pytest.raises(AuthError):
        await gateway.converse(question(), provider)

    assert len(provider.replies) == 1


@pytest.mark.asyncio
async def test_streaming_deltas(gateway, scripted_provider, make_reply):
    provider = scripted_provider([make_reply("Hello there friend")])
    deltas = []

    result = await gateway.converse(question("Hi"), provider, on_delta=deltas.append)

    assert deltas == ["Hello", " there", " friend"]
    assert "".join(deltas) == result[-1].content


@pytest.mark.asyncio
async def test_stream_retried_only_before_first_delta(
    gateway, scripted_provider, stream_failure, make_reply
):
    provider = scripted_provider(
        [stream_failure([], TransportError("reset", provider="scripted")), make_reply("Hi again")]
    )
    deltas = []

    result = await gateway.converse(question("Hi"), provider, on_delta=deltas.append)

    assert result[-1].content == "Hi again"
    assert deltas == ["Hi", " again"]

    provider = scripted_provider(
        [stream_failure(["Hel"], TransportError("reset", provider="scripted")), make_reply("x")]
    )
    deltas = []

    with pytest.raises(TransportError):
        await gateway.converse(question("Hi"), provider, on_delta=deltas.append)

    assert deltas == ["Hel"]
    assert len(provider.replies) == 1


@pytest.mark.asyncio
async def test_tool_server_fallback(registry, scripted_provider, make_reply):
    tool_server = FakeToolServer(
        {
            "clock": CapabilityResult.ok("noon"),
            "weather": TransportError("tool server gone", provider="toolserver"),
        }
    )
    gateway = Gateway(registry, tool_server, transport_retry_backoff=0)
    provider = scripted_provider(
        [
            make_reply(
                tool_calls=[
                    ToolCallRequest("c1", "clock", {}),
                    ToolCallRequest("c2", "weather", {"city": "Oslo"}),
                ]
            ),
            make_reply("It is noon"),
        ]
    )

    result = await gateway.converse(question("Time?"), provider, ["clock", "weather", "add"])

    assert provider.calls[0][2] == ["clock", "weather", "add"]
    assert result[2].content == "noon"
    assert result[3].content == "Error: tool server gone"
    assert tool_server.executed == [("clock", {}), ("weather", {"city": "Oslo"})]
    assert [d.name for d in gateway.available_capabilities()] == [
        "add",
        "divide",
        "clock",
        "weather",
    ]


@pytest.mark.asyncio
async def test_execute_unknown_tool(gateway):
    result = await gateway.execute_tool("nope", {})
    assert not result.success
    assert "nope" in result.error_message


@pytest.mark.asyncio
async def test_cancellation_leaves_gateway_usable(gateway, scripted_provider, make_reply):
    class HangingProvider(scripted_provider):
        async def send_message_with_tools(self, conversation, capabilities, system_prompt=None):
            await asyncio.Event().wait()

    hanging = HangingProvider()
    task = asyncio.ensure_future(gateway.converse(question(), hanging, ["add"]))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    provider = scripted_provider([make_reply(tool_calls=[add_call()]), make_reply("4")])
    result = await gateway.converse(question(), provider, ["add"])
    assert result[-1].content == "4"
