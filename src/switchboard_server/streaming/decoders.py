"""Vendor stream decoders.

Each decoder turns a vendor's incremental wire format into the normalized
event sequence: ContentDelta / ToolCallDelta / ToolCallReady events followed by
exactly one Done event. Decoders are single-use: the event sequence is lazy,
forward-only and can be consumed once.
"""

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Iterator

from switchboard_server.conversation import (
    ToolCallRequest,
    Usage,
    new_tool_call_id,
    parse_arguments,
)
from switchboard_server.errors import TransportError
from switchboard_server.streaming.accumulator import ToolCallAccumulator
from switchboard_server.streaming.events import (
    ContentDelta,
    Done,
    StreamEvent,
    ToolCallDelta,
    ToolCallReady,
)

logger = logging.getLogger(__name__)

# SSE fields other than "data" carry nothing the decoders need
_SSE_IGNORED_PREFIXES = ("event:", "id:", "retry:", ":")


class StreamDecoder:
    """Base class for vendor stream decoders.

    Subclasses implement _handle_frame(), which receives one decoded JSON frame
    and yields events. Setting self._terminated ends the stream after the
    current frame; a line equal to `sentinel` ends it immediately.

    Subclasses set self._ended once the vendor's terminal frame arrived. If the
    input runs out before that, tool calls still pending are dropped and the
    final Done is marked incomplete.
    """

    provider = "unknown"
    sentinel: str | None = None

    def __init__(self) -> None:
        self._claimed = False
        self._terminated = False
        self._ended = False
        self._done_emitted = False
        self._accumulator = ToolCallAccumulator()
        self._finish_reason: str | None = None
        self._prompt_tokens: int | None = None
        self._completion_tokens: int | None = None

    def _claim(self) -> None:
        if self._claimed:
            raise RuntimeError(f"{type(self).__name__} can only be consumed once")
        self._claimed = True

    async def decode_lines(self, lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
        """Decode raw text lines (SSE "data:" framing or NDJSON).

        Args:
            lines: Async iterable of text lines, e.g. httpx Response.aiter_lines()

        Yields:
            StreamEvent: Normalized events, ending with Done
        """
        self._claim()
        async for line in lines:
            payload = self._payload(line)
            if payload is None:
                continue
            if self.sentinel is not None and payload == self.sentinel:
                # the sentinel is the terminal frame for every call still open
                self._ended = True
                for event in self._ready_all():
                    yield event
                break
            try:
                frame = json.loads(payload)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed {self.provider} stream frame: {e}")
                continue
            for event in self._safe_handle(frame):
                yield event
            if self._terminated:
                break
        for event in self._finish():
            yield event

    async def decode_frames(self, frames: AsyncIterable[Any]) -> AsyncIterator[StreamEvent]:
        """Decode frames that were already parsed by a client library."""
        self._claim()
        async for frame in frames:
            if hasattr(frame, "model_dump"):
                frame = frame.model_dump()
            for event in self._safe_handle(frame):
                yield event
            if self._terminated:
                break
        for event in self._finish():
            yield event

    @staticmethod
    def _payload(line: str) -> str | None:
        line = line.strip()
        if not line or line.startswith(_SSE_IGNORED_PREFIXES):
            return None
        if line.startswith("data:"):
            return line[len("data:") :].strip() or None
        return line

    def _safe_handle(self, frame: Any) -> list[StreamEvent]:
        if not isinstance(frame, dict):
            logger.warning(f"Skipping non-object {self.provider} stream frame")
            return []
        try:
            return list(self._handle_frame(frame))
        except (KeyError, TypeError, ValueError, AttributeError, IndexError) as e:
            logger.warning(f"Skipping malformed {self.provider} stream frame: {e}")
            return []

    def _handle_frame(self, frame: dict[str, Any]) -> Iterator[StreamEvent]:
        raise NotImplementedError

    def _ready(self, index: int) -> Iterator[StreamEvent]:
        call = self._accumulator.complete(index)
        if call is not None:
            yield ToolCallReady(index=index, call=call)

    def _ready_all(self) -> Iterator[StreamEvent]:
        for index, call in self._accumulator.complete_all():
            yield ToolCallReady(index=index, call=call)

    def _finish(self) -> Iterator[StreamEvent]:
        if self._done_emitted:
            return
        dropped = self._accumulator.discard_all()
        if dropped:
            logger.warning(
                f"Dropping {len(dropped)} {self.provider} tool call(s) at index "
                f"{dropped} that never received a terminal frame"
            )
        if not self._ended:
            logger.warning(f"{self.provider} stream ended before its terminal frame")
        self._done_emitted = True
        usage = None
        if self._prompt_tokens is not None or self._completion_tokens is not None:
            usage = Usage(
                prompt_tokens=self._prompt_tokens or 0,
                completion_tokens=self._completion_tokens or 0,
            )
        yield Done(finish_reason=self._finish_reason, usage=usage, complete=self._ended)


class OpenAIStreamDecoder(StreamDecoder):
    """Decoder for OpenAI-compatible chat completion chunks.

    Tool calls arrive as index-keyed delta arrays and complete on the
    finish_reason frame (or the [DONE] sentinel).
    """

    provider = "openai"
    sentinel = "[DONE]"

    def _handle_frame(self, frame: dict[str, Any]) -> Iterator[StreamEvent]:
        if frame.get("error"):
            error = frame["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise TransportError(f"Stream error: {message}", provider=self.provider)

        usage = frame.get("usage")
        if usage:
            self._prompt_tokens = usage.get("prompt_tokens", 0)
            self._completion_tokens = usage.get("completion_tokens", 0)

        for choice in frame.get("choices") or []:
            delta = choice.get("delta") or {}
            content = delta.get("content")
            if content:
                yield ContentDelta(text=content)

            for fragment in delta.get("tool_calls") or []:
                index = int(fragment.get("index", 0))
                function = fragment.get("function") or {}
                arguments = function.get("arguments") or ""
                self._accumulator.add(
                    index,
                    call_id=fragment.get("id"),
                    name=function.get("name"),
                    arguments=arguments,
                )
                yield ToolCallDelta(
                    index=index,
                    call_id=fragment.get("id"),
                    name=function.get("name"),
                    arguments=arguments,
                )

            if choice.get("finish_reason"):
                self._finish_reason = choice["finish_reason"]
                self._ended = True
                yield from self._ready_all()


class AnthropicStreamDecoder(StreamDecoder):
    """Decoder for Anthropic Messages API server-sent events.

    Each content block is started, filled by deltas and stopped; a tool_use
    block becomes ready on its content_block_stop.
    """

    provider = "anthropic"

    def _handle_frame(self, frame: dict[str, Any]) -> Iterator[StreamEvent]:
        frame_type = frame.get("type")

        if frame_type == "message_start":
            usage = (frame.get("message") or {}).get("usage") or {}
            self._prompt_tokens = usage.get("input_tokens", 0)
            if "output_tokens" in usage:
                self._completion_tokens = usage["output_tokens"]

        elif frame_type == "content_block_start":
            index = int(frame["index"])
            block = frame.get("content_block") or {}
            if block.get("type") == "tool_use":
                self._accumulator.add(index, call_id=block.get("id"), name=block.get("name"))
                yield ToolCallDelta(index=index, call_id=block.get("id"), name=block.get("name"))
            elif block.get("text"):
                yield ContentDelta(text=block["text"])

        elif frame_type == "content_block_delta":
            index = int(frame["index"])
            delta = frame.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                yield ContentDelta(text=delta["text"])
            elif delta.get("type") == "input_json_delta":
                partial = delta.get("partial_json") or ""
                self._accumulator.add(index, arguments=partial)
                yield ToolCallDelta(index=index, arguments=partial)

        elif frame_type == "content_block_stop":
            yield from self._ready(int(frame["index"]))

        elif frame_type == "message_delta":
            delta = frame.get("delta") or {}
            if delta.get("stop_reason"):
                self._finish_reason = delta["stop_reason"]
            usage = frame.get("usage") or {}
            if "output_tokens" in usage:
                self._completion_tokens = usage["output_tokens"]

        elif frame_type == "message_stop":
            self._ended = True
            self._terminated = True

        elif frame_type == "error":
            error = frame.get("error") or {}
            raise TransportError(
                f"Stream error: {error.get('message', 'unknown error')}",
                provider=self.provider,
            )


class GoogleStreamDecoder(StreamDecoder):
    """Decoder for Gemini streamGenerateContent (alt=sse) responses.

    Gemini sends whole functionCall parts, so calls are ready on arrival.
    """

    provider = "google"

    def __init__(self) -> None:
        super().__init__()
        self._next_index = 0

    def _handle_frame(self, frame: dict[str, Any]) -> Iterator[StreamEvent]:
        if frame.get("error"):
            error = frame["error"]
            if isinstance(error, dict):
                message = error.get("message", "unknown error")
            else:
                message = str(error)
            raise TransportError(f"Stream error: {message}", provider=self.provider)

        usage = frame.get("usageMetadata")
        if usage:
            self._prompt_tokens = usage.get("promptTokenCount", 0)
            self._completion_tokens = usage.get("candidatesTokenCount", 0)

        candidates = frame.get("candidates") or []
        if not candidates:
            return
        candidate = candidates[0]
        for part in (candidate.get("content") or {}).get("parts") or []:
            if part.get("text"):
                yield ContentDelta(text=part["text"])
            function_call = part.get("functionCall")
            if function_call:
                index = self._next_index
                self._next_index += 1
                call = ToolCallRequest(
                    id=function_call.get("id") or new_tool_call_id(),
                    name=function_call["name"],
                    arguments=parse_arguments(function_call.get("args"), function_call["name"]),
                )
                yield ToolCallDelta(
                    index=index,
                    call_id=call.id,
                    name=call.name,
                    arguments=json.dumps(call.arguments),
                )
                yield ToolCallReady(index=index, call=call)

        if candidate.get("finishReason"):
            self._finish_reason = candidate["finishReason"]
            self._ended = True


class OllamaStreamDecoder(StreamDecoder):
    """Decoder for Ollama /api/chat NDJSON chunks.

    Tool calls arrive whole inside message.tool_calls; the final chunk has
    done=true and carries the token counts.
    """

    provider = "ollama"

    def __init__(self) -> None:
        super().__init__()
        self._next_index = 0

    def _handle_frame(self, frame: dict[str, Any]) -> Iterator[StreamEvent]:
        if frame.get("error"):
            raise TransportError(f"Stream error: {frame['error']}", provider=self.provider)

        message = frame.get("message") or {}
        content = message.get("content")
        if content:
            yield ContentDelta(text=content)

        for tool_call in message.get("tool_calls") or []:
            function = tool_call.get("function") or {}
            index = self._next_index
            self._next_index += 1
            call = ToolCallRequest(
                id=tool_call.get("id") or new_tool_call_id(),
                name=function["name"],
                arguments=parse_arguments(function.get("arguments"), function["name"]),
            )
            yield ToolCallDelta(
                index=index,
                call_id=call.id,
                name=call.name,
                arguments=json.dumps(call.arguments),
            )
            yield ToolCallReady(index=index, call=call)

        if frame.get("done"):
            self._finish_reason = frame.get("done_reason") or "stop"
            self._ended = True
            if frame.get("prompt_eval_count") is not None:
                self._prompt_tokens = frame["prompt_eval_count"]
            if frame.get("eval_count") is not None:
                self._completion_tokens = frame["eval_count"]
            self._terminated = True
