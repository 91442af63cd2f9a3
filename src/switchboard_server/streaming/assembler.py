"""Folding of stream events back into an assistant Message."""

from switchboard_server.conversation import Message, ToolCallRequest, Usage
from switchboard_server.streaming.events import (
    ContentDelta,
    Done,
    StreamEvent,
    ToolCallReady,
)


class MessageAssembler:
    """Builds the final assistant Message from a decoded event stream.

    Example:
        >>> assembler = MessageAssembler(model="gpt-4o")
        >>> async for event in decoder.decode_lines(lines):
        ...     assembler.feed(event)
        >>> message = assembler.build()
    """

    def __init__(self, model: str | None = None) -> None:
        self.model = model
        self._parts: list[str] = []
        self._calls: dict[int, ToolCallRequest] = {}
        self.finish_reason: str | None = None
        self.usage: Usage | None = None
        self.done = False
        self.complete = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def feed(self, event: StreamEvent) -> str | None:
        """Apply one event.

        Returns:
            str | None: The text of a ContentDelta, None for other events
        """
        if isinstance(event, ContentDelta):
            self._parts.append(event.text)
            return event.text
        if isinstance(event, ToolCallReady):
            self._calls[event.index] = event.call
        elif isinstance(event, Done):
            self.finish_reason = event.finish_reason
            self.usage = event.usage
            self.done = True
            self.complete = event.complete
        return None

    def build(self) -> Message:
        return Message.assistant(
            self.text,
            tool_calls=[self._calls[index] for index in sorted(self._calls)],
            model=self.model,
            usage=self.usage,
            finish_reason=self.finish_reason,
        )
