"""Accumulation of streamed tool call fragments."""

import logging
from dataclasses import dataclass, field

from switchboard_server.conversation import (
    ToolCallRequest,
    new_tool_call_id,
    parse_arguments,
)

logger = logging.getLogger(__name__)


@dataclass
class _PartialCall:
    call_id: str | None = None
    name: str | None = None
    argument_chunks: list[str] = field(default_factory=list)


class ToolCallAccumulator:
    """Collects tool call fragments by index until each call is complete.

    Fragments of different indices may interleave, and the id or name of a
    call may arrive in any fragment. Argument text is concatenated in arrival
    order and only parsed when the call is completed.
    """

    def __init__(self) -> None:
        self._partials: dict[int, _PartialCall] = {}

    @property
    def pending(self) -> list[int]:
        return sorted(self._partials)

    def __contains__(self, index: object) -> bool:
        return index in self._partials

    def add(
        self,
        index: int,
        call_id: str | None = None,
        name: str | None = None,
        arguments: str | None = None,
    ) -> None:
        partial = self._partials.setdefault(index, _PartialCall())
        if call_id:
            partial.call_id = call_id
        if name:
            partial.name = name
        if arguments:
            partial.argument_chunks.append(arguments)

    def complete(self, index: int) -> ToolCallRequest | None:
        """Finish the call at index and remove it from the pending set.

        Returns:
            ToolCallRequest | None: The call, or None if the index is unknown or
            the call never received a name
        """
        partial = self._partials.pop(index, None)
        if partial is None:
            return None
        if not partial.name:
            logger.warning(f"Dropping tool call at index {index} without a name")
            return None
        return ToolCallRequest(
            id=partial.call_id or new_tool_call_id(),
            name=partial.name,
            arguments=parse_arguments("".join(partial.argument_chunks), partial.name),
        )

    def complete_all(self) -> list[tuple[int, ToolCallRequest]]:
        """Finish every pending call, in index order."""
        completed = []
        for index in self.pending:
            call = self.complete(index)
            if call is not None:
                completed.append((index, call))
        return completed

    def discard_all(self) -> list[int]:
        """Drop every pending call without completing it.

        Returns:
            list[int]: The indices that were dropped
        """
        dropped = self.pending
        self._partials.clear()
        return dropped
