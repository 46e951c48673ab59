"""Assemble streamed frames into a turn and split off reasoning segments."""

from __future__ import annotations

from collections.abc import AsyncIterable, Callable
import logging
import re

from .exceptions import BackendError
from .models import GenerationStats, StreamFrame, ToolCallRequest, Turn

LOGGER = logging.getLogger(__name__)

DEFAULT_START_TAG = "<think>"
DEFAULT_END_TAG = "</think>"


class ReasoningSplitter:
    """Locate a leading reasoning span delimited by a start/end marker pair.

    ``strip`` removes the whole span (markers included) and trims the
    remainder; ``extract`` returns only the text between the markers. A
    span whose end marker is missing counts as no match for both.
    """

    def __init__(
        self, start_tag: str = DEFAULT_START_TAG, end_tag: str = DEFAULT_END_TAG
    ) -> None:
        if not start_tag or not end_tag:
            raise ValueError("Reasoning markers must be non-empty strings.")
        self.start_tag = start_tag
        self.end_tag = end_tag
        self._pattern = re.compile(
            rf"{re.escape(start_tag)}\s*(.*?)\s*{re.escape(end_tag)}", re.DOTALL
        )

    def strip(self, text: str) -> str:
        match = self._pattern.search(text)
        if match is None:
            return text
        return (text[: match.start()] + text[match.end() :]).strip()

    def extract(self, text: str) -> str | None:
        match = self._pattern.search(text)
        if match is None:
            return None
        return match.group(1)


class ResponseAssembler:
    """Per-request accumulator folding frames into one assistant turn.

    Created for a single stream and discarded afterwards; nothing it
    holds is shared between exchanges.
    """

    def __init__(self, on_text: Callable[[str], None] | None = None) -> None:
        self._on_text = on_text
        self._parts: list[str] = []
        self._tool_calls: list[ToolCallRequest] = []
        self._error: str | None = None
        self.done = False
        self.stats: GenerationStats | None = None

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        return list(self._tool_calls)

    def feed(self, frame: StreamFrame) -> None:
        if frame.error:
            self._error = frame.error
        content = frame.content
        if content:
            self._parts.append(content)
            if self._on_text is not None:
                self._on_text(content)
        for payload in frame.raw_tool_calls:
            call = ToolCallRequest.from_payload(payload)
            if call is None:
                LOGGER.warning(
                    "assembler.tool_call.ignored",
                    extra={"event": "assembler.tool_call.ignored", "payload": payload},
                )
                continue
            self._tool_calls.append(call)
        if frame.done:
            self.done = True
            self.stats = GenerationStats(
                model=frame.model,
                done_reason=frame.done_reason,
                counters=frame.stats(),
            )

    def build_turn(self) -> Turn:
        """Return the assembled assistant turn.

        Raises ``BackendError`` when any frame reported a backend failure.
        """
        if self._error is not None:
            raise BackendError(self._error)
        return Turn.assistant(self.text, self._tool_calls or None)

    async def consume(self, frames: AsyncIterable[StreamFrame]) -> Turn:
        async for frame in frames:
            self.feed(frame)
        return self.build_turn()
