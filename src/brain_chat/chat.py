"""Chat session facade owning the history and driving one turn end to end."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
import logging
from typing import Literal

from .assembler import ReasoningSplitter
from .config import DEFAULT_TITLE_PROMPT
from .exceptions import BrainChatError, FrameDecodeError
from .message_store import ConversationHistory
from .models import GenerationStats, Role, Turn
from .orchestrator import ChatTransport, ToolCallOrchestrator, ToolEvent
from .tooling import ToolRegistry

LOGGER = logging.getLogger(__name__)


class ChatSession:
    """Stateful conversation against one inference backend.

    ``send`` commits the user turn, any tool-call/tool-result turns, and
    the reasoning-stripped answer together, and only on success: a failed
    or cancelled exchange leaves the history exactly as it was.
    """

    def __init__(
        self,
        transport: ChatTransport,
        registry: ToolRegistry | None = None,
        *,
        tool_model: str,
        title_model: str | None = None,
        splitter: ReasoningSplitter | None = None,
        system_prompt: str = "",
        title_prompt: str = DEFAULT_TITLE_PROMPT,
        title_fallback: Literal["raw", "none"] = "raw",
        max_tool_iterations: int | None = None,
        output: Callable[[str], None] | None = None,
        on_tool_event: Callable[[ToolEvent], None] | None = None,
        on_decode_error: Callable[[FrameDecodeError], None] | None = None,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.tool_model = tool_model
        self.title_model = title_model or tool_model
        self.splitter = splitter or ReasoningSplitter()
        self.title_prompt = title_prompt
        self.title_fallback = title_fallback
        self.max_tool_iterations = max_tool_iterations
        self.output = output
        self.on_tool_event = on_tool_event
        self.on_decode_error = on_decode_error
        self._history = ConversationHistory(system_prompt=system_prompt)
        self._lock = asyncio.Lock()
        self.last_stats: GenerationStats | None = None

    def _stored_turn(self, turn: Turn) -> Turn:
        if turn.role is not Role.ASSISTANT:
            return turn
        return replace(turn, content=self.splitter.strip(turn.content))

    def get_history(self) -> tuple[Turn, ...]:
        """Expose the ordered turns read-only."""
        return self._history.turns

    def clear(self) -> None:
        """Discard all history."""
        self._history.clear()
        LOGGER.info("chat.history.cleared", extra={"event": "chat.history.cleared"})

    async def send(self, prompt: str) -> str:
        """Run one user turn to completion and return the visible answer.

        The returned text (and the live output) is the unmodified model
        text; the stored assistant turn has its reasoning span removed.
        """
        async with self._lock:
            user_turn = Turn.user(prompt)
            orchestrator = ToolCallOrchestrator(
                self.transport,
                self.registry,
                model=self.tool_model,
                on_text=self.output,
                on_tool_event=self.on_tool_event,
                on_decode_error=self.on_decode_error,
                max_iterations=self.max_tool_iterations,
            )
            # The user turn only travels on the wire until the cycle succeeds.
            try:
                result = await orchestrator.run(
                    self._history.to_payload(extra=[user_turn])
                )
            except asyncio.CancelledError:
                LOGGER.info(
                    "chat.request.cancelled", extra={"event": "chat.request.cancelled"}
                )
                raise
            except BrainChatError as exc:
                LOGGER.warning(
                    "chat.request.failed",
                    extra={
                        "event": "chat.request.failed",
                        "error_type": exc.__class__.__name__,
                        "error": str(exc),
                    },
                )
                raise

            stored = Turn.assistant(self.splitter.strip(result.final.content))
            self._history.append(user_turn)
            self._history.extend(self._stored_turn(turn) for turn in result.turns)
            self._history.append(stored)
            self.last_stats = result.stats
            LOGGER.info(
                "chat.request.complete",
                extra={
                    "event": "chat.request.complete",
                    "iterations": result.iterations,
                    "turns": len(self._history),
                    "tokens_per_second": (
                        result.stats.tokens_per_second if result.stats else None
                    ),
                },
            )
            return result.visible_text

    async def summarize_title(self) -> str:
        """Ask the title model for a short conversation title.

        Runs against a copy of the history with the title instruction
        appended; the stored history is never modified. When the answer
        carries a reasoning segment, that segment is the title.
        """
        orchestrator = ToolCallOrchestrator(
            self.transport,
            None,
            model=self.title_model,
            on_decode_error=self.on_decode_error,
        )
        messages = self._history.to_payload(extra=[Turn.user(self.title_prompt)])
        turn, _ = await orchestrator.stream_turn(messages)
        reasoning = self.splitter.extract(turn.content)
        if reasoning is not None:
            return reasoning
        if self.title_fallback == "raw":
            return turn.content
        return ""
