"""Tool-call orchestration: stream, execute requested tools, continue."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Any, Literal, Protocol

from .assembler import ResponseAssembler
from .exceptions import (
    FrameDecodeError,
    ToolExecutionError,
    ToolLoopLimitError,
    ToolNotFoundError,
)
from .models import GenerationStats, ToolCallRequest, Turn
from .stream_reader import read_frames
from .tooling import ToolRegistry

LOGGER = logging.getLogger(__name__)


class ChatTransport(Protocol):
    def stream_chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> Any: ...


class OrchestratorState(str, Enum):
    STREAMING = "streaming"
    EXECUTING = "executing"
    CONTINUING = "continuing"
    DONE = "done"


@dataclass(frozen=True)
class ToolEvent:
    """Observer notification for a tool call and, later, its result."""

    kind: Literal["call", "result"]
    call: ToolCallRequest
    result: str = ""
    failed: bool = False


@dataclass
class OrchestrationResult:
    """Outcome of one orchestration cycle.

    ``turns`` holds the assistant tool-call turns and tool-result turns
    produced along the way, in order; ``final`` is the last assistant turn
    exactly as streamed.
    """

    final: Turn
    turns: list[Turn] = field(default_factory=list)
    iterations: int = 0
    stats: GenerationStats | None = None

    @property
    def visible_text(self) -> str:
        return self.final.content


class ToolCallOrchestrator:
    """Explicit state machine over {Streaming, Executing, Continuing, Done}.

    Each iteration streams one response with a fresh assembler; when that
    response requests tools they run sequentially in arrival order, the
    assistant turn and one tool turn per call are appended to the working
    context, and the request is re-issued with the full context.
    """

    def __init__(
        self,
        transport: ChatTransport,
        registry: ToolRegistry | None,
        *,
        model: str,
        on_text: Callable[[str], None] | None = None,
        on_tool_event: Callable[[ToolEvent], None] | None = None,
        on_decode_error: Callable[[FrameDecodeError], None] | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self.transport = transport
        self.registry = registry
        self.model = model
        self.on_text = on_text
        self.on_tool_event = on_tool_event
        self.on_decode_error = on_decode_error
        self.max_iterations = max_iterations
        self.state = OrchestratorState.DONE

    def _tools_payload(self) -> list[dict[str, Any]] | None:
        if self.registry is None or self.registry.is_empty:
            return None
        return self.registry.build_tools_list()

    async def stream_turn(
        self, messages: list[dict[str, Any]]
    ) -> tuple[Turn, ResponseAssembler]:
        """Stream one response and return the assembled assistant turn."""
        assembler = ResponseAssembler(on_text=self.on_text)
        async with self.transport.stream_chat(
            self.model, messages, self._tools_payload()
        ) as chunks:
            turn = await assembler.consume(read_frames(chunks, self.on_decode_error))
        return turn, assembler

    async def execute_call(self, call: ToolCallRequest) -> Turn:
        """Run one tool call; failures become the tool turn's content."""
        self._notify(ToolEvent(kind="call", call=call))
        LOGGER.info(
            "tool.call",
            extra={"event": "tool.call", "tool": call.name, "call_id": call.call_id},
        )
        failed = False
        if self.registry is None:
            result = f"Tool not found: {call.name}"
            failed = True
        else:
            try:
                result = await self.registry.execute(call.name, call.arguments)
            except ToolNotFoundError as exc:
                result = str(exc)
                failed = True
            except ToolExecutionError as exc:
                result = f"Tool execution failed: {exc}"
                failed = True
        if failed:
            LOGGER.warning(
                "tool.error",
                extra={"event": "tool.error", "tool": call.name, "error": result},
            )
        self._notify(ToolEvent(kind="result", call=call, result=result, failed=failed))
        return Turn.tool_result(call.name, result)

    def _notify(self, event: ToolEvent) -> None:
        if self.on_tool_event is not None:
            self.on_tool_event(event)

    async def run(self, messages: list[dict[str, Any]]) -> OrchestrationResult:
        """Drive the cycle until a response without tool calls arrives.

        ``messages`` is the wire context for the first request; it is
        copied, never mutated. Nothing produced here reaches the caller's
        history unless this method returns normally.
        """
        working = list(messages)
        produced: list[Turn] = []
        iterations = 0
        self.state = OrchestratorState.STREAMING
        try:
            while True:
                turn, assembler = await self.stream_turn(working)
                iterations += 1
                if not turn.has_tool_calls:
                    self.state = OrchestratorState.DONE
                    return OrchestrationResult(
                        final=turn,
                        turns=produced,
                        iterations=iterations,
                        stats=assembler.stats,
                    )

                if self.max_iterations is not None and iterations >= self.max_iterations:
                    raise ToolLoopLimitError(
                        f"Model kept requesting tools after {iterations} iterations."
                    )

                self.state = OrchestratorState.EXECUTING
                results = [await self.execute_call(call) for call in turn.tool_calls or ()]
                for new_turn in (turn, *results):
                    produced.append(new_turn)
                    working.append(new_turn.to_payload())

                self.state = OrchestratorState.CONTINUING
                LOGGER.info(
                    "chat.request.continue",
                    extra={
                        "event": "chat.request.continue",
                        "iteration": iterations,
                        "tool_calls": len(results),
                    },
                )
                self.state = OrchestratorState.STREAMING
        except BaseException:
            self.state = OrchestratorState.DONE
            raise
