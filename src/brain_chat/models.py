"""Conversation turns, tool-call requests, and decoded stream frames."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    SYSTEM = "system"


def _coerce_arguments(value: Any) -> dict[str, Any]:
    # Some backends send arguments as a JSON-encoded string.
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.strip() else {}
        except json.JSONDecodeError:
            return {}
    return dict(value) if isinstance(value, dict) else {}


@dataclass(frozen=True)
class ToolCallRequest:
    """A model-issued request to invoke a named tool."""

    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str | None = None
    index: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> ToolCallRequest | None:
        """Build a request from a wire dict; return None when it has no name.

        Accepts the nested ``{"function": {"name", "arguments"}}`` shape as
        well as a flat ``{"name", "arguments"}`` object.
        """
        if not isinstance(payload, dict):
            return None
        fn = payload.get("function")
        source = fn if isinstance(fn, dict) else payload
        name = str(source.get("name") or "").strip()
        if not name:
            return None
        raw_index = source.get("index", payload.get("index"))
        try:
            index = int(raw_index) if raw_index is not None else None
        except (TypeError, ValueError):
            index = None
        call_id = payload.get("id")
        return cls(
            name=name,
            arguments=_coerce_arguments(source.get("arguments")),
            call_id=str(call_id) if call_id else None,
            index=index,
        )

    def to_payload(self) -> dict[str, Any]:
        function: dict[str, Any] = {"name": self.name, "arguments": self.arguments}
        if self.index is not None:
            function["index"] = self.index
        payload: dict[str, Any] = {"type": "function", "function": function}
        if self.call_id:
            payload["id"] = self.call_id
        return payload


@dataclass(frozen=True)
class Turn:
    """One message in the conversation.

    ``tool_calls`` is only meaningful on assistant turns; ``tool_name``
    only on tool turns, whose ``content`` is the serialized result of
    exactly one prior call.
    """

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] | None = None
    tool_name: str | None = None

    @classmethod
    def user(cls, content: str) -> Turn:
        return cls(Role.USER, content)

    @classmethod
    def system(cls, content: str) -> Turn:
        return cls(Role.SYSTEM, content)

    @classmethod
    def assistant(
        cls, content: str, tool_calls: list[ToolCallRequest] | None = None
    ) -> Turn:
        return cls(Role.ASSISTANT, content, tuple(tool_calls) if tool_calls else None)

    @classmethod
    def tool_result(cls, tool_name: str, content: str) -> Turn:
        return cls(Role.TOOL, content, tool_name=tool_name)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_payload(self) -> dict[str, Any]:
        """Return the dict replayed to the backend for this turn."""
        payload: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = [call.to_payload() for call in self.tool_calls]
        if self.tool_name:
            payload["tool_name"] = self.tool_name
        return payload


class FrameMessage(BaseModel):
    """Partial message carried by one stream frame."""

    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: str = ""
    thinking: str | None = None
    tool_calls: list[dict[str, Any]] | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _none_content_is_empty(cls, value: Any) -> Any:
        return "" if value is None else value


class StreamFrame(BaseModel):
    """One decoded NDJSON line of a streaming chat response.

    Both the tool-enabled and the plain response shapes decode into this
    model; every field the two do not share is optional. Performance
    counters are only populated on the terminal (``done``) frame.
    """

    model_config = ConfigDict(extra="ignore")

    model: str
    created_at: str
    message: FrameMessage | None
    done: bool
    done_reason: str | None = None
    error: str | None = None

    total_duration: int | None = None
    load_duration: int | None = None
    prompt_eval_count: int | None = None
    prompt_eval_duration: int | None = None
    eval_count: int | None = None
    eval_duration: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_error_frames(cls, data: Any) -> Any:
        # An error report is well-formed even without the usual envelope.
        if isinstance(data, dict) and data.get("error"):
            data = dict(data)
            data.setdefault("model", "")
            data.setdefault("created_at", "")
            data.setdefault("message", None)
            data.setdefault("done", True)
        return data

    @property
    def content(self) -> str:
        return self.message.content if self.message is not None else ""

    @property
    def raw_tool_calls(self) -> list[dict[str, Any]]:
        if self.message is None or not self.message.tool_calls:
            return []
        return list(self.message.tool_calls)

    def stats(self) -> dict[str, int]:
        """Return the performance counters present on this frame."""
        names = (
            "total_duration",
            "load_duration",
            "prompt_eval_count",
            "prompt_eval_duration",
            "eval_count",
            "eval_duration",
        )
        return {
            name: getattr(self, name) for name in names if getattr(self, name) is not None
        }


class GenerationStats(BaseModel):
    """Counters reported on the terminal frame of an exchange."""

    model: str = ""
    done_reason: str | None = None
    counters: dict[str, int] = Field(default_factory=dict)

    @property
    def tokens_per_second(self) -> float | None:
        count = self.counters.get("eval_count")
        duration = self.counters.get("eval_duration")
        if not count or not duration:
            return None
        return count / (duration / 1e9)
