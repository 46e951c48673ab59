"""Top-level package for brain-chat."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .assembler import ReasoningSplitter, ResponseAssembler
    from .chat import ChatSession
    from .config import Config, load_config
    from .exceptions import (
        BackendError,
        BrainChatError,
        ToolExecutionError,
        ToolNotFoundError,
        TransportError,
    )
    from .models import Role, StreamFrame, ToolCallRequest, Turn
    from .tooling import ToolDefinition, ToolRegistry

__all__ = [
    "BackendError",
    "BrainChatError",
    "ChatSession",
    "Config",
    "ReasoningSplitter",
    "ResponseAssembler",
    "Role",
    "StreamFrame",
    "ToolCallRequest",
    "ToolDefinition",
    "ToolExecutionError",
    "ToolNotFoundError",
    "ToolRegistry",
    "TransportError",
    "Turn",
    "load_config",
]

_LAZY_EXPORTS: dict[str, str] = {
    "ReasoningSplitter": ".assembler",
    "ResponseAssembler": ".assembler",
    "ChatSession": ".chat",
    "Config": ".config",
    "load_config": ".config",
    "BackendError": ".exceptions",
    "BrainChatError": ".exceptions",
    "ToolExecutionError": ".exceptions",
    "ToolNotFoundError": ".exceptions",
    "TransportError": ".exceptions",
    "Role": ".models",
    "StreamFrame": ".models",
    "ToolCallRequest": ".models",
    "Turn": ".models",
    "ToolDefinition": ".tooling",
    "ToolRegistry": ".tooling",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so ``import brain_chat`` stays cheap."""
    module_name = _LAZY_EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module_name, __name__), name)
