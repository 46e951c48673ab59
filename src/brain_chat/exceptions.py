"""Domain exception hierarchy for the brain-chat client."""

from __future__ import annotations


class BrainChatError(RuntimeError):
    """Base class for all domain-level chat errors."""


class TransportError(BrainChatError):
    """Raised when a chat exchange fails at the connection or HTTP level."""


class BackendConnectionError(TransportError):
    """Raised when the inference host cannot be reached."""


class BackendHTTPError(TransportError):
    """Raised when the inference host answers with a non-success status."""

    def __init__(self, status_code: int, detail: str = "") -> None:
        self.status_code = status_code
        self.detail = detail
        message = f"HTTP error: {status_code}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class BackendError(BrainChatError):
    """Raised when a well-formed stream frame reports a backend failure."""


class FrameDecodeError(BrainChatError):
    """A single stream line could not be decoded as a protocol frame.

    Never raised out of the stream reader; instances are handed to the
    diagnostic callback so the stream can continue.
    """

    def __init__(self, line: str, reason: str) -> None:
        self.line = line
        self.reason = reason
        super().__init__(f"Failed to parse response: {reason} - Line: {line}")


class ToolError(BrainChatError):
    """Base class for failures that become tool-result content."""


class ToolNotFoundError(ToolError):
    """Raised when the model requests a tool that is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Tool not found: {name}")


class ToolExecutionError(ToolError):
    """Raised when a tool rejects its arguments or fails internally."""


class ToolLoopLimitError(BrainChatError):
    """Raised when a configured tool-iteration cap is exceeded."""


class ModelNotFoundError(BrainChatError):
    """Raised when the configured model is unavailable."""


class ConfigValidationError(BrainChatError):
    """Raised when configuration cannot be validated safely."""


class McpServerError(BrainChatError):
    """Raised when an auxiliary tool server cannot be set up."""
