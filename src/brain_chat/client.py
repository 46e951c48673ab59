"""HTTP transport for the Ollama chat endpoint and model readiness checks."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import json
import logging
from typing import Any

import httpx
from ollama import AsyncClient as _OllamaAsyncClient

from .exceptions import (
    BackendConnectionError,
    BackendHTTPError,
    ModelNotFoundError,
    TransportError,
)

LOGGER = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"


def build_chat_request(
    model: str,
    messages: list[dict[str, Any]],
    tools: list[dict[str, Any]] | None = None,
    stream: bool = True,
) -> dict[str, Any]:
    """Build the JSON body for a chat request."""
    body: dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
    if tools:
        body["tools"] = tools
    return body


def _error_detail(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="ignore").strip()
    if not text:
        return ""
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text[:200]
    if isinstance(payload, dict):
        detail = payload.get("error") or payload.get("message")
        if detail:
            return str(detail)
    return text[:200]


class OllamaTransport:
    """Issues streaming chat requests and exposes the raw response bytes."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=min(timeout, 30.0))
        )

    @asynccontextmanager
    async def stream_chat(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open a chat stream and yield an iterator over its body chunks.

        The response is closed when the context exits, which is how a
        reader that stopped early abandons the rest of the body.
        """
        body = build_chat_request(model, messages, tools)
        url = f"{self.base_url}{CHAT_PATH}"
        LOGGER.info(
            "chat.request.start",
            extra={
                "event": "chat.request.start",
                "model": model,
                "messages": len(messages),
                "tools": len(tools or []),
            },
        )
        try:
            async with self._client.stream("POST", url, json=body) as response:
                if response.status_code >= 400:
                    detail = _error_detail(await response.aread())
                    raise BackendHTTPError(response.status_code, detail)
                yield response.aiter_bytes()
        except TransportError:
            raise
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            raise BackendConnectionError(
                f"Unable to connect to Ollama host {self.base_url}."
            ) from exc
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request to {url} timed out.") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _model_name_matches(requested_model: str, available_model: str) -> bool:
    requested = requested_model.strip().lower()
    available = available_model.strip().lower()
    if requested == available:
        return True
    if ":" not in requested and available.startswith(f"{requested}:"):
        return True
    return False


def _listed_model_names(response: Any) -> list[str]:
    models: Any = getattr(response, "models", None)
    if models is None and isinstance(response, dict):
        models = response.get("models")
    names: list[str] = []
    for model in models or []:
        for key in ("model", "name"):
            value = model.get(key) if isinstance(model, dict) else getattr(model, key, None)
            if isinstance(value, str) and value.strip():
                names.append(value.strip())
                break
    return names


async def ensure_model_ready(
    host: str,
    model: str,
    pull_if_missing: bool = False,
    client: Any | None = None,
) -> bool:
    """Ensure ``model`` is available on ``host``; optionally pull it."""
    sdk = client or _OllamaAsyncClient(host=host)
    try:
        available = _listed_model_names(await sdk.list())
    except Exception as exc:  # noqa: BLE001 - SDK raises transport-specific errors.
        raise BackendConnectionError(f"Unable to list models on {host}: {exc}") from exc

    if any(_model_name_matches(model, name) for name in available):
        LOGGER.info("chat.model.ready", extra={"event": "chat.model.ready", "model": model})
        return True

    if not pull_if_missing:
        raise ModelNotFoundError(f"Configured model {model!r} is not available.")

    LOGGER.info(
        "chat.model.pull.start", extra={"event": "chat.model.pull.start", "model": model}
    )
    try:
        await sdk.pull(model=model, stream=False)
    except Exception as exc:  # noqa: BLE001
        raise ModelNotFoundError(f"Unable to pull model {model!r}: {exc}") from exc
    LOGGER.info(
        "chat.model.pull.complete",
        extra={"event": "chat.model.pull.complete", "model": model},
    )
    return True
