"""Auxiliary MCP tool servers reachable over SSE or stdio.

Each configured server is connected once at startup and the tools it
offers are merged into the ``ToolRegistry``. Servers that are
misconfigured or unreachable are logged and skipped.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from dataclasses import dataclass, field
import json
import logging
from pathlib import Path
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client

from .exceptions import ConfigValidationError, McpServerError, ToolExecutionError
from .tooling import ToolDefinition, ToolRegistry

LOGGER = logging.getLogger(__name__)

SUPPORTED_KINDS = ("sse", "stdio")


@dataclass(frozen=True)
class McpServerSetting:
    name: str
    connection_kind: str
    url: str | None = None
    command: str | None = None
    args: list[str] = field(default_factory=list)


def parse_settings(data: Any) -> list[McpServerSetting]:
    """Turn a ``{name: {type, url?, command?, args?}}`` mapping into settings."""
    if not isinstance(data, dict):
        raise ConfigValidationError("MCP settings must be a JSON object of servers.")
    settings: list[McpServerSetting] = []
    for name, entry in data.items():
        if not isinstance(entry, dict):
            LOGGER.warning(
                "mcp.setting.invalid",
                extra={"event": "mcp.setting.invalid", "server": name},
            )
            continue
        url = entry.get("url")
        command = entry.get("command")
        args = entry.get("args")
        settings.append(
            McpServerSetting(
                name=str(name),
                connection_kind=str(entry.get("type") or "").strip().lower(),
                url=f"{str(url).rstrip('/')}/sse" if isinstance(url, str) and url else None,
                command=command if isinstance(command, str) and command else None,
                args=[str(a) for a in args if isinstance(a, str)]
                if isinstance(args, list)
                else [],
            )
        )
    return settings


def load_settings(path: Path) -> list[McpServerSetting]:
    """Read server settings from a JSON file; a missing file means none."""
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigValidationError(f"Unable to parse MCP settings {path}: {exc}") from exc
    return parse_settings(data)


def _result_text(result: Any) -> str:
    parts: list[str] = []
    for item in getattr(result, "content", None) or []:
        text = getattr(item, "text", None)
        if isinstance(text, str):
            parts.append(text)
        else:
            parts.append(f"[{getattr(item, 'type', 'content')}]")
    return "\n".join(parts)


class McpToolHub:
    """Owns the MCP client sessions for the lifetime of the process.

    Use as an async context manager; sessions are closed on exit.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry
        self._stack = AsyncExitStack()
        self.sessions: dict[str, ClientSession] = {}
        self.tools: list[tuple[str, str]] = []

    async def __aenter__(self) -> McpToolHub:
        await self._stack.__aenter__()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self._stack.__aexit__(*exc_info)

    @staticmethod
    def _transport(setting: McpServerSetting) -> Any:
        if setting.connection_kind == "sse":
            if not setting.url:
                raise McpServerError(f"No SSE url configured for {setting.name}.")
            return sse_client(setting.url)
        if setting.connection_kind == "stdio":
            if not setting.command:
                raise McpServerError(f"No stdio command configured for {setting.name}.")
            return stdio_client(
                StdioServerParameters(command=setting.command, args=setting.args)
            )
        raise McpServerError(
            f"Unsupported connection kind {setting.connection_kind!r} for {setting.name}."
        )

    async def _open(self, setting: McpServerSetting) -> ClientSession:
        transport = self._transport(setting)
        # A server that fails half-way must not leave contexts on the hub stack.
        server_stack = AsyncExitStack()
        try:
            streams = await server_stack.enter_async_context(transport)
            session = await server_stack.enter_async_context(
                ClientSession(streams[0], streams[1])
            )
            await session.initialize()
        except BaseException:
            await server_stack.aclose()
            raise
        self._stack.push_async_callback(server_stack.aclose)
        return session

    def _make_executor(self, session: ClientSession, tool_name: str):
        async def executor(arguments: dict[str, Any]) -> str:
            result = await session.call_tool(tool_name, arguments)
            text = _result_text(result)
            if getattr(result, "isError", False):
                raise ToolExecutionError(text or f"Tool {tool_name!r} reported an error.")
            return text

        return executor

    async def connect(self, setting: McpServerSetting) -> int:
        """Connect one server and register its tools; return how many."""
        session = await self._open(setting)
        listing = await session.list_tools()
        self.sessions[setting.name] = session
        added = 0
        for tool in listing.tools:
            definition = ToolDefinition(
                name=tool.name,
                description=tool.description or tool.name,
                parameters=dict(tool.inputSchema or {"type": "object", "properties": {}}),
                executor=self._make_executor(session, tool.name),
            )
            try:
                self.registry.register(definition)
            except ValueError:
                LOGGER.warning(
                    "mcp.tool.duplicate",
                    extra={
                        "event": "mcp.tool.duplicate",
                        "server": setting.name,
                        "tool": tool.name,
                    },
                )
                continue
            self.tools.append((definition.name, definition.description))
            added += 1
        return added

    async def connect_all(self, settings: list[McpServerSetting]) -> None:
        for setting in settings:
            try:
                added = await self.connect(setting)
            except Exception as exc:  # noqa: BLE001 - transports fail in many ways.
                LOGGER.warning(
                    "mcp.server.skipped",
                    extra={
                        "event": "mcp.server.skipped",
                        "server": setting.name,
                        "reason": f"{exc.__class__.__name__}: {exc}",
                    },
                )
                continue
            LOGGER.info(
                "mcp.server.connected",
                extra={
                    "event": "mcp.server.connected",
                    "server": setting.name,
                    "tools": added,
                },
            )

    def describe_tools(self) -> list[tuple[str, str]]:
        return list(self.tools)
