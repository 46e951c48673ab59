"""CLI entrypoint for brain-chat."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Callable, Sequence
from importlib import metadata
import json
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from .assembler import ReasoningSplitter
from .builtin_tools import default_registry
from .chat import ChatSession
from .client import OllamaTransport, ensure_model_ready
from .config import CONFIG_PATH, Config, ensure_config_dir, load_config
from .exceptions import BrainChatError, FrameDecodeError
from .logging_utils import configure_logging
from .mcp_servers import McpToolHub, load_settings
from .orchestrator import ToolEvent


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="brain",
        description="Brain - terminal chat client for a local Ollama server",
    )
    parser.add_argument("--host", help="Inference host (env: BRAIN_LLM_HOST)")
    parser.add_argument("-p", "--port", type=int, help="Inference port (env: BRAIN_LLM_PORT)")
    parser.add_argument(
        "-t", "--tool-model", help="Model used for chat and tools (env: BRAIN_LLM_TOOL_MODEL)"
    )
    parser.add_argument(
        "-v",
        "--vision-model",
        help="Model used for title generation (env: BRAIN_LLM_VISION_MODEL)",
    )
    parser.add_argument("--config", type=Path, help=f"Config file (default: {CONFIG_PATH})")
    parser.add_argument("--mcp-settings", help="MCP server settings JSON file")
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    return parser


def _cli_overrides(args: argparse.Namespace) -> dict[str, dict[str, object]]:
    return {
        "ollama": {
            "host": args.host,
            "port": args.port,
            "tool_model": args.tool_model,
            "title_model": args.vision_model,
        },
        "mcp": {"settings_path": args.mcp_settings},
    }


def _tool_event_printer(console: Console) -> Callable[[ToolEvent], None]:
    def show(event: ToolEvent) -> None:
        if event.kind == "call":
            console.print("\n[bold]Tool call:[/bold]")
            console.print(f"  - Function: {escape(event.call.name)}")
            arguments = json.dumps(event.call.arguments, ensure_ascii=False, indent=2)
            console.print(f"  - Arguments: {escape(arguments)}")
        else:
            style = "red" if event.failed else "green"
            console.print(f"  - Result: [{style}]{escape(event.result)}[/{style}]")

    return show


def dump_history(console: Console, session: ChatSession) -> None:
    console.print("\nhistory:")
    for turn in session.get_history():
        console.print(f"{turn.role.value}:", markup=False)
        console.print(f"    {turn.content}", markup=False, highlight=False)


async def repl(config: Config, console: Console) -> None:
    """Read one line at a time and drive the chat session until exit."""
    registry = default_registry()

    def stream_text(text: str) -> None:
        console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def decode_failed(exc: FrameDecodeError) -> None:
        console.print(f"[yellow]{escape(str(exc))}[/yellow]")

    transport = OllamaTransport(config.ollama.base_url, timeout=config.ollama.timeout)
    try:
        async with McpToolHub(registry) as hub:
            settings_path = Path(config.mcp.settings_path).expanduser()
            try:
                await hub.connect_all(load_settings(settings_path))
            except BrainChatError as exc:
                console.print(f"[red]{escape(str(exc))}[/red]")
            for name, description in hub.describe_tools():
                console.print(f"name: {name}\ndescription: {description}\n", markup=False)
            registry.freeze()

            if config.ollama.pull_model_on_start:
                try:
                    await ensure_model_ready(
                        config.ollama.base_url, config.ollama.tool_model, pull_if_missing=True
                    )
                except BrainChatError as exc:
                    console.print(f"[red]Error: {escape(str(exc))}[/red]")

            session = ChatSession(
                transport,
                registry,
                tool_model=config.ollama.tool_model,
                title_model=config.ollama.title_model,
                splitter=ReasoningSplitter(
                    config.reasoning.start_tag, config.reasoning.end_tag
                ),
                system_prompt=config.chat.system_prompt,
                title_prompt=config.chat.title_prompt,
                title_fallback=config.reasoning.title_fallback,
                max_tool_iterations=config.chat.max_tool_iterations,
                output=stream_text,
                on_tool_event=_tool_event_printer(console),
                on_decode_error=decode_failed,
            )

            while True:
                console.print("user:")
                try:
                    line = await asyncio.to_thread(input)
                except EOFError:
                    break
                text = line.strip()

                if text == config.chat.exit_keyword:
                    break
                if not text:
                    session.clear()
                    console.print("History cleared.")
                    continue
                try:
                    if text == config.chat.title_keyword:
                        title = await session.summarize_title()
                        console.print(f"title: {title}", markup=False)
                    else:
                        await session.send(text)
                        console.print("\n")
                except BrainChatError as exc:
                    console.print(f"\n[red]Error: {escape(str(exc))}[/red]")
    finally:
        await transport.aclose()

    dump_history(console, session)


def main(argv: Sequence[str] | None = None) -> None:
    """Load configuration, handle CLI flags, and run the chat loop."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("brain-chat")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"brain {version}")
        return

    if args.config is None:
        ensure_config_dir()
    config = load_config(args.config, overrides=_cli_overrides(args))
    configure_logging(config.logging)
    console = Console()
    try:
        asyncio.run(repl(config, console))
    except KeyboardInterrupt:
        console.print("\nInterrupted.")


if __name__ == "__main__":
    main()
