"""Tool registry consulted by the orchestrator to dispatch model tool calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
import inspect
from inspect import Parameter, signature
import logging
from typing import Any

from .exceptions import ToolExecutionError, ToolNotFoundError

LOGGER = logging.getLogger(__name__)

Executor = Callable[[dict[str, Any]], Awaitable[str] | str]


def _truncate_output(text: str, max_bytes: int) -> str:
    """Apply deterministic truncation by byte limit."""
    if max_bytes <= 0:
        return text
    encoded = text.encode("utf-8", errors="ignore")
    if len(encoded) <= max_bytes:
        return text
    clipped = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return clipped + "\n... [truncated by byte limit]"


@dataclass(frozen=True)
class ToolDefinition:
    """JSON-schema function tool definition bound to its executor."""

    name: str
    description: str
    parameters: dict[str, Any]
    executor: Executor

    def as_ollama_tool(self) -> dict[str, Any]:
        """Render the tool in Ollama's function schema format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def _annotation_type(annotation: Any) -> str:
    if annotation is Parameter.empty:
        return "string"
    ann_str = str(annotation).lower()
    if "bool" in ann_str:
        return "boolean"
    if "int" in ann_str:
        return "integer"
    if "float" in ann_str or "number" in ann_str:
        return "number"
    if "list" in ann_str or "sequence" in ann_str:
        return "array"
    if "dict" in ann_str or "mapping" in ann_str:
        return "object"
    return "string"


def schema_from_signature(fn: Callable[..., Any]) -> dict[str, Any]:
    """Derive an object parameter schema from a function signature."""
    params: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
    for param_name, param in signature(fn).parameters.items():
        if param_name in ("self", "cls"):
            continue
        params["properties"][param_name] = {
            "type": _annotation_type(param.annotation),
            "description": param_name,
        }
        if param.default is Parameter.empty:
            params["required"].append(param_name)
    return params


class ToolRegistry:
    """Name-keyed table of tools advertised to and executed for the model.

    Built once at startup; ``freeze()`` makes it read-only.
    """

    def __init__(self, max_output_bytes: int = 50_000) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._frozen = False
        self.max_output_bytes = max_output_bytes

    def register(self, definition: ToolDefinition) -> None:
        if self._frozen:
            raise RuntimeError("Tool registry is frozen.")
        if definition.name in self._tools:
            raise ValueError(f"Tool {definition.name!r} is already registered.")
        self._tools[definition.name] = definition
        LOGGER.debug(
            "tools.registered",
            extra={"event": "tools.registered", "tool": definition.name},
        )

    def register_function(
        self,
        fn: Callable[..., Any],
        *,
        name: str | None = None,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> ToolDefinition:
        """Register a plain (sync or async) function called with keyword args.

        The function name, docstring, and signature supply whatever is not
        given explicitly.
        """
        tool_name = name or fn.__name__
        schema = parameters if parameters is not None else schema_from_signature(fn)

        async def executor(arguments: dict[str, Any]) -> str:
            if inspect.iscoroutinefunction(fn):
                return str(await fn(**arguments))
            return str(await asyncio.to_thread(fn, **arguments))

        definition = ToolDefinition(
            name=tool_name,
            description=(description or inspect.getdoc(fn) or tool_name).strip(),
            parameters=schema,
            executor=executor,
        )
        self.register(definition)
        return definition

    def freeze(self) -> None:
        self._frozen = True

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDefinition]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def is_empty(self) -> bool:
        """Return True when no tools are registered."""
        return not self._tools

    def build_tools_list(self) -> list[dict[str, Any]]:
        """Return Ollama-formatted tool schemas in registration order."""
        return [definition.as_ollama_tool() for definition in self._tools.values()]

    def _validate_value(self, name: str, value: Any, schema: dict[str, Any]) -> None:
        expected = schema.get("type")
        checks: dict[str, Callable[[Any], bool]] = {
            "string": lambda v: isinstance(v, str),
            "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
            "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
            "boolean": lambda v: isinstance(v, bool),
            "object": lambda v: isinstance(v, dict),
            "array": lambda v: isinstance(v, list),
        }
        check = checks.get(expected) if isinstance(expected, str) else None
        if check is not None and not check(value):
            raise ToolExecutionError(f"Argument {name!r} must be of type {expected}.")
        item_schema = schema.get("items")
        if expected == "array" and isinstance(item_schema, dict):
            for idx, item in enumerate(value):
                self._validate_value(f"{name}[{idx}]", item, item_schema)

    def validate_arguments(
        self, definition: ToolDefinition, arguments: dict[str, Any]
    ) -> dict[str, Any]:
        """Validate arguments against a constrained JSON schema subset."""
        if not isinstance(arguments, dict):
            raise ToolExecutionError("Tool arguments must be a JSON object.")
        schema = definition.parameters
        if schema.get("type", "object") != "object":
            return arguments
        properties = schema.get("properties") or {}
        required = schema.get("required") or []
        missing = [name for name in required if name not in arguments]
        if missing:
            raise ToolExecutionError(
                f"Missing required argument(s): {', '.join(missing)}"
            )
        if schema.get("additionalProperties") is False:
            unknown = [name for name in arguments if name not in properties]
            if unknown:
                raise ToolExecutionError(f"Unknown argument: {unknown[0]!r}")
        for arg_name, arg_value in arguments.items():
            prop_schema = properties.get(arg_name)
            if isinstance(prop_schema, dict):
                self._validate_value(arg_name, arg_value, prop_schema)
        return arguments

    async def execute(self, name: str, arguments: dict[str, Any]) -> str:
        """Execute a named tool and return its string result.

        Raises ``ToolNotFoundError`` for unknown names and
        ``ToolExecutionError`` for invalid arguments or executor failures.
        """
        definition = self._tools.get(name)
        if definition is None:
            raise ToolNotFoundError(name)

        validated = self.validate_arguments(definition, arguments)
        try:
            result = definition.executor(validated)
            if inspect.isawaitable(result):
                result = await result
        except ToolExecutionError:
            raise
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - tool functions can fail arbitrarily.
            raise ToolExecutionError(f"Tool {name!r} raised an error: {exc}") from exc
        return _truncate_output(str(result), self.max_output_bytes)
