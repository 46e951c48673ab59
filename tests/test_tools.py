"""Tests for the tool registry and the built-in tools."""

from __future__ import annotations

import asyncio
import unittest

from brain_chat.builtin_tools import (
    calculator,
    default_registry,
    evaluate_formula,
    get_datetime_now,
    get_weather,
)
from brain_chat.exceptions import ToolExecutionError, ToolNotFoundError
from brain_chat.tooling import ToolDefinition, ToolRegistry, schema_from_signature


class ToolRegistryTests(unittest.IsolatedAsyncioTestCase):
    async def test_register_function_derives_schema_and_executes(self) -> None:
        registry = ToolRegistry()

        def add(a: int, b: int = 2) -> int:
            """Add two integers."""
            return a + b

        definition = registry.register_function(add)

        self.assertEqual(definition.description, "Add two integers.")
        self.assertEqual(definition.parameters["required"], ["a"])
        self.assertEqual(definition.parameters["properties"]["a"]["type"], "integer")
        self.assertEqual(await registry.execute("add", {"a": 1, "b": 5}), "6")

    async def test_async_executor_is_awaited(self) -> None:
        registry = ToolRegistry()

        async def echo(arguments: dict) -> str:
            return f"echo:{arguments['text']}"

        registry.register(
            ToolDefinition(
                name="echo",
                description="Echo text",
                parameters={
                    "type": "object",
                    "properties": {"text": {"type": "string"}},
                    "required": ["text"],
                },
                executor=echo,
            )
        )
        self.assertEqual(await registry.execute("echo", {"text": "hi"}), "echo:hi")

    async def test_unknown_tool_raises_not_found(self) -> None:
        registry = ToolRegistry()
        with self.assertRaises(ToolNotFoundError) as ctx:
            await registry.execute("nope", {})
        self.assertIn("nope", str(ctx.exception))

    async def test_missing_required_argument(self) -> None:
        registry = default_registry()
        with self.assertRaises(ToolExecutionError):
            await registry.execute("calculator", {})

    async def test_wrong_argument_type(self) -> None:
        registry = default_registry()
        with self.assertRaises(ToolExecutionError):
            await registry.execute("calculator", {"formula": 12})

    async def test_oversized_power_fails_instead_of_hanging(self) -> None:
        registry = default_registry()
        with self.assertRaises(ToolExecutionError):
            await asyncio.wait_for(
                registry.execute("calculator", {"formula": "(9^9999)^9999"}), 5
            )

    async def test_executor_failure_is_wrapped(self) -> None:
        registry = ToolRegistry()

        def boom() -> str:
            raise RuntimeError("kaput")

        registry.register_function(boom)
        with self.assertRaises(ToolExecutionError) as ctx:
            await registry.execute("boom", {})
        self.assertIn("kaput", str(ctx.exception))

    async def test_output_is_truncated_by_byte_limit(self) -> None:
        registry = ToolRegistry(max_output_bytes=10)
        registry.register_function(lambda: "x" * 50, name="long")
        result = await registry.execute("long", {})
        self.assertTrue(result.startswith("x" * 10))
        self.assertIn("truncated", result)

    def test_duplicate_registration_rejected(self) -> None:
        registry = default_registry()
        with self.assertRaises(ValueError):
            registry.register_function(get_weather)

    def test_frozen_registry_rejects_new_tools(self) -> None:
        registry = ToolRegistry()
        registry.freeze()
        with self.assertRaises(RuntimeError):
            registry.register_function(get_weather)

    def test_build_tools_list_uses_ollama_function_format(self) -> None:
        tools = default_registry().build_tools_list()
        names = [tool["function"]["name"] for tool in tools]
        self.assertEqual(names, ["get_datetime_now", "calculator", "get_weather", "calculate"])
        self.assertTrue(all(tool["type"] == "function" for tool in tools))

    def test_schema_from_signature_defaults_to_string(self) -> None:
        def fn(query, limit: int = 5):  # noqa: ANN001
            return query

        schema = schema_from_signature(fn)
        self.assertEqual(schema["properties"]["query"]["type"], "string")
        self.assertEqual(schema["required"], ["query"])


class BuiltinToolTests(unittest.TestCase):
    def test_calculator_example_formula(self) -> None:
        self.assertAlmostEqual(
            evaluate_formula("1+sum(2,3)*abs(4-5)/6^2"), 1 + 5 * 1 / 36
        )

    def test_calculator_formats_integers(self) -> None:
        self.assertEqual(calculator("2*(3+4)"), "14")
        self.assertEqual(calculator("7/2"), "3.5")

    def test_calculator_rejects_names_and_calls(self) -> None:
        for formula in ("__import__('os')", "x + 1", "open('f')", ""):
            with self.subTest(formula=formula):
                with self.assertRaises(ToolExecutionError):
                    evaluate_formula(formula)

    def test_calculator_division_by_zero(self) -> None:
        with self.assertRaises(ToolExecutionError):
            evaluate_formula("1/0")

    def test_calculator_overflow_fails_fast(self) -> None:
        for formula in ("(9^9999)^9999", "9^9999", "10**400 * 1"):
            with self.subTest(formula=formula):
                with self.assertRaises(ToolExecutionError):
                    evaluate_formula(formula)

    def test_calculator_rejects_complex_results(self) -> None:
        with self.assertRaises(ToolExecutionError):
            evaluate_formula("(-8)^0.5")

    def test_weather_and_time(self) -> None:
        self.assertEqual(get_weather("Tokyo"), "Weather in Tokyo: Sunny, 22°C")
        self.assertTrue(get_datetime_now().startswith("Current time: "))


if __name__ == "__main__":
    unittest.main()
