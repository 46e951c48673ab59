"""Tests for conversation history storage and wire payloads."""

from __future__ import annotations

import unittest

from brain_chat.message_store import ConversationHistory
from brain_chat.models import ToolCallRequest, Turn


class ConversationHistoryTests(unittest.TestCase):
    def test_turns_keep_insertion_order(self) -> None:
        history = ConversationHistory()
        history.append(Turn.user("one"))
        history.extend([Turn.assistant("two"), Turn.user("three")])

        self.assertEqual([t.content for t in history], ["one", "two", "three"])
        self.assertEqual(len(history), 3)
        self.assertIsInstance(history.turns, tuple)

    def test_system_prompt_is_prepended_but_not_a_turn(self) -> None:
        history = ConversationHistory(system_prompt="  Be brief.  ")
        history.append(Turn.user("hi"))

        self.assertEqual(history.system_prompt, "Be brief.")
        self.assertEqual(len(history), 1)
        self.assertEqual(
            history.to_payload(),
            [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "hi"},
            ],
        )

    def test_clear_keeps_system_prompt(self) -> None:
        history = ConversationHistory(system_prompt="sys")
        history.append(Turn.user("hi"))
        history.clear()

        self.assertEqual(history.turns, ())
        self.assertEqual(history.to_payload(), [{"role": "system", "content": "sys"}])

    def test_extra_turns_are_not_stored(self) -> None:
        history = ConversationHistory()
        history.append(Turn.user("hi"))

        payload = history.to_payload(extra=[Turn.user("title please")])

        self.assertEqual(payload[-1], {"role": "user", "content": "title please"})
        self.assertEqual(len(history), 1)

    def test_tool_turns_serialize_with_calls_and_names(self) -> None:
        history = ConversationHistory()
        call = ToolCallRequest(name="calculator", arguments={"formula": "1+1"})
        history.append(Turn.assistant("", tool_calls=[call]))
        history.append(Turn.tool_result("calculator", "2"))

        payload = history.to_payload()

        self.assertEqual(payload[0]["tool_calls"][0]["function"]["name"], "calculator")
        self.assertEqual(payload[1], {"role": "tool", "content": "2", "tool_name": "calculator"})


if __name__ == "__main__":
    unittest.main()
