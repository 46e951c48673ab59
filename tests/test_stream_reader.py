"""Tests for NDJSON line splitting and frame decoding."""

from __future__ import annotations

from collections.abc import AsyncGenerator
import json
import unittest

from brain_chat.exceptions import FrameDecodeError
from brain_chat.stream_reader import decode_frame, read_frames, split_lines


def _frame_line(content: str = "", done: bool = False, **extra: object) -> bytes:
    payload: dict[str, object] = {
        "model": "qwq:32b",
        "created_at": "2025-01-01T00:00:00Z",
        "message": {"role": "assistant", "content": content},
        "done": done,
    }
    payload.update(extra)
    return (json.dumps(payload) + "\n").encode("utf-8")


class _RecordingSource:
    """Async byte source that records how many chunks were pulled."""

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.pulled = 0

    async def __aiter__(self) -> AsyncGenerator[bytes, None]:
        for chunk in self.chunks:
            self.pulled += 1
            yield chunk


async def _collect(source: _RecordingSource, errors: list[FrameDecodeError] | None = None):
    return [
        frame
        async for frame in read_frames(
            source, errors.append if errors is not None else None
        )
    ]


class SplitLinesTests(unittest.IsolatedAsyncioTestCase):
    async def test_line_split_across_chunks_is_reassembled(self) -> None:
        source = _RecordingSource([b'{"a":', b" 1}\n{", b'"b": 2}\n'])
        lines = [line async for line in split_lines(source)]
        self.assertEqual(lines, ['{"a": 1}', '{"b": 2}'])

    async def test_blank_lines_are_discarded(self) -> None:
        source = _RecordingSource([b"\n\n  \nabc\r\n\n"])
        lines = [line async for line in split_lines(source)]
        self.assertEqual(lines, ["abc"])

    async def test_trailing_line_without_newline_is_yielded(self) -> None:
        source = _RecordingSource([b"first\nsecond"])
        lines = [line async for line in split_lines(source)]
        self.assertEqual(lines, ["first", "second"])

    async def test_multibyte_character_split_between_chunks(self) -> None:
        encoded = "こんにちは\n".encode("utf-8")
        source = _RecordingSource([encoded[:4], encoded[4:]])
        lines = [line async for line in split_lines(source)]
        self.assertEqual(lines, ["こんにちは"])


class ReadFramesTests(unittest.IsolatedAsyncioTestCase):
    async def test_split_frame_decodes_same_as_whole_frame(self) -> None:
        line = _frame_line("Hello")
        whole = await _collect(_RecordingSource([line]))
        split = await _collect(_RecordingSource([line[:17], line[17:]]))
        self.assertEqual(len(whole), 1)
        self.assertEqual(whole, split)
        self.assertEqual(split[0].content, "Hello")

    async def test_decode_failure_is_reported_and_stream_continues(self) -> None:
        errors: list[FrameDecodeError] = []
        source = _RecordingSource(
            [
                _frame_line("A"),
                b"this is not json\n",
                b'{"status": "loading model"}\n',
                _frame_line("B", done=True),
            ]
        )
        frames = await _collect(source, errors)
        self.assertEqual([f.content for f in frames], ["A", "B"])
        self.assertEqual(len(errors), 2)
        self.assertEqual(errors[0].line, "this is not json")
        self.assertIn("status", errors[1].line)

    async def test_stops_reading_after_done_frame(self) -> None:
        source = _RecordingSource(
            [_frame_line("A"), _frame_line("", done=True), _frame_line("late")]
        )
        frames = await _collect(source)
        self.assertEqual(len(frames), 2)
        self.assertTrue(frames[-1].done)
        self.assertEqual(source.pulled, 2)

    async def test_ends_with_source_when_no_done_frame(self) -> None:
        source = _RecordingSource([_frame_line("A"), _frame_line("B")])
        frames = await _collect(source)
        self.assertEqual([f.content for f in frames], ["A", "B"])

    async def test_done_frame_carries_performance_counters(self) -> None:
        source = _RecordingSource(
            [_frame_line("", done=True, eval_count=10, eval_duration=2_000_000_000)]
        )
        frames = await _collect(source)
        self.assertEqual(frames[0].stats(), {"eval_count": 10, "eval_duration": 2_000_000_000})


class DecodeFrameTests(unittest.TestCase):
    def test_error_only_line_is_a_well_formed_frame(self) -> None:
        frame = decode_frame('{"error": "model \\"x\\" not found"}')
        self.assertEqual(frame.error, 'model "x" not found')
        self.assertTrue(frame.done)
        self.assertEqual(frame.content, "")

    def test_tool_call_fragment_is_kept(self) -> None:
        frame = decode_frame(
            json.dumps(
                {
                    "model": "m",
                    "created_at": "t",
                    "message": {
                        "role": "assistant",
                        "content": "",
                        "tool_calls": [
                            {"function": {"name": "calculator", "arguments": {"formula": "1+1"}}}
                        ],
                    },
                    "done": False,
                }
            )
        )
        self.assertEqual(frame.raw_tool_calls[0]["function"]["name"], "calculator")

    def test_non_object_json_is_a_decode_error(self) -> None:
        with self.assertRaises(FrameDecodeError):
            decode_frame("[1, 2, 3]")


if __name__ == "__main__":
    unittest.main()
