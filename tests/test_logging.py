"""Tests for structured logging behavior."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path
import unittest

from brain_chat.config import LoggingConfig
from brain_chat.logging_utils import build_formatter, configure_logging


class FormatterTests(unittest.TestCase):
    def test_structured_formatter_renders_extra_fields_as_json(self) -> None:
        formatter = build_formatter(structured=True)
        record = logging.LogRecord(
            name="brain_chat.chat",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="chat.request.failed",
            args=(),
            exc_info=None,
        )
        record.event = "chat.request.failed"
        record.error_type = "BackendConnectionError"

        data = json.loads(formatter.format(record))
        self.assertEqual(data["event"], "chat.request.failed")
        self.assertEqual(data["error_type"], "BackendConnectionError")
        self.assertEqual(data["level"], "warning")
        self.assertEqual(data["logger"], "brain_chat.chat")

    def test_plain_formatter_is_stdlib(self) -> None:
        formatter = build_formatter(structured=False)
        self.assertIs(type(formatter), logging.Formatter)


class ConfigureLoggingTests(unittest.TestCase):
    """Validate configure_logging() handler setup behavior."""

    def setUp(self) -> None:
        # Preserve root logger state so tests do not pollute each other.
        root = logging.getLogger()
        self._original_level = root.level
        self._original_handlers = list(root.handlers)

    def tearDown(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers:
            if handler not in self._original_handlers:
                handler.close()
        root.setLevel(self._original_level)
        root.handlers.clear()
        root.handlers.extend(self._original_handlers)

    def _stream_handlers(self) -> list[logging.Handler]:
        return [
            h
            for h in logging.getLogger().handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
        ]

    def test_sets_root_level_and_stderr_threshold(self) -> None:
        configure_logging(LoggingConfig(level="DEBUG", structured=False))
        self.assertEqual(logging.getLogger().level, logging.DEBUG)
        handlers = self._stream_handlers()
        self.assertEqual(len(handlers), 1)
        self.assertEqual(handlers[0].level, logging.WARNING)

    def test_noisy_loggers_set_to_warning(self) -> None:
        configure_logging(LoggingConfig(level="DEBUG", structured=True))
        for name in ("httpx", "httpcore", "ollama", "mcp"):
            self.assertEqual(logging.getLogger(name).level, logging.WARNING)

    def test_file_handler_created(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "nested" / "test.log"
            configure_logging(
                LoggingConfig(
                    level="DEBUG",
                    structured=False,
                    log_to_file=True,
                    log_file_path=str(log_path),
                )
            )
            file_handlers = [
                h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)
            ]
            self.assertEqual(len(file_handlers), 1)
            self.assertTrue(log_path.exists())
            for handler in file_handlers:
                handler.close()

    def test_stderr_handler_filters_to_brain_chat(self) -> None:
        configure_logging(LoggingConfig(level="INFO", structured=False))
        handler = self._stream_handlers()[0]

        def record(name: str) -> logging.LogRecord:
            return logging.LogRecord(
                name=name,
                level=logging.WARNING,
                pathname="",
                lineno=0,
                msg="x",
                args=(),
                exc_info=None,
            )

        self.assertTrue(handler.filter(record("brain_chat.stream_reader")))
        self.assertFalse(handler.filter(record("httpx")))


if __name__ == "__main__":
    unittest.main()
