"""Newline-delimited JSON stream decoding for chat responses."""

from __future__ import annotations

from collections.abc import AsyncGenerator, AsyncIterable, Callable
import json
import logging

from pydantic import ValidationError

from .exceptions import FrameDecodeError
from .models import StreamFrame

LOGGER = logging.getLogger(__name__)

DecodeErrorCallback = Callable[[FrameDecodeError], None]


async def split_lines(chunks: AsyncIterable[bytes]) -> AsyncGenerator[str, None]:
    """Yield complete, non-blank text lines from an async byte stream.

    Lines may span several chunks. Decoding happens per complete line so a
    multi-byte character cut by a chunk boundary is reassembled first.
    A trailing line without a terminating newline is yielded at EOF.
    """
    buffer = b""
    async for chunk in chunks:
        if not chunk:
            continue
        buffer += chunk
        while b"\n" in buffer:
            raw, buffer = buffer.split(b"\n", 1)
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                yield line
    tail = buffer.decode("utf-8", errors="replace").strip()
    if tail:
        yield tail


def decode_frame(line: str) -> StreamFrame:
    """Decode one line into a frame or raise ``FrameDecodeError``."""
    try:
        return StreamFrame.model_validate(json.loads(line))
    except json.JSONDecodeError as exc:
        raise FrameDecodeError(line, f"invalid JSON: {exc.msg}") from exc
    except ValidationError as exc:
        reason = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'frame'}: {error['msg']}"
            for error in exc.errors()
        )
        raise FrameDecodeError(line, reason) from exc


async def read_frames(
    chunks: AsyncIterable[bytes],
    on_decode_error: DecodeErrorCallback | None = None,
) -> AsyncGenerator[StreamFrame, None]:
    """Yield decoded frames until the stream ends or a ``done`` frame arrives.

    Undecodable lines are reported through ``on_decode_error`` and skipped.
    No further reads happen once a ``done`` frame has been yielded.
    """
    lines = split_lines(chunks)
    try:
        async for line in lines:
            try:
                frame = decode_frame(line)
            except FrameDecodeError as exc:
                LOGGER.warning(
                    "stream.decode.failed",
                    extra={
                        "event": "stream.decode.failed",
                        "reason": exc.reason,
                        "line": line[:200],
                    },
                )
                if on_decode_error is not None:
                    on_decode_error(exc)
                continue
            yield frame
            if frame.done:
                return
    finally:
        await lines.aclose()
