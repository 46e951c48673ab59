"""Append-only conversation history replayed on every request."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any

from .models import Turn

# Public wire message type.
Message = dict[str, Any]


class ConversationHistory:
    """Ordered sequence of turns owned by a single chat session.

    The optional system prompt is kept outside the turn list: it is
    prepended on the wire but survives ``clear()`` and is not reported
    by ``turns``.
    """

    def __init__(self, system_prompt: str = "") -> None:
        self._system_turn: Turn | None = (
            Turn.system(system_prompt.strip()) if system_prompt.strip() else None
        )
        self._turns: list[Turn] = []

    @property
    def turns(self) -> tuple[Turn, ...]:
        """Return the stored turns as an immutable tuple."""
        return tuple(self._turns)

    @property
    def system_prompt(self) -> str:
        return self._system_turn.content if self._system_turn is not None else ""

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def append(self, turn: Turn) -> None:
        self._turns.append(turn)

    def extend(self, turns: Iterable[Turn]) -> None:
        for turn in turns:
            self.append(turn)

    def clear(self) -> None:
        """Discard every turn while keeping the configured system prompt."""
        self._turns = []

    def to_payload(self, extra: Iterable[Turn] = ()) -> list[Message]:
        """Build the message list sent to the backend.

        ``extra`` turns are appended to the wire copy only; the stored
        history is not touched.
        """
        turns: list[Turn] = []
        if self._system_turn is not None:
            turns.append(self._system_turn)
        turns.extend(self._turns)
        turns.extend(extra)
        return [turn.to_payload() for turn in turns]
