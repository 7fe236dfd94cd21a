"""Bounded, ordered conversation history."""

import logging
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

MAX_TURNS = 10


class Role(str, Enum):
    """Originating side of a turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One message in a conversation.

    Content is kept as a tuple of text segments rather than a single string
    so that non-text segments can be added later without changing the shape.
    """

    role: Role
    content: tuple[str, ...]

    @classmethod
    def user(cls, text: str) -> "Turn":
        return cls(Role.USER, (text,))

    @classmethod
    def assistant(cls, text: str) -> "Turn":
        return cls(Role.ASSISTANT, (text,))

    @property
    def text(self) -> str:
        """All text segments joined together."""
        return "".join(self.content)

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.text}


class ConversationHistory:
    """Chronological sequence of turns capped at ``capacity`` entries.

    Appending past capacity evicts the oldest turns first. Role alternation
    is not enforced; callers decide what order turns arrive in.
    """

    def __init__(self, capacity: int = MAX_TURNS) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._turns: deque[Turn] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._turns.maxlen

    def append(self, turn: Turn) -> None:
        """Append a turn, dropping the oldest one if the history is full."""
        if len(self._turns) == self._turns.maxlen:
            evicted = self._turns[0]
            logger.debug(
                "History full (%d), evicting oldest %s turn",
                self._turns.maxlen, evicted.role.value,
            )
        self._turns.append(turn)

    def turns(self) -> list[Turn]:
        """Return a copy of the retained turns, oldest first."""
        return list(self._turns)

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(list(self._turns))
