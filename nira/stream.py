"""
Streaming response assembly.

Every assistant turn is tagged with a generation number. Opening a new
turn (or invalidating on conversation reset) makes all earlier turns
stale, and anything a stale turn tries to apply is dropped. This keeps a
slow, abandoned stream from writing into a newer conversation.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import Discarded
from .models import Usage

logger = logging.getLogger(__name__)


@dataclass
class StreamTurn:
    """Buffer for one in-flight assistant response."""
    generation: int
    chunks: List[str] = field(default_factory=list)
    usage: Optional[Usage] = None

    @property
    def text(self) -> str:
        return "".join(self.chunks)


@dataclass(frozen=True)
class CompletedTurn:
    """Result of finalizing a current turn."""
    generation: int
    text: str
    usage: Optional[Usage] = None


class StreamAssembler:
    """
    Accumulates deltas for the current turn only.

    Deltas are applied in arrival order. Nothing is reordered or
    coalesced across turns.
    """

    def __init__(self):
        self._generation = 0
        self._turn: Optional[StreamTurn] = None

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation and self._turn is not None

    def begin_turn(self) -> int:
        self._generation += 1
        self._turn = StreamTurn(generation=self._generation)
        logger.debug(f"Opened turn {self._generation}")
        return self._generation

    def invalidate(self) -> int:
        """Make every open turn stale without starting a new one."""
        self._generation += 1
        self._turn = None
        logger.debug(f"Invalidated turns up to {self._generation - 1}")
        return self._generation

    def consume(self, delta: str, generation: int) -> Optional[str]:
        """
        Append a delta to the given turn.

        Returns the running text, or None if the turn is stale.
        """
        if not self.is_current(generation):
            logger.debug(f"Dropped delta for stale turn {generation}")
            return None
        self._turn.chunks.append(delta)
        return self._turn.text

    def apply_usage(self, usage: Usage, generation: int) -> bool:
        if not self.is_current(generation):
            return False
        self._turn.usage = usage
        return True

    def finalize(self, generation: int) -> CompletedTurn:
        """Close the turn and return its text; raises Discarded if stale."""
        if not self.is_current(generation):
            raise Discarded(generation, self._generation)
        turn = self._turn
        self._turn = None
        return CompletedTurn(generation=turn.generation, text=turn.text, usage=turn.usage)
