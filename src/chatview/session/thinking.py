"""Thinking indicator shown while a reply is being generated."""

import time
from collections.abc import Callable

from ..config import THINKING_MAX_DOTS, WARMING_UP_AFTER_SECONDS

THINKING_LABEL = "Thinking"
WARMING_UP_LABEL = "Warming up AI"


class ThinkingIndicator:
    """Animated label for generating messages.

    Each tick adds a dot until three are shown, then starts over. After
    a few seconds without a reply the label changes to tell the user the
    model is still starting.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        warming_up_after: float = WARMING_UP_AFTER_SECONDS,
    ) -> None:
        self._clock = clock
        self._warming_up_after = warming_up_after
        self._started_at = clock()
        self._dots = 0

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started_at

    @property
    def text(self) -> str:
        label = WARMING_UP_LABEL if self.elapsed >= self._warming_up_after else THINKING_LABEL
        return label + "." * self._dots

    def tick(self) -> str:
        """Advance the animation and return the new text."""
        self._dots = self._dots + 1 if self._dots < THINKING_MAX_DOTS else 0
        return self.text

    def reset(self) -> None:
        self._started_at = self._clock()
        self._dots = 0
