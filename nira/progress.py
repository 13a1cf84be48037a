"""Load progress normalization."""

import math
from typing import Optional

from .models import Progress

DEFAULT_PROGRESS_MESSAGE = "Downloading model…"


class ProgressReporter:
    """
    Turns raw engine progress notifications into display-ready values.

    Engines report a mix of fractional completion and free-text stage
    descriptions, sometimes one without the other, and per-layer downloads
    can restart their fraction at zero. The reported percent never moves
    backwards within one load operation.
    """

    def __init__(self, default_message: str = DEFAULT_PROGRESS_MESSAGE):
        self.default_message = default_message
        self._last_percent = 0

    @property
    def last_percent(self) -> int:
        return self._last_percent

    def start(self) -> None:
        """Begin a new load operation."""
        self._last_percent = 0

    def normalize(
        self,
        fraction: Optional[float] = None,
        stage_text: Optional[str] = None,
    ) -> Progress:
        percent = self._last_percent
        if fraction is not None and math.isfinite(fraction):
            percent = max(percent, _to_percent(fraction))
        self._last_percent = percent

        message = stage_text if stage_text else self.default_message
        return Progress(percent=percent, message=message)


def _to_percent(fraction: float) -> int:
    # Round half up, then clamp.
    return min(100, max(0, math.floor(fraction * 100 + 0.5)))
