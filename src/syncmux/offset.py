"""Resolution of the final audio offset applied by the encoder."""

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import InvalidRequestError
from .models import MAX_AUDIO_START, MIN_AUDIO_START, OffsetEstimate

# Compensates the latency of the single-filter audio graph in encode.py.
# Re-measure whenever that filter chain changes.
CALIBRATION_OFFSET = -0.01


def resolve(user_start_time: float, suggested_offset: float) -> float:
    """Combine the suggested offset with the encoder calibration.

    The user start time is applied separately by the encoder as an input
    seek, so it does not enter the sum.
    """
    return suggested_offset + CALIBRATION_OFFSET


@dataclass
class AlignmentState:
    """Alignment choices made during one session."""

    audio_start_time: float = 0.0
    suggested_offset: float = 0.0
    final_offset: Optional[float] = None

    def __post_init__(self) -> None:
        self.adjust(self.audio_start_time)

    def adjust(self, audio_start_time: float) -> None:
        """Move the audio start time, invalidating any resolved offset."""
        if not MIN_AUDIO_START <= audio_start_time <= MAX_AUDIO_START:
            raise InvalidRequestError(
                "alignment",
                f"audioStartTime must be between {MIN_AUDIO_START} and "
                f"{MAX_AUDIO_START} seconds, got {audio_start_time}",
            )
        self.audio_start_time = audio_start_time
        self.final_offset = None

    def record(self, estimate: OffsetEstimate) -> None:
        self.suggested_offset = estimate.offset_seconds
        self.final_offset = None

    def resolve(self) -> float:
        self.final_offset = resolve(self.audio_start_time, self.suggested_offset)
        logging.debug(
            f"Resolved offset: suggested {self.suggested_offset:.4f}s -> "
            f"final {self.final_offset:.4f}s (start {self.audio_start_time:.2f}s)"
        )
        return self.final_offset
