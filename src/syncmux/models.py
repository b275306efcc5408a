"""Data models and enums for audio/video synchronization."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

# Reference rate for every decoded signal and for the encoded output
SAMPLE_RATE = 48000

# Number of samples each buffer is decimated to before correlating
NORMALIZED_LENGTH = 1000

# Length of the analysis and waveform window (seconds)
ANALYSIS_WINDOW = 3.0

# Allowed range for the user-chosen audio start time (seconds)
MIN_AUDIO_START = -3.0
MAX_AUDIO_START = 3.0


class MediaKind(str, Enum):
    """Kind of uploaded media."""

    VIDEO = "video"
    AUDIO = "audio"


class LagDomain(str, Enum):
    """How the correlation lag bound and lag-to-seconds conversion are interpreted."""

    DECIMATED = "decimated"  # Lags are steps of the 1000-sample decimated buffer
    REFERENCE = "reference"  # Legacy search: 48 kHz lag bound and sign, decimated indices


@dataclass(frozen=True)
class MediaSource:
    """Reference to a media byte stream the decoder can open."""

    kind: MediaKind
    location: Union[Path, str]

    @property
    def name(self) -> str:
        return Path(str(self.location)).name

    def __str__(self) -> str:
        return str(self.location)


@dataclass
class MediaInfo:
    """Basic stream metadata of a media source."""

    location: str
    duration: float
    has_video: bool
    has_audio: bool
    sample_rate: Optional[int] = None
    channels: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class OffsetEstimate:
    """Result of offset detection.

    A positive offset means the audio track must be delayed to line up with
    the video, a negative one that its start must be trimmed. In the
    reference lag domain the sign is reversed.
    """

    lag: int
    offset_seconds: float
    correlation: float  # Mean product over the overlap, higher is better
    lag_domain: LagDomain = LagDomain.DECIMATED


@dataclass(frozen=True)
class VideoSettings:
    preset: str
    profile: str
    crf: int
    bitrate: int  # kbit/s
    maxrate: int  # kbit/s
    bufsize: int  # kbit


@dataclass(frozen=True)
class AudioSettings:
    bitrate: int  # kbit/s


@dataclass(frozen=True)
class PlatformPreset:
    """Encoder settings for one upload platform."""

    name: str
    video: VideoSettings
    audio: AudioSettings


@dataclass(frozen=True)
class EncodeJob:
    """Everything needed to produce one re-muxed output."""

    video: MediaSource
    audio: MediaSource
    audio_start_time: float
    final_offset: float
    preset: PlatformPreset
