"""
syncmux - Align a separately mixed audio track to a video and re-mux it.

The offset between the video's own soundtrack and the separate audio track
is estimated by cross-correlating short decoded windows of both. The video
is then encoded with the audio padded or trimmed by that offset, using the
codec settings of a target upload platform.

Example usage:
    from pathlib import Path
    from syncmux import FfmpegEngine, MediaKind, MediaSource, analyze, process

    video = MediaSource(MediaKind.VIDEO, Path("performance.mp4"))
    audio = MediaSource(MediaKind.AUDIO, Path("mix.wav"))

    result = analyze(video, audio)
    print(f"Suggested offset: {result.suggested_offset}s")

    output = process(
        video,
        audio,
        FfmpegEngine(),
        suggested_offset=result.suggested_offset,
        platform="youtube",
    )
    Path("synced.mp4").write_bytes(output)
"""

from importlib.metadata import version

from .audio import extract_samples, probe_media
from .correlation import correlate, decimate
from .encode import EncodePlan, build_plan, encode
from .engine import Engine, EngineInput, FfmpegEngine
from .errors import (
    DecodeError,
    EncodeError,
    InputMissingError,
    InvalidPlatformError,
    InvalidRequestError,
    JobCancelledError,
    StorageError,
    SyncMuxError,
)
from .models import (
    EncodeJob,
    LagDomain,
    MediaInfo,
    MediaKind,
    MediaSource,
    OffsetEstimate,
    PlatformPreset,
)
from .offset import CALIBRATION_OFFSET, AlignmentState, resolve
from .pipeline import AnalysisResult, analyze, process
from .presets import DEFAULT_PLATFORM, PLATFORM_PRESETS, Platform, get_preset
from .storage import BlobStore, HttpBlobStore, JobWorkspace, LocalBlobStore
from .waveform import render_waveform

__version__ = version("syncmux")

__all__ = [
    # Pipeline
    "analyze",
    "process",
    "AnalysisResult",
    # Models
    "AlignmentState",
    "EncodeJob",
    "LagDomain",
    "MediaInfo",
    "MediaKind",
    "MediaSource",
    "OffsetEstimate",
    "PlatformPreset",
    # Components
    "extract_samples",
    "probe_media",
    "decimate",
    "correlate",
    "render_waveform",
    "resolve",
    "CALIBRATION_OFFSET",
    "build_plan",
    "encode",
    "EncodePlan",
    # Presets
    "Platform",
    "PLATFORM_PRESETS",
    "DEFAULT_PLATFORM",
    "get_preset",
    # Engine and storage
    "Engine",
    "EngineInput",
    "FfmpegEngine",
    "BlobStore",
    "HttpBlobStore",
    "LocalBlobStore",
    "JobWorkspace",
    # Errors
    "SyncMuxError",
    "InputMissingError",
    "InvalidRequestError",
    "DecodeError",
    "InvalidPlatformError",
    "EncodeError",
    "StorageError",
    "JobCancelledError",
    # Version
    "__version__",
]
