"""Audio decoding utilities for sample extraction and metadata."""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

import av
import numpy as np
from tqdm import tqdm

from .errors import DecodeError, JobCancelledError
from .models import ANALYSIS_WINDOW, SAMPLE_RATE, MediaInfo, MediaSource

SourceLike = Union[MediaSource, Path, str]

# Returned instead of an empty buffer when a window holds no samples
SILENT_PLACEHOLDER = (0.0,)

# Seek this far before the requested start so the first decoded frame precedes it
SEEK_MARGIN = 0.5


def _location(source: SourceLike) -> str:
    if isinstance(source, MediaSource):
        return str(source.location)
    return str(source)


def probe_media(source: SourceLike) -> MediaInfo:
    """Extract stream metadata using PyAV."""
    location = _location(source)
    try:
        with av.open(location) as container:
            video = container.streams.video[0] if container.streams.video else None
            audio = container.streams.audio[0] if container.streams.audio else None

            if container.duration is not None:
                duration = float(container.duration / av.time_base)
            elif audio is not None and audio.duration and audio.time_base:
                duration = float(audio.duration * audio.time_base)
            elif video is not None and video.duration and video.time_base:
                duration = float(video.duration * video.time_base)
            else:
                duration = 0.0

            return MediaInfo(
                location=location,
                duration=duration,
                has_video=video is not None,
                has_audio=audio is not None,
                sample_rate=audio.codec_context.sample_rate if audio else None,
                channels=len(audio.codec_context.layout.channels) if audio else None,
                width=video.width if video else None,
                height=video.height if video else None,
            )
    except (av.error.FFmpegError, OSError) as exc:
        raise DecodeError("probe", f"Cannot open {location}: {exc}") from exc


def _take_window(
    frame: av.AudioFrame,
    position: int,
    window_start: int,
    window_end: int,
    chunks: list[np.ndarray],
) -> int:
    """Append the part of a planar s16 frame inside the window; return the next position."""
    data = frame.to_ndarray()[0]  # First channel only
    end = position + len(data)
    lo = max(window_start, position)
    hi = min(window_end, end)
    if hi > lo:
        chunks.append(data[lo - position : hi - position])
    return end


def extract_samples(
    source: SourceLike,
    start_time: float = 0.0,
    duration: float = ANALYSIS_WINDOW,
    cancel: Optional[threading.Event] = None,
    quiet: bool = True,
    desc: str = "Decoding audio",
) -> np.ndarray:
    """
    Decode the first audio channel of a source as normalized 48 kHz samples.

    Any video stream is ignored. Samples are resampled to signed 16-bit PCM
    and scaled by 1/32768 into [-1.0, 1.0].

    Args:
        source: Media source or path/URL the decoder can open
        start_time: Window start in seconds (relative to stream start, >= 0)
        duration: Window length in seconds
        cancel: Event that aborts decoding when set
        quiet: If True, suppress the progress bar
        desc: Description for progress bar

    Returns:
        1-D float64 array. A window without any samples (past the end of
        the stream, or nothing decodable in it) yields the one-element
        placeholder [0.0] instead of an empty array.

    Raises:
        DecodeError: If the source cannot be opened or has no audio stream
        JobCancelledError: If cancel is set while decoding
    """
    if start_time < 0:
        raise ValueError(f"start_time must be non-negative, got {start_time}")

    location = _location(source)
    window_start = int(round(start_time * SAMPLE_RATE))
    window_end = window_start + int(round(duration * SAMPLE_RATE))
    chunks: list[np.ndarray] = []

    try:
        with av.open(location) as container:
            if not container.streams.audio:
                raise DecodeError("extract", f"No audio stream in {location}")
            stream = container.streams.audio[0]
            time_base = float(stream.time_base) if stream.time_base else 1.0 / SAMPLE_RATE
            first_time = (
                float(stream.start_time * time_base) if stream.start_time is not None else 0.0
            )
            resampler = av.AudioResampler(format="s16p", rate=SAMPLE_RATE)

            # Avoid decoding everything before the window
            if start_time > SEEK_MARGIN:
                seek_time = first_time + start_time - SEEK_MARGIN
                try:
                    container.seek(int(seek_time / time_base), stream=stream)
                except av.error.FFmpegError as exc:
                    # Windows past the end may not be seekable; decoding then finds nothing
                    logging.debug(f"Seek to {seek_time:.2f}s in {location} failed: {exc}")

            position: Optional[int] = None
            for frame in tqdm(
                container.decode(stream), desc=desc, disable=quiet, unit="frame"
            ):
                if cancel is not None and cancel.is_set():
                    raise JobCancelledError("extract", f"Decoding {location} was cancelled")

                if position is None:
                    frame_time = frame.time if frame.time is not None else first_time
                    position = int(round((frame_time - first_time) * SAMPLE_RATE))

                for resampled in resampler.resample(frame):
                    position = _take_window(
                        resampled, position, window_start, window_end, chunks
                    )

                if position >= window_end:
                    break
            else:
                if position is not None:
                    for resampled in resampler.resample(None):
                        position = _take_window(
                            resampled, position, window_start, window_end, chunks
                        )
    except (av.error.FFmpegError, OSError) as exc:
        raise DecodeError("extract", f"Cannot decode audio from {location}: {exc}") from exc

    if not chunks:
        logging.warning(
            f"No samples between {start_time:.2f}s and {start_time + duration:.2f}s "
            f"in {location}, using silent placeholder"
        )
        return np.array(SILENT_PLACEHOLDER, dtype=np.float64)

    samples = np.concatenate(chunks).astype(np.float64) / 32768.0
    logging.debug(f"Extracted {len(samples)} samples from {location} at {start_time:.2f}s")
    return samples
