"""Analyze and process jobs: the two modes of the synchronization pipeline."""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from .audio import extract_samples
from .correlation import MAX_LAG_SECONDS, correlate
from .encode import encode
from .engine import Engine
from .errors import DecodeError
from .models import (
    ANALYSIS_WINDOW,
    EncodeJob,
    LagDomain,
    MediaSource,
    OffsetEstimate,
)
from .offset import AlignmentState
from .presets import get_preset
from .waveform import render_waveform


@dataclass
class AnalysisResult:
    """Waveform previews and suggested offset for one analyze run."""

    state: AlignmentState
    estimate: OffsetEstimate
    video_waveform: Optional[bytes]  # PNG, None if rendering failed
    audio_waveform: Optional[bytes]

    @property
    def suggested_offset(self) -> float:
        return self.state.suggested_offset


def analysis_windows(audio_start_time: float) -> tuple[float, float]:
    """
    Window starts (video, audio) for a user-chosen audio start time.

    A negative start time means the audio begins before the video; since a
    window cannot start before 0, the video window is moved forward instead,
    which keeps the same relative alignment.
    """
    if audio_start_time >= 0:
        return 0.0, audio_start_time
    return -audio_start_time, 0.0


def _waveform_or_none(future: Future, label: str) -> Optional[bytes]:
    try:
        return future.result()
    except (DecodeError, OSError) as exc:
        logging.warning(f"Could not render {label} waveform: {exc}")
        return None


def analyze(
    video: MediaSource,
    audio: MediaSource,
    audio_start_time: float = 0.0,
    window: float = ANALYSIS_WINDOW,
    max_lag_seconds: float = MAX_LAG_SECONDS,
    lag_domain: LagDomain = LagDomain.DECIMATED,
    cancel: Optional[threading.Event] = None,
    quiet: bool = True,
) -> AnalysisResult:
    """
    Render waveform previews and estimate the audio offset.

    The two sample extractions run concurrently and are joined before
    correlating. The two waveform renders run alongside them independently:
    a render failure leaves that preview empty without affecting the offset,
    and the call returns only once every task has finished.

    Args:
        video: Source video (its soundtrack is the reference)
        audio: Separately mixed audio track
        audio_start_time: User-chosen audio start in seconds, within [-3, 3]
        window: Length of the analyzed window in seconds
        max_lag_seconds: Largest offset searched in either direction
        lag_domain: Interpretation of the correlation lag bound
        cancel: Event that aborts decoding when set
        quiet: If True, suppress progress bars

    Returns:
        AnalysisResult with previews, estimate and alignment state
    """
    state = AlignmentState(audio_start_time=audio_start_time)
    video_start, audio_start = analysis_windows(audio_start_time)
    started = time.monotonic()

    logging.debug(
        f"Analyzing {video.name} from {video_start:.2f}s and {audio.name} "
        f"from {audio_start:.2f}s ({window:.1f}s windows)"
    )

    with ThreadPoolExecutor(max_workers=4, thread_name_prefix="analyze") as pool:
        # Renders decode their own copy of each window, apart from the correlation path
        video_wave = pool.submit(render_waveform, video, video_start, window, cancel=cancel)
        audio_wave = pool.submit(render_waveform, audio, audio_start, window, cancel=cancel)
        video_samples = pool.submit(
            extract_samples, video, video_start, window, cancel, quiet, "Video soundtrack"
        )
        audio_samples = pool.submit(
            extract_samples, audio, audio_start, window, cancel, quiet, "Audio track"
        )

        estimate = correlate(
            video_samples.result(),
            audio_samples.result(),
            max_lag_seconds=max_lag_seconds,
            lag_domain=lag_domain,
        )
        state.record(estimate)

    result = AnalysisResult(
        state=state,
        estimate=estimate,
        video_waveform=_waveform_or_none(video_wave, "video"),
        audio_waveform=_waveform_or_none(audio_wave, "audio"),
    )

    logging.debug(
        f"Analysis finished in {time.monotonic() - started:.2f}s: "
        f"suggested offset {estimate.offset_seconds:+.4f}s "
        f"(correlation {estimate.correlation:.6f})"
    )
    return result


def process(
    video: MediaSource,
    audio: MediaSource,
    engine: Engine,
    audio_start_time: float = 0.0,
    suggested_offset: float = 0.0,
    platform: Optional[str] = None,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """
    Encode the video with the audio track shifted by the resolved offset.

    The platform is looked up before any media work, so an unknown platform
    fails without decoding or encoding anything.

    Args:
        video: Source video
        audio: Separately mixed audio track
        engine: Engine that runs the filter graph
        audio_start_time: User-chosen audio start in seconds, within [-3, 3]
        suggested_offset: Offset from a previous analyze run (seconds)
        platform: Platform identifier, or None for the default platform
        cancel: Event that aborts encoding when set

    Returns:
        The complete encoded MP4 bytes
    """
    preset = get_preset(platform)
    state = AlignmentState(
        audio_start_time=audio_start_time, suggested_offset=suggested_offset
    )
    final_offset = state.resolve()

    job = EncodeJob(
        video=video,
        audio=audio,
        audio_start_time=state.audio_start_time,
        final_offset=final_offset,
        preset=preset,
    )

    started = time.monotonic()
    output = encode(job, engine, cancel=cancel)
    logging.info(
        f"Encoded {len(output)} bytes for {preset.name} in "
        f"{time.monotonic() - started:.2f}s"
    )
    return output
