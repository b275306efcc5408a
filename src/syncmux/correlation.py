"""Cross-correlation of audio sample buffers."""

import logging
import math

import numpy as np

from .models import NORMALIZED_LENGTH, SAMPLE_RATE, LagDomain, OffsetEstimate

# Largest offset searched in either direction (seconds)
MAX_LAG_SECONDS = 0.5


def decimate(samples: np.ndarray, target_length: int = NORMALIZED_LENGTH) -> np.ndarray:
    """
    Resample a buffer to a fixed length by nearest-index selection.

    Element i of the result is samples[floor(i * len(samples) / target_length)],
    so a buffer that already has target_length elements is returned unchanged.
    Shorter buffers are stretched by repeating elements.

    Args:
        samples: Non-empty 1-D sample buffer
        target_length: Number of elements in the result

    Returns:
        float64 array of exactly target_length elements
    """
    samples = np.asarray(samples, dtype=np.float64)
    if samples.size == 0:
        raise ValueError("Cannot decimate an empty sample buffer")
    indices = (np.arange(target_length, dtype=np.int64) * samples.size) // target_length
    return samples[indices]


def lag_search_bounds(
    original_length: int,
    sample_rate: int = SAMPLE_RATE,
    max_lag_seconds: float = MAX_LAG_SECONDS,
    lag_domain: LagDomain = LagDomain.DECIMATED,
    target_length: int = NORMALIZED_LENGTH,
) -> tuple[int, float]:
    """
    Compute the lag search bound and the duration of one lag step.

    Returns:
        Tuple of (max_lag, seconds_per_lag)
    """
    if lag_domain == LagDomain.REFERENCE:
        # Bound expressed in source samples but used as a decimated index offset
        return int(math.floor(sample_rate * max_lag_seconds)), 1.0 / sample_rate

    seconds_per_lag = original_length / target_length / sample_rate
    max_lag = min(int(math.floor(max_lag_seconds / seconds_per_lag)), target_length - 1)
    return max_lag, seconds_per_lag


def correlate(
    video_samples: np.ndarray,
    audio_samples: np.ndarray,
    sample_rate: int = SAMPLE_RATE,
    max_lag_seconds: float = MAX_LAG_SECONDS,
    lag_domain: LagDomain = LagDomain.DECIMATED,
) -> OffsetEstimate:
    """
    Find the lag that best aligns the audio buffer with the video buffer.

    Both buffers are decimated to a fixed length first, so the cost is the
    same whatever the window length. For each lag the score is the mean of
    pointwise products over the overlapping region only. Lags are scanned
    from -max_lag upward and only a strictly better score replaces the
    current best, so the first maximum found wins.

    In the decimated domain, audio sample i is paired with video sample
    i + L at lag L: a positive lag means the audio must be delayed by L
    steps, a negative one that L steps must be trimmed from its start.

    The reference domain reproduces the legacy search exactly, including
    its pairing of video sample i with audio sample i + L. Its lags and
    offsets therefore have the opposite sign: a positive offset there
    means the audio starts late.

    Args:
        video_samples: Samples extracted from the video's soundtrack
        audio_samples: Samples extracted from the separate audio track
        sample_rate: Rate both buffers were extracted at
        max_lag_seconds: Largest offset searched in either direction
        lag_domain: How the lag bound and step duration are interpreted

    Returns:
        OffsetEstimate with the winning lag, its offset in seconds and score
    """
    video = decimate(video_samples)
    audio = decimate(audio_samples)
    n = len(video)

    max_lag, seconds_per_lag = lag_search_bounds(
        len(video_samples), sample_rate, max_lag_seconds, lag_domain, n
    )

    best_lag = 0
    best_correlation = float("-inf")

    # Legacy pairing is video[i] with audio[i + lag]
    direction = -1 if lag_domain == LagDomain.REFERENCE else 1

    for lag in range(-max_lag, max_lag + 1):
        shift = direction * lag
        # No overlap at all
        if abs(shift) >= n:
            continue

        if shift >= 0:
            video_slice = video[shift:]
            audio_slice = audio[: n - shift]
        else:
            video_slice = video[: n + shift]
            audio_slice = audio[-shift:]

        correlation = float(np.mean(video_slice * audio_slice))

        if correlation > best_correlation:
            best_correlation = correlation
            best_lag = lag

    offset_seconds = best_lag * seconds_per_lag
    logging.debug(
        f"Best lag {best_lag} of +/-{max_lag} ({lag_domain.value}): "
        f"offset = {offset_seconds:.4f}s, correlation = {best_correlation:.6f}"
    )

    return OffsetEstimate(
        lag=best_lag,
        offset_seconds=offset_seconds,
        correlation=best_correlation,
        lag_domain=lag_domain,
    )
