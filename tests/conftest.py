"""Pytest configuration and fixtures for syncmux tests.

Media fixtures are generated once per session with PyAV: a smooth noise
signal is written as the soundtrack of a small video and, shifted by known
amounts, as separate WAV audio tracks.
"""

import shutil
import subprocess
import sys
import threading
from fractions import Fraction
from pathlib import Path
from typing import Optional, Sequence

import av
import numpy as np
import pytest

from syncmux import FfmpegEngine
from syncmux.engine import EngineInput

SAMPLE_RATE = 48000
DURATION = 10.0
FPS = 25
VIDEO_SIZE = (160, 90)

# 80 decimation steps of a 3 s window (144 source samples each)
SHIFT_SAMPLES = 11520
SHIFT_SECONDS = SHIFT_SAMPLES / SAMPLE_RATE  # 0.24


def make_signal(duration: float = DURATION, seed: int = 1234) -> np.ndarray:
    """Low-pass filtered noise: survives decimation and lossy audio codecs."""
    rng = np.random.default_rng(seed)
    white = rng.standard_normal(int(duration * SAMPLE_RATE) + 480)
    smooth = np.convolve(white, np.ones(480) / 480, mode="valid")[: int(duration * SAMPLE_RATE)]
    return 0.8 * smooth / np.max(np.abs(smooth))


def write_media(
    path: Path,
    samples: Optional[np.ndarray],
    video_duration: Optional[float] = None,
) -> Path:
    """Write stereo PCM audio (left == right) and optionally an mpeg4 video track."""
    with av.open(str(path), mode="w") as container:
        video_stream = None
        if video_duration is not None:
            video_stream = container.add_stream("mpeg4", rate=FPS)
            video_stream.width, video_stream.height = VIDEO_SIZE
            video_stream.pix_fmt = "yuv420p"

        audio_stream = None
        if samples is not None:
            audio_stream = container.add_stream("pcm_s16le", rate=SAMPLE_RATE)

        pcm = None
        if samples is not None:
            pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)
        audio_position = 0
        video_frames = int(video_duration * FPS) if video_stream is not None else 0

        def mux_audio_until(limit: int) -> None:
            nonlocal audio_position
            while audio_stream is not None and audio_position < min(limit, len(pcm)):
                block = np.repeat(pcm[audio_position : audio_position + 1024], 2)
                frame = av.AudioFrame.from_ndarray(
                    block.reshape(1, -1), format="s16", layout="stereo"
                )
                frame.sample_rate = SAMPLE_RATE
                frame.pts = audio_position
                frame.time_base = Fraction(1, SAMPLE_RATE)
                for packet in audio_stream.encode(frame):
                    container.mux(packet)
                audio_position += 1024

        # Interleave: audio up to the end of each video frame, then the frame
        for i in range(video_frames):
            mux_audio_until((i + 1) * SAMPLE_RATE // FPS)
            pixels = np.full((VIDEO_SIZE[1], VIDEO_SIZE[0], 3), (i * 9) % 256, dtype=np.uint8)
            frame = av.VideoFrame.from_ndarray(pixels, format="rgb24")
            frame.pts = i
            frame.time_base = Fraction(1, FPS)
            for packet in video_stream.encode(frame):
                container.mux(packet)

        if pcm is not None:
            mux_audio_until(len(pcm))

        for stream in (video_stream, audio_stream):
            if stream is not None:
                for packet in stream.encode():
                    container.mux(packet)

    return path


@pytest.fixture(scope="session")
def media_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("media")


@pytest.fixture(scope="session")
def reference_signal() -> np.ndarray:
    """The soundtrack shared by all fixtures (10s, 48 kHz)."""
    return make_signal()


@pytest.fixture(scope="session")
def synthetic_video(media_dir: Path, reference_signal: np.ndarray) -> Path:
    """Video (10s, 25fps, 160x90) whose soundtrack is the reference signal."""
    return write_media(media_dir / "video.mkv", reference_signal, video_duration=DURATION)


@pytest.fixture(scope="session")
def synthetic_audio(media_dir: Path, reference_signal: np.ndarray) -> Path:
    """Audio track already in sync with the video."""
    return write_media(media_dir / "audio.wav", reference_signal)


@pytest.fixture(scope="session")
def delayed_audio(media_dir: Path, reference_signal: np.ndarray) -> Path:
    """Audio track whose content starts 0.24s later than in the video."""
    shifted = np.concatenate([np.zeros(SHIFT_SAMPLES), reference_signal])[: len(reference_signal)]
    return write_media(media_dir / "delayed.wav", shifted)


@pytest.fixture(scope="session")
def advanced_audio(media_dir: Path, reference_signal: np.ndarray) -> Path:
    """Audio track whose content starts 0.24s earlier than in the video."""
    shifted = np.concatenate([reference_signal[SHIFT_SAMPLES:], np.zeros(SHIFT_SAMPLES)])
    return write_media(media_dir / "advanced.wav", shifted)


@pytest.fixture(scope="session")
def video_only(media_dir: Path) -> Path:
    """Video without any audio stream."""
    return write_media(media_dir / "silent_video.mkv", None, video_duration=2.0)


@pytest.fixture(scope="session")
def ffmpeg_engine() -> FfmpegEngine:
    """Real ffmpeg engine; skips when no ffmpeg with libx264 is installed."""
    path = shutil.which("ffmpeg")
    if path is None:
        pytest.skip("ffmpeg not found on PATH")
    encoders = subprocess.run(
        [path, "-hide_banner", "-encoders"], capture_output=True, text=True
    ).stdout
    if "libx264" not in encoders:
        pytest.skip("ffmpeg was built without libx264")
    return FfmpegEngine(path)


class FakeEngine:
    """Engine double that records its calls and returns fixed bytes."""

    def __init__(self, output: bytes = b"fake-mp4-output"):
        self.output = output
        self.calls: list[tuple[list[EngineInput], list[str], list[str]]] = []

    def run(
        self,
        inputs: Sequence[EngineInput],
        filters: Sequence[str],
        output_options: Sequence[str],
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        self.calls.append((list(inputs), list(filters), list(output_options)))
        return self.output


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_executable(tmp_path: Path):
    """Factory for executable Python scripts standing in for ffmpeg."""
    if sys.platform == "win32":
        pytest.skip("shebang scripts are POSIX only")

    def _make(body: str) -> str:
        script = tmp_path / f"fake_ffmpeg_{len(list(tmp_path.iterdir()))}"
        script.write_text(f"#!{sys.executable}\nimport sys, time\n{body}\n")
        script.chmod(0o755)
        return str(script)

    return _make
