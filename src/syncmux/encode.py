"""Filter graph construction and encoding of the synchronized output."""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .audio import probe_media
from .engine import Engine, EngineInput
from .errors import DecodeError
from .models import SAMPLE_RATE, EncodeJob, PlatformPreset

OUTPUT_CHANNELS = 2
VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
PIXEL_FORMAT = "yuv420p"


@dataclass
class EncodePlan:
    """Inputs, filter graph and output options for one engine run."""

    inputs: list[EngineInput]
    filters: list[str]
    output_options: list[str]
    shift_seconds: float  # > 0 pads the audio front, < 0 trims it


def _seconds(value: float) -> str:
    return f"{value:.3f}"


def audio_shift(audio_start_time: float, final_offset: float) -> float:
    """
    Net shift applied to the audio after its input seek.

    A positive start time is applied as an input seek on the audio; a
    negative one cannot be seeked and becomes extra delay instead.
    """
    return final_offset + max(0.0, -audio_start_time)


def audio_filter(shift: float, sample_rate: int = SAMPLE_RATE) -> str:
    """
    Single filter chain that pads (shift >= 0) or trims (shift < 0) the audio front.

    The stream is resampled first so the pad/trim length is sample exact.
    This replaces the older two-stage graph (silence source concatenated in
    front of the audio, then concatenated with the video), which yields the
    same timing at higher cost.
    """
    samples = int(round(abs(shift) * sample_rate))
    if shift < 0:
        shift_filter = f"atrim=start_sample={samples}"
    else:
        shift_filter = f"adelay=delays={samples}S:all=1"
    return f"[1:a:0]aresample={sample_rate},{shift_filter},asetpts=PTS-STARTPTS[outa]"


def output_options(preset: PlatformPreset) -> list[str]:
    """Stream mapping and codec options for a platform preset."""
    video = preset.video
    return [
        "-map", "0:v:0",
        "-map", "[outa]",
        "-c:v", VIDEO_CODEC,
        "-preset", video.preset,
        "-profile:v", video.profile,
        "-crf", str(video.crf),
        "-pix_fmt", PIXEL_FORMAT,
        "-b:v", f"{video.bitrate}k",
        "-maxrate", f"{video.maxrate}k",
        "-bufsize", f"{video.bufsize}k",
        "-c:a", AUDIO_CODEC,
        "-b:a", f"{preset.audio.bitrate}k",
        "-ar", str(SAMPLE_RATE),
        "-ac", str(OUTPUT_CHANNELS),
        # Fragmented MP4 can be written to a non-seekable pipe
        "-movflags", "frag_keyframe+empty_moov",
        "-f", "mp4",
    ]


def build_plan(job: EncodeJob) -> EncodePlan:
    """Build the engine invocation for an encode job without running it."""
    audio_options: tuple[str, ...] = ()
    if job.audio_start_time > 0:
        audio_options = ("-ss", _seconds(job.audio_start_time))

    shift = audio_shift(job.audio_start_time, job.final_offset)

    return EncodePlan(
        inputs=[
            EngineInput(str(job.video.location)),
            EngineInput(str(job.audio.location), audio_options),
        ],
        filters=[audio_filter(shift)],
        output_options=output_options(job.preset),
        shift_seconds=shift,
    )


def encode(
    job: EncodeJob,
    engine: Engine,
    cancel: Optional[threading.Event] = None,
) -> bytes:
    """
    Produce the re-muxed output of an encode job.

    Both sources are probed first so an undecodable input fails before the
    engine starts. The output is returned only once the engine has finished
    successfully; nothing partial is ever returned.

    Raises:
        DecodeError: If the video has no video stream or the audio no audio stream
        EncodeError: If the engine rejects the graph or fails
        JobCancelledError: If cancel is set while encoding
    """
    video_info = probe_media(job.video)
    if not video_info.has_video:
        raise DecodeError("encode", f"No video stream in {job.video.name}")
    audio_info = probe_media(job.audio)
    if not audio_info.has_audio:
        raise DecodeError("encode", f"No audio stream in {job.audio.name}")

    plan = build_plan(job)
    logging.info(
        f"Encoding for {job.preset.name}: audio shift {plan.shift_seconds:+.3f}s, "
        f"video {video_info.duration:.2f}s, audio {audio_info.duration:.2f}s"
    )
    return engine.run(plan.inputs, plan.filters, plan.output_options, cancel=cancel)
