"""Tests for encode plan construction and end-to-end encoding."""

from pathlib import Path

import av
import numpy as np
import pytest

from syncmux import (
    DecodeError,
    EncodeJob,
    MediaKind,
    MediaSource,
    build_plan,
    encode,
    get_preset,
)
from syncmux.encode import audio_filter, audio_shift


def _job(
    final_offset: float,
    audio_start_time: float = 0.0,
    platform: str = "youtube",
    video: Path = Path("video.mp4"),
    audio: Path = Path("audio.wav"),
) -> EncodeJob:
    return EncodeJob(
        video=MediaSource(MediaKind.VIDEO, video),
        audio=MediaSource(MediaKind.AUDIO, audio),
        audio_start_time=audio_start_time,
        final_offset=final_offset,
        preset=get_preset(platform),
    )


def _option(options: list[str], flag: str) -> str:
    return options[options.index(flag) + 1]


class TestAudioFilter:
    """Tests for the single-filter pad/trim chain."""

    def test_negative_offset_trims(self) -> None:
        chain = audio_filter(-0.5)

        assert "atrim=start_sample=24000" in chain
        assert "adelay" not in chain
        assert chain.startswith("[1:a:0]aresample=48000,")
        assert chain.endswith("asetpts=PTS-STARTPTS[outa]")

    def test_positive_offset_pads(self) -> None:
        chain = audio_filter(0.5)

        assert "adelay=delays=24000S:all=1" in chain
        assert "atrim" not in chain

    def test_zero_offset_pads_nothing(self) -> None:
        assert "adelay=delays=0S:all=1" in audio_filter(0.0)

    def test_rounds_to_whole_samples(self) -> None:
        assert "adelay=delays=480S" in audio_filter(0.01)


class TestAudioShift:
    """Tests for folding the start time into the shift."""

    def test_positive_start_is_not_folded(self) -> None:
        assert audio_shift(1.5, -0.2) == -0.2

    def test_negative_start_adds_delay(self) -> None:
        assert audio_shift(-1.0, -0.2) == pytest.approx(0.8)


class TestBuildPlan:
    """Tests for build_plan function."""

    def test_inputs_and_mapping(self) -> None:
        plan = build_plan(_job(-0.5))

        assert [item.location for item in plan.inputs] == ["video.mp4", "audio.wav"]
        assert plan.inputs[1].options == ()
        assert plan.shift_seconds == -0.5
        assert plan.filters == [audio_filter(-0.5)]

        options = plan.output_options
        assert options[:4] == ["-map", "0:v:0", "-map", "[outa]"]

    def test_positive_start_time_seeks_audio(self) -> None:
        plan = build_plan(_job(0.1, audio_start_time=1.5))

        assert plan.inputs[1].options == ("-ss", "1.500")
        assert plan.inputs[0].options == ()
        assert plan.shift_seconds == pytest.approx(0.1)

    def test_negative_start_time_delays_audio(self) -> None:
        plan = build_plan(_job(-0.1, audio_start_time=-0.5))

        assert plan.inputs[1].options == ()
        assert plan.shift_seconds == pytest.approx(0.4)
        assert "adelay=delays=19200S" in plan.filters[0]

    @pytest.mark.parametrize("platform", ["youtube", "niconico", "bilibili"])
    def test_preset_options(self, platform: str) -> None:
        preset = get_preset(platform)

        options = build_plan(_job(0.0, platform=platform)).output_options

        assert _option(options, "-c:v") == "libx264"
        assert _option(options, "-preset") == preset.video.preset
        assert _option(options, "-profile:v") == preset.video.profile
        assert _option(options, "-crf") == str(preset.video.crf)
        assert _option(options, "-pix_fmt") == "yuv420p"
        assert _option(options, "-b:v") == f"{preset.video.bitrate}k"
        assert _option(options, "-maxrate") == f"{preset.video.maxrate}k"
        assert _option(options, "-bufsize") == f"{preset.video.bufsize}k"
        assert _option(options, "-c:a") == "aac"
        assert _option(options, "-b:a") == f"{preset.audio.bitrate}k"
        assert _option(options, "-ar") == "48000"
        assert _option(options, "-ac") == "2"
        assert _option(options, "-f") == "mp4"


class TestEncodeValidation:
    """Tests for input checks before the engine runs."""

    def test_video_without_video_stream(
        self, synthetic_audio: Path, fake_engine
    ) -> None:
        job = _job(0.0, video=synthetic_audio, audio=synthetic_audio)

        with pytest.raises(DecodeError):
            encode(job, fake_engine)

        assert fake_engine.calls == []

    def test_audio_without_audio_stream(
        self, synthetic_video: Path, video_only: Path, fake_engine
    ) -> None:
        job = _job(0.0, video=synthetic_video, audio=video_only)

        with pytest.raises(DecodeError):
            encode(job, fake_engine)

        assert fake_engine.calls == []

    def test_runs_engine_with_plan(
        self, synthetic_video: Path, synthetic_audio: Path, fake_engine
    ) -> None:
        job = _job(-0.5, video=synthetic_video, audio=synthetic_audio)

        assert encode(job, fake_engine) == fake_engine.output
        inputs, filters, options = fake_engine.calls[0]
        plan = build_plan(job)
        assert (inputs, filters, options) == (plan.inputs, plan.filters, plan.output_options)


def _decode_output(path: Path) -> tuple[int, np.ndarray]:
    """Return (video frame count, first-channel audio samples)."""
    with av.open(str(path)) as container:
        frames = sum(1 for _ in container.decode(video=0))
    with av.open(str(path)) as container:
        resampler = av.AudioResampler(format="fltp", rate=48000)
        chunks = []
        for frame in container.decode(audio=0):
            for resampled in resampler.resample(frame):
                chunks.append(resampled.to_ndarray()[0])
    return frames, np.concatenate(chunks)


class TestEncodeEndToEnd:
    """Encode with a real ffmpeg and inspect the result."""

    def _encode(self, engine, video: Path, audio: Path, final_offset: float, tmp_path: Path) -> Path:
        output = encode(
            _job(final_offset, platform="niconico", video=video, audio=audio), engine
        )
        path = tmp_path / "output.mp4"
        path.write_bytes(output)
        return path

    def test_trim_half_second(
        self, ffmpeg_engine, synthetic_video: Path, synthetic_audio: Path, tmp_path: Path
    ) -> None:
        """finalOffset -0.5 removes 0.5s from the front of the audio."""
        path = self._encode(ffmpeg_engine, synthetic_video, synthetic_audio, -0.5, tmp_path)

        frames, audio = _decode_output(path)

        assert abs(frames - 250) <= 2, f"Video has {frames} frames, expected 250"
        assert len(audio) / 48000 == pytest.approx(9.5, abs=0.06)

    def test_pad_half_second(
        self, ffmpeg_engine, synthetic_video: Path, synthetic_audio: Path, tmp_path: Path
    ) -> None:
        """finalOffset +0.5 inserts 0.5s of silence before the audio."""
        path = self._encode(ffmpeg_engine, synthetic_video, synthetic_audio, 0.5, tmp_path)

        frames, audio = _decode_output(path)

        assert abs(frames - 250) <= 2
        assert len(audio) / 48000 == pytest.approx(10.5, abs=0.06)
        # Silent lead-in, then the signal
        assert np.max(np.abs(audio[2400:21600])) < 0.02
        assert np.max(np.abs(audio[26400:72000])) > 0.1
