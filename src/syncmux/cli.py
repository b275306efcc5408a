"""Command-line interface for syncmux."""

import argparse
import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from . import __version__
from .config import Settings, build_engine
from .correlation import MAX_LAG_SECONDS
from .errors import SyncMuxError
from .models import ANALYSIS_WINDOW, LagDomain, MediaKind, MediaSource
from .pipeline import analyze, process
from .presets import DEFAULT_PLATFORM, Platform


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("video", type=Path, help="Source video")
    parser.add_argument("audio", type=Path, help="Separately mixed audio track")
    parser.add_argument(
        "-s",
        "--audio-start-time",
        type=float,
        default=0.0,
        help="Audio start time in seconds, between -3 and 3 (default: 0)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="""\
Align a separately mixed audio track to a video and re-mux it.

analyze  estimates the audio offset by cross-correlating both soundtracks
         and can write waveform previews of the compared windows.
process  encodes the video with the audio shifted by the offset, using the
         codec settings of a target platform.
serve    runs the HTTP API.
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    analyze_parser = commands.add_parser("analyze", help="Estimate the audio offset")
    _add_source_arguments(analyze_parser)
    analyze_parser.add_argument(
        "-w",
        "--window",
        type=float,
        default=ANALYSIS_WINDOW,
        help=f"Analyzed window length in seconds (default: {ANALYSIS_WINDOW})",
    )
    analyze_parser.add_argument(
        "--max-lag",
        type=float,
        default=MAX_LAG_SECONDS,
        help=f"Largest offset searched in seconds (default: {MAX_LAG_SECONDS})",
    )
    analyze_parser.add_argument(
        "--lag-domain",
        type=LagDomain,
        choices=list(LagDomain),
        default=LagDomain.DECIMATED,
        metavar="{decimated,reference}",
        help="Lag search: decimated (default) or reference (legacy 48 kHz "
        "bound and reversed offset sign)",
    )
    analyze_parser.add_argument(
        "--waveform-dir",
        type=Path,
        help="Write video.png and audio.png waveform previews here",
    )

    process_parser = commands.add_parser("process", help="Encode the synchronized video")
    _add_source_arguments(process_parser)
    process_parser.add_argument(
        "-f",
        "--offset",
        type=float,
        help="Suggested offset in seconds (default: run analyze first)",
    )
    process_parser.add_argument(
        "-p",
        "--platform",
        choices=[p.value for p in Platform],
        default=DEFAULT_PLATFORM.value,
        help=f"Target platform preset (default: {DEFAULT_PLATFORM.value})",
    )
    process_parser.add_argument(
        "-o", "--output", type=Path, required=True, help="Output MP4 path"
    )
    process_parser.add_argument(
        "--ffmpeg", help="ffmpeg executable (default: SYNCMUX_FFMPEG_PATH or PATH)"
    )

    serve_parser = commands.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )

    return parser


def _check_inputs(args: argparse.Namespace) -> None:
    if not args.video.exists():
        logging.error(f"Video not found: {args.video}")
        sys.exit(1)
    if not args.audio.exists():
        logging.error(f"Audio not found: {args.audio}")
        sys.exit(1)


def _run_analyze(args: argparse.Namespace) -> dict:
    result = analyze(
        MediaSource(MediaKind.VIDEO, args.video),
        MediaSource(MediaKind.AUDIO, args.audio),
        audio_start_time=args.audio_start_time,
        window=args.window,
        max_lag_seconds=args.max_lag,
        lag_domain=args.lag_domain,
        quiet=not args.verbose,
    )

    waveforms = {}
    if args.waveform_dir:
        args.waveform_dir.mkdir(parents=True, exist_ok=True)
        for label, data in (
            ("video", result.video_waveform),
            ("audio", result.audio_waveform),
        ):
            if data:
                path = args.waveform_dir / f"{label}.png"
                path.write_bytes(data)
                waveforms[label] = str(path)

    return {
        "suggested_offset": result.suggested_offset,
        "lag": result.estimate.lag,
        "correlation": result.estimate.correlation,
        "lag_domain": result.estimate.lag_domain.value,
        "waveforms": waveforms,
        "settings": {
            "audio_start_time": args.audio_start_time,
            "window": args.window,
            "max_lag": args.max_lag,
        },
    }


def _run_process(args: argparse.Namespace) -> dict:
    settings = Settings(ffmpeg_path=args.ffmpeg) if args.ffmpeg else Settings()
    video = MediaSource(MediaKind.VIDEO, args.video)
    audio = MediaSource(MediaKind.AUDIO, args.audio)

    offset = args.offset
    if offset is None:
        offset = analyze(
            video,
            audio,
            audio_start_time=args.audio_start_time,
            lag_domain=settings.lag_domain,
            quiet=not args.verbose,
        ).suggested_offset
        logging.debug(f"Using suggested offset {offset:+.4f}s")

    output = process(
        video,
        audio,
        build_engine(settings),
        audio_start_time=args.audio_start_time,
        suggested_offset=offset,
        platform=args.platform,
    )

    # Never leave a partial file at the output path
    args.output.parent.mkdir(parents=True, exist_ok=True)
    partial = args.output.with_name(f".{args.output.name}.part")
    partial.write_bytes(output)
    os.replace(partial, args.output)

    return {
        "output": str(args.output),
        "bytes": len(output),
        "suggested_offset": offset,
        "platform": args.platform,
    }


def _run_serve(args: argparse.Namespace) -> None:
    import uvicorn

    from .server import create_app

    settings = Settings()
    if not args.verbose:
        logging.getLogger().setLevel(settings.log_level.upper())
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


def main() -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    if args.command == "serve":
        _run_serve(args)
        return

    _check_inputs(args)
    start_time = datetime.now()

    try:
        if args.command == "analyze":
            output = _run_analyze(args)
        else:
            output = _run_process(args)
    except SyncMuxError as exc:
        logging.error(f"{exc.stage} failed: {exc.details}")
        sys.exit(1)

    compute_time = (datetime.now() - start_time).total_seconds()
    logging.debug(f"Computation finished in {compute_time:.2f} seconds")

    output = {
        "date": datetime.now().isoformat(),
        "video": str(args.video),
        "audio": str(args.audio),
        **output,
        "compute_time": compute_time,
    }
    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
