"""FastAPI ingress for the analyze and process modes.

A single multipart endpoint accepts the video, the audio track and the
alignment parameters. Uploads are written to a per-job workspace, the job
runs in a worker thread, and the job is cancelled (its engine process
killed) when the client disconnects.
"""

import asyncio
import base64
import logging
import threading
from pathlib import Path
from typing import Callable, Optional, TypeVar

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, build_blob_store, build_engine
from .engine import Engine
from .errors import InputMissingError, InvalidRequestError, SyncMuxError
from .models import MediaKind, MediaSource
from .pipeline import analyze, process
from .presets import get_preset
from .storage import BlobStore, JobWorkspace

T = TypeVar("T")

UPLOAD_CHUNK_SIZE = 1024 * 1024
DISCONNECT_POLL_INTERVAL = 0.5
MODES = ("analyze", "process")


def _suffix(filename: Optional[str], default: str) -> str:
    suffix = Path(filename or "").suffix.lower()
    return suffix if suffix and len(suffix) <= 6 else default


async def _save_upload(upload: UploadFile, path: Path) -> None:
    with path.open("wb") as fh:
        while True:
            chunk = await upload.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            await run_in_threadpool(fh.write, chunk)
    if path.stat().st_size == 0:
        raise InputMissingError("ingress", f"Uploaded file {upload.filename!r} is empty")


async def _platform_field(request: Request, platform: Optional[str]) -> Optional[str]:
    """Platform as sent: None only when the field is absent, "" when sent empty."""
    if platform is not None:
        return platform
    form = await request.form()
    raw = form.get("platform")
    return None if raw is None else str(raw)


async def _watch_disconnect(request: Request, cancel: threading.Event) -> None:
    while not cancel.is_set():
        if await request.is_disconnected():
            logging.warning("Client disconnected, cancelling job")
            cancel.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def _run_cancellable(request: Request, func: Callable[[threading.Event], T]) -> T:
    """Run a blocking job in a worker thread, cancelling it if the client goes away."""
    cancel = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel))
    try:
        return await run_in_threadpool(func, cancel)
    finally:
        # Also stops the worker when this request task itself is cancelled
        cancel.set()
        watcher.cancel()


def _b64(data: Optional[bytes]) -> str:
    return base64.b64encode(data).decode("ascii") if data else ""


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[Engine] = None,
    store: Optional[BlobStore] = None,
) -> FastAPI:
    """Build the application with injected engine and blob store."""
    settings = settings or Settings()
    engine = engine or build_engine(settings)
    store = store or build_blob_store(settings)

    app = FastAPI(
        title="syncmux",
        description="Align a separately mixed audio track to a video and re-mux it",
        version=__version__,
    )

    @app.exception_handler(SyncMuxError)
    async def _pipeline_error(request: Request, exc: SyncMuxError) -> JSONResponse:
        logging.error(f"Job failed in {exc.stage}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "details": details, "stage": "ingress"},
        )

    @app.get("/health/live")
    async def health_live() -> dict[str, str]:
        return {"status": "alive", "service": "syncmux"}

    @app.post("/api/encode/process")
    async def encode_process(
        request: Request,
        video: Optional[UploadFile] = File(None),
        audio: Optional[UploadFile] = File(None),
        mode: Optional[str] = Form(None),
        audio_start_time: float = Form(0.0, alias="audioStartTime"),
        offset: float = Form(0.0),
        platform: Optional[str] = Form(None),
    ) -> dict:
        if video is None or audio is None:
            raise InputMissingError("ingress", "Both 'video' and 'audio' files are required")
        if mode not in MODES:
            raise InvalidRequestError("ingress", f"Unknown mode {mode!r} (expected analyze or process)")
        if mode == "process":
            # Reject unknown platforms before touching the uploads
            platform = await _platform_field(request, platform)
            get_preset(platform)

        with JobWorkspace(settings.work_dir) as workspace:
            video_path = workspace.file("input", _suffix(video.filename, ".mp4"))
            audio_path = workspace.file("input", _suffix(audio.filename, ".wav"))
            await _save_upload(video, video_path)
            await _save_upload(audio, audio_path)

            video_source = MediaSource(MediaKind.VIDEO, video_path)
            audio_source = MediaSource(MediaKind.AUDIO, audio_path)

            if mode == "analyze":
                result = await _run_cancellable(
                    request,
                    lambda cancel: analyze(
                        video_source,
                        audio_source,
                        audio_start_time=audio_start_time,
                        lag_domain=settings.lag_domain,
                        cancel=cancel,
                    ),
                )
                return {
                    "videoWaveform": _b64(result.video_waveform),
                    "audioWaveform": _b64(result.audio_waveform),
                    "suggestedOffset": result.suggested_offset,
                    "correlation": result.estimate.correlation,
                }

            output = await _run_cancellable(
                request,
                lambda cancel: process(
                    video_source,
                    audio_source,
                    engine,
                    audio_start_time=audio_start_time,
                    suggested_offset=offset,
                    platform=platform,
                    cancel=cancel,
                ),
            )

        url = await run_in_threadpool(store.put, "output.mp4", output)
        logging.info(f"Stored output at {url}")
        return {"success": True, "url": url, "message": "Video processing finished"}

    return app
