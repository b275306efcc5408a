"""Runtime configuration read from SYNCMUX_* environment variables."""

from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .engine import FfmpegEngine, resolve_ffmpeg_path
from .models import LagDomain
from .storage import BlobStore, HttpBlobStore, LocalBlobStore


class Settings(BaseSettings):
    """Service settings.

    The ffmpeg location is resolved once here and handed to the engine,
    never looked up again per job.
    """

    model_config = SettingsConfigDict(
        env_prefix="SYNCMUX_", env_file=".env", extra="ignore"
    )

    ffmpeg_path: Optional[str] = None
    engine_timeout: Optional[float] = Field(default=None, gt=0)
    work_dir: Optional[Path] = None
    blob_dir: Path = Path("blobs")
    blob_base_url: Optional[str] = None
    blob_token: Optional[str] = None
    public_base_url: Optional[str] = None
    upload_attempts: int = Field(default=3, ge=1)
    upload_backoff: float = Field(default=1.0, ge=0)
    lag_domain: LagDomain = LagDomain.DECIMATED
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _resolve_ffmpeg(self) -> "Settings":
        self.ffmpeg_path = resolve_ffmpeg_path(self.ffmpeg_path)
        return self


def build_engine(settings: Settings) -> FfmpegEngine:
    return FfmpegEngine(settings.ffmpeg_path or "ffmpeg", timeout=settings.engine_timeout)


def build_blob_store(settings: Settings) -> BlobStore:
    """HTTP store when a base URL is configured, local directory otherwise."""
    if settings.blob_base_url:
        return HttpBlobStore(
            settings.blob_base_url,
            token=settings.blob_token,
            max_attempts=settings.upload_attempts,
            backoff=settings.upload_backoff,
        )
    return LocalBlobStore(settings.blob_dir, public_base_url=settings.public_base_url)
