"""Blob storage collaborators and per-job temporary workspaces."""

import logging
import os
import secrets
import shutil
import tempfile
import time
from pathlib import Path
from typing import Optional, Protocol

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .errors import StorageError

logger = logging.getLogger(__name__)


def unique_name(prefix: str, suffix: str = "") -> str:
    """Name unique across concurrent jobs: millisecond timestamp plus random hex."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(6)}{suffix}"


class BlobStore(Protocol):
    """Stores bytes under a name and returns a URL for them."""

    def put(self, name: str, data: bytes) -> str: ...


class LocalBlobStore:
    """Blob store backed by a local directory."""

    def __init__(self, root: Path, public_base_url: Optional[str] = None):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def put(self, name: str, data: bytes) -> str:
        stored = unique_name(Path(name).stem, Path(name).suffix)
        target = self.root / stored
        # Write beside the target and rename so readers never see a partial blob
        tmp = target.with_name(f".{stored}.part")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as exc:
            if tmp.exists():
                tmp.unlink()
            raise StorageError("storage", f"Cannot write {target}: {exc}") from exc

        logging.debug(f"Stored {len(data)} bytes as {target}")
        if self.public_base_url:
            return f"{self.public_base_url}/{stored}"
        return target.resolve().as_uri()


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


class HttpBlobStore:
    """
    Blob store reached over HTTP: PUT {base_url}/{name} with the raw bytes.

    The URL is taken from a JSON {"url": ...} response body when present,
    otherwise the upload URL itself is returned. Transport errors and 5xx
    responses are retried up to max_attempts times with exponential backoff;
    other failures are not retried.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        max_attempts: int = 3,
        backoff: float = 1.0,
        client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._client = client or httpx.Client(timeout=timeout)

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff, max=30),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def put(self, name: str, data: bytes) -> str:
        stored = unique_name(Path(name).stem, Path(name).suffix)
        headers = {"content-type": "application/octet-stream"}
        if self.token:
            headers["authorization"] = f"Bearer {self.token}"

        try:
            for attempt in self._retrying():
                with attempt:
                    response = self._client.put(
                        f"{self.base_url}/{stored}", content=data, headers=headers
                    )
                    response.raise_for_status()
        except httpx.HTTPError as exc:
            raise StorageError("storage", f"Upload of {stored} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and payload.get("url"):
            return str(payload["url"])
        return str(response.request.url)

    def close(self) -> None:
        self._client.close()


class JobWorkspace:
    """Temporary directory owned by a single job, removed when the job ends."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else None
        self.path: Optional[Path] = None

    def __enter__(self) -> "JobWorkspace":
        if self.base_dir is not None:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        self.path = Path(
            tempfile.mkdtemp(prefix=unique_name("job") + "_", dir=self.base_dir)
        )
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.path is not None:
            shutil.rmtree(self.path, ignore_errors=True)
            self.path = None

    def file(self, prefix: str, suffix: str = "") -> Path:
        """Path for a new file in the workspace; nothing is created."""
        if self.path is None:
            raise RuntimeError("Workspace is not open")
        return self.path / unique_name(prefix, suffix)
