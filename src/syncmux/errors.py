"""Exceptions raised by the synchronization pipeline."""

from typing import Optional


class SyncMuxError(Exception):
    """Base error carrying the pipeline stage it was raised in."""

    status_code = 500
    label = "Processing failed"

    def __init__(self, stage: str, message: str, details: Optional[str] = None):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message
        self.details = details or message

    def to_payload(self) -> dict[str, str]:
        return {"error": self.label, "details": self.details, "stage": self.stage}


class InputMissingError(SyncMuxError):
    """A required video or audio source was not supplied."""

    status_code = 400
    label = "Both a video and an audio file are required"


class InvalidRequestError(SyncMuxError):
    """A request parameter is malformed or out of range."""

    status_code = 400
    label = "Invalid request"


class DecodeError(SyncMuxError):
    """A source could not be opened or decoded."""

    status_code = 422
    label = "Media could not be decoded"


class InvalidPlatformError(SyncMuxError):
    """The requested platform has no preset."""

    status_code = 400
    label = "Unknown platform"


class EncodeError(SyncMuxError):
    """The encoding engine rejected the filter graph or failed."""

    status_code = 500
    label = "Encoding failed"


class StorageError(SyncMuxError):
    """Uploading to or reading from the blob store failed."""

    status_code = 502
    label = "Storage failed"


class JobCancelledError(SyncMuxError):
    """The job was cancelled before it finished."""

    status_code = 499
    label = "Job cancelled"
