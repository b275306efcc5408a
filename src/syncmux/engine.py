"""External decode/encode engine invoked as a subprocess."""

import logging
import shlex
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence

from .errors import EncodeError, JobCancelledError

# Lines of engine stderr kept in error details
STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class EngineInput:
    """One engine input and the options that apply to it."""

    location: str
    options: tuple[str, ...] = field(default_factory=tuple)


class Engine(Protocol):
    """Anything that can run a filter graph over inputs and return the output bytes."""

    def run(
        self,
        inputs: Sequence[EngineInput],
        filters: Sequence[str],
        output_options: Sequence[str],
        cancel: Optional[threading.Event] = None,
    ) -> bytes: ...


def resolve_ffmpeg_path(configured: Optional[str] = None) -> str:
    """Pick the ffmpeg executable: explicit setting, then PATH lookup."""
    if configured:
        return configured
    return shutil.which("ffmpeg") or "ffmpeg"


def _stderr_tail(stderr: bytes) -> str:
    lines = stderr.decode("utf-8", errors="replace").strip().splitlines()
    return "\n".join(lines[-STDERR_TAIL_LINES:])


class FfmpegEngine:
    """
    Engine backed by an ffmpeg executable writing its output to a pipe.

    The process only lives inside run(): it is killed on every exit path,
    including cancellation, timeouts and errors.
    """

    def __init__(
        self,
        executable: str = "ffmpeg",
        poll_interval: float = 0.2,
        timeout: Optional[float] = None,
    ):
        self.executable = executable
        self.poll_interval = poll_interval
        self.timeout = timeout

    def build_command(
        self,
        inputs: Sequence[EngineInput],
        filters: Sequence[str],
        output_options: Sequence[str],
    ) -> list[str]:
        cmd = [self.executable, "-hide_banner", "-nostdin", "-loglevel", "error"]
        for item in inputs:
            cmd.extend(item.options)
            cmd.extend(["-i", item.location])
        if filters:
            cmd.extend(["-filter_complex", ";".join(filters)])
        cmd.extend(output_options)
        cmd.append("pipe:1")
        return cmd

    def run(
        self,
        inputs: Sequence[EngineInput],
        filters: Sequence[str],
        output_options: Sequence[str],
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """
        Run the engine and collect everything it writes to stdout.

        Raises:
            EncodeError: If the engine cannot start, exits non-zero, times
                out or writes nothing
            JobCancelledError: If cancel is set before the engine finishes
        """
        cmd = self.build_command(inputs, filters, output_options)
        logging.debug(f"Running engine: {shlex.join(cmd)}")
        started = time.monotonic()

        try:
            with subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            ) as proc:
                try:
                    stdout, stderr = self._communicate(proc, cancel, started)
                finally:
                    if proc.poll() is None:
                        logging.debug(f"Killing engine process {proc.pid}")
                        proc.kill()
                        proc.communicate()
        except OSError as exc:
            raise EncodeError("engine", f"Cannot run {self.executable}: {exc}") from exc

        elapsed = time.monotonic() - started
        if proc.returncode != 0:
            raise EncodeError(
                "engine",
                f"{self.executable} exited with status {proc.returncode}",
                details=_stderr_tail(stderr) or f"exit status {proc.returncode}",
            )
        if not stdout:
            raise EncodeError("engine", f"{self.executable} produced no output")

        logging.debug(f"Engine finished in {elapsed:.2f}s, {len(stdout)} bytes")
        return stdout

    def _communicate(
        self,
        proc: subprocess.Popen,
        cancel: Optional[threading.Event],
        started: float,
    ) -> tuple[bytes, bytes]:
        # communicate() can be retried after a timeout without losing output
        while True:
            try:
                return proc.communicate(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    raise JobCancelledError("engine", "Engine run was cancelled") from None
                if self.timeout is not None and time.monotonic() - started > self.timeout:
                    raise EncodeError(
                        "engine", f"Engine run timed out after {self.timeout:.0f}s"
                    ) from None
