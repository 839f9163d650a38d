"""
Runs ffmpeg to turn an M3U8 stream (or any local media file) into a video
file, reporting progress and honouring cooperative cancellation.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Callable, Protocol

from m3u8_cli.exceptions import ConversionCancelledError, ConversionError
from m3u8_cli.models.config import CPU_VIDEO_CODEC, AppConfig
from m3u8_cli.utils.formatting import parse_timestamp

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, timedelta, timedelta], None]

_DURATION_RE = re.compile(r"Duration:\s*(\d+:\d{2}:\d{2}(?:\.\d+)?)")
_ERROR_HINTS = ("error", "invalid", "failed", "not found", "denied", "refused")


class ConversionEngine(Protocol):
    """
    Anything that can convert a source into a destination file.

    Implementations must check `cancel_event` while they work and raise
    `ConversionCancelledError` once they have stopped because of it.
    Any other failure is reported as `ConversionError`.
    """

    async def convert(
        self,
        source_uri: str,
        destination: Path,
        cancel_event: asyncio.Event,
        on_progress: ProgressCallback,
    ) -> None: ...


@dataclass
class _ProgressState:
    total: timedelta = timedelta(0)
    position: timedelta = timedelta(0)
    last_error: str | None = None
    last_line: str | None = None

    @property
    def percent(self) -> int:
        if self.total <= timedelta(0):
            return 0
        return max(0, min(100, int(self.position / self.total * 100)))


class FFmpegConverter:
    """Conversion engine backed by an ffmpeg subprocess."""

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        video_codec: str = CPU_VIDEO_CODEC,
        terminate_timeout: float = 5.0,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.video_codec = video_codec
        self.terminate_timeout = terminate_timeout

    @classmethod
    def from_config(cls, config: AppConfig) -> "FFmpegConverter":
        return cls(
            ffmpeg_path=config.ffmpeg_path,
            video_codec=config.effective_video_codec,
        )

    def build_command(self, source_uri: str, destination: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostats",
            "-y",
            "-i",
            source_uri,
            "-c:v",
            self.video_codec,
            "-progress",
            "pipe:1",
            str(destination),
        ]

    async def convert(
        self,
        source_uri: str,
        destination: Path,
        cancel_event: asyncio.Event,
        on_progress: ProgressCallback,
    ) -> None:
        """
        Converts `source_uri` into `destination`.

        Raises:
            ConversionCancelledError: `cancel_event` was set before ffmpeg exited.
            ConversionError: ffmpeg could not be launched or exited with an error.
        """
        cmd = self.build_command(source_uri, destination)
        log.debug(f"Running: [dim]{' '.join(cmd)}[/dim]")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ConversionError(
                f"ffmpeg executable not found: '{self.ffmpeg_path}'"
            ) from e
        except OSError as e:
            raise ConversionError(f"Could not launch ffmpeg: {e}") from e

        state = _ProgressState()
        readers = [
            asyncio.create_task(self._read_progress(process.stdout, state, on_progress)),
            asyncio.create_task(self._read_diagnostics(process.stderr, state)),
        ]
        waiter = asyncio.create_task(process.wait())
        canceller = asyncio.create_task(cancel_event.wait())

        try:
            done, _ = await asyncio.wait(
                {waiter, canceller}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await self._terminate(process)
            waiter.cancel()
            for reader in readers:
                reader.cancel()
            self._remove_partial(destination)
            raise
        finally:
            canceller.cancel()

        if waiter not in done:
            await self._terminate(process)
            await asyncio.gather(*readers, return_exceptions=True)
            self._remove_partial(destination)
            raise ConversionCancelledError(
                f"Conversion to '{destination.name}' was cancelled."
            )

        await asyncio.gather(*readers, return_exceptions=True)
        if process.returncode != 0:
            self._remove_partial(destination)
            detail = state.last_error or state.last_line
            raise ConversionError(
                f"ffmpeg exited with code {process.returncode}"
                + (f": {detail}" if detail else "")
            )

        on_progress(100, state.position or state.total, state.total)

    async def _read_progress(
        self,
        stream: asyncio.StreamReader,
        state: _ProgressState,
        on_progress: ProgressCallback,
    ) -> None:
        """Parses the key=value blocks ffmpeg writes with `-progress pipe:1`."""
        while line := await stream.readline():
            key, sep, value = line.decode("utf-8", "replace").strip().partition("=")
            if not sep:
                continue
            if key in ("out_time_us", "out_time_ms"):
                # Both keys carry microseconds
                try:
                    state.position = timedelta(microseconds=int(value))
                except ValueError:
                    pass
            elif key == "out_time":
                if (parsed := parse_timestamp(value)) is not None:
                    state.position = parsed
            elif key == "progress":
                on_progress(state.percent, state.position, state.total)

    async def _read_diagnostics(
        self, stream: asyncio.StreamReader, state: _ProgressState
    ) -> None:
        """Picks the input duration and the most recent error out of stderr."""
        while line := await stream.readline():
            text = line.decode("utf-8", "replace").strip()
            if not text:
                continue
            state.last_line = text
            if not state.total and (match := _DURATION_RE.search(text)):
                state.total = parse_timestamp(match.group(1)) or timedelta(0)
                log.debug(f"Input duration: {match.group(1)}")
            elif any(hint in text.lower() for hint in _ERROR_HINTS):
                state.last_error = text

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.terminate_timeout)
        except asyncio.TimeoutError:
            log.debug("ffmpeg did not exit after terminate, killing it.")
            process.kill()
            await process.wait()

    @staticmethod
    def _remove_partial(destination: Path) -> None:
        try:
            destination.unlink(missing_ok=True)
        except OSError as e:
            log.warning(f"[yellow]Could not remove partial file {destination}:[/] {e}")
