"""FFmpeg command wrappers and helpers."""

from __future__ import annotations

import json
import subprocess
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, cast

__all__ = [
    "FFmpeg",
    "FFmpegError",
    "FFmpegProgress",
    "first_audio_stream",
]


Callback = Callable[["FFmpegProgress"], None]


class FFmpegError(RuntimeError):
    """Raised when FFmpeg exits with a non-zero status."""


@dataclass(slots=True)
class FFmpegProgress:
    """Represents a parsed progress update from FFmpeg."""

    bitrate_kbps: float | None = None
    speed: float | None = None
    out_time: float | None = None
    total_size_kb: float | None = None
    status: str | None = None


class FFmpeg:
    """Lightweight wrapper around FFmpeg and FFprobe commands."""

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout: float | None = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def probe(self, media_path: str | Path) -> dict[str, object]:
        """Return metadata for the provided media file using ffprobe."""
        command = [
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            str(media_path),
        ]
        try:
            result = subprocess.run(  # noqa: S603 - command constructed from trusted input
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise FFmpegError(f"ffprobe timed out on {Path(media_path).name}.") from exc
        if result.returncode != 0:
            raise FFmpegError(
                f"ffprobe failed with code {result.returncode}: {result.stderr.strip()}"
            )
        payload = json.loads(result.stdout or "{}")
        if not isinstance(payload, dict):
            raise FFmpegError("ffprobe did not return a JSON object.")
        return cast(dict[str, object], payload)

    def duration(self, media_path: str | Path) -> float:
        """Return the media duration in seconds, falling back to the first audio stream."""
        metadata = self.probe(media_path)
        format_section = metadata.get("format")
        value: Any = None
        if isinstance(format_section, Mapping):
            value = format_section.get("duration")
        if value is None:
            stream = first_audio_stream(metadata)
            value = stream.get("duration") if stream else None
        try:
            return float(value) if value is not None else 0.0
        except (TypeError, ValueError):
            return 0.0

    def run(
        self,
        args: Sequence[str],
        *,
        progress_callback: Callback | None = None,
        timeout: float | None = None,
    ) -> None:
        """Invoke FFmpeg with the provided arguments."""
        base = [self.ffmpeg_path, "-hide_banner", "-y"]
        if progress_callback:
            base.extend(["-progress", "pipe:1", "-nostats"])
        command = [*base, *args]
        effective_timeout = timeout if timeout is not None else self.timeout

        if progress_callback:
            self._run_with_progress(command, progress_callback, timeout=effective_timeout)
            return

        try:
            result = subprocess.run(  # noqa: S603 - command is constructed from trusted configuration
                command,
                check=False,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise FFmpegError("FFmpeg process timed out.") from exc
        if result.returncode != 0:
            raise FFmpegError(result.stderr.strip())

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _run_with_progress(
        self,
        command: Sequence[str],
        callback: Callback,
        *,
        timeout: float | None,
    ) -> None:
        start_time = time.monotonic()
        process = subprocess.Popen(  # noqa: S603 - command is constructed from trusted configuration
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
        )
        try:
            assert process.stdout is not None
            state = FFmpegProgress()
            while True:
                if timeout is not None and (time.monotonic() - start_time) > timeout:
                    process.kill()
                    raise FFmpegError("FFmpeg process timed out.")

                line = process.stdout.readline()
                if not line:
                    if process.poll() is not None:
                        break
                    time.sleep(0.05)
                    continue

                parsed = self._parse_progress_line(line)
                if not parsed:
                    continue

                key, value = parsed
                self._update_progress(state, key, value)
                if key == "progress":
                    callback(replace(state))
        finally:
            stdout, stderr = process.communicate()
            if process.returncode != 0:
                raise FFmpegError((stderr or stdout or "").strip())

    @staticmethod
    def _parse_progress_line(line: str) -> tuple[str, str] | None:
        line = line.strip()
        if not line or "=" not in line:
            return None
        key, _, value = line.partition("=")
        return key.strip(), value.strip()

    @staticmethod
    def _update_progress(progress: FFmpegProgress, key: str, value: str) -> None:
        if key == "bitrate":
            progress.bitrate_kbps = _parse_bitrate(value)
        elif key == "total_size":
            numeric = _parse_numeric(value)
            progress.total_size_kb = numeric / 1024.0 if numeric is not None else None
        elif key == "speed":
            progress.speed = _parse_speed(value)
        elif key == "out_time":
            progress.out_time = _parse_time(value)
        elif key == "progress":
            progress.status = value


def first_audio_stream(metadata: Mapping[str, object]) -> dict[str, Any] | None:
    """Return the first audio stream entry of an ffprobe payload."""
    streams = metadata.get("streams")
    if not isinstance(streams, list):
        return None
    for stream in streams:
        if isinstance(stream, dict) and stream.get("codec_type") == "audio":
            return stream
    return None


def _parse_bitrate(value: str) -> float | None:
    if value.endswith("kbits/s"):
        try:
            return float(value[:-7])
        except ValueError:
            return None
    return _parse_numeric(value)


def _parse_speed(value: str) -> float | None:
    if value.endswith("x"):
        try:
            return float(value[:-1])
        except ValueError:
            return None
    return _parse_numeric(value)


def _parse_numeric(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None


def _parse_time(value: str) -> float | None:
    try:
        hours, minutes, seconds = value.split(":")
        delta = timedelta(
            hours=int(hours),
            minutes=int(minutes),
            seconds=float(seconds),
        )
        return delta.total_seconds()
    except (ValueError, TypeError):
        return None
