"""Synthesise silent clips that stand in for missing system assets."""

from __future__ import annotations

import logging
from pathlib import Path

from radio_builder.exceptions import PlaceholderError
from radio_builder.utils.ffmpeg import FFmpeg, FFmpegError

from .encoding import AudioEncoding

__all__ = ["PlaceholderGenerator"]

logger = logging.getLogger(__name__)


class PlaceholderGenerator:
    """Generates silence directly in the canonical encoding."""

    def __init__(self, encoding: AudioEncoding, *, ffmpeg: FFmpeg | None = None) -> None:
        self.encoding = encoding
        self.ffmpeg = ffmpeg or FFmpeg()

    def build_command(self, path: Path, duration_seconds: float) -> list[str]:
        source = (
            f"anullsrc=channel_layout={self.encoding.channel_layout}"
            f":sample_rate={self.encoding.sample_rate}"
        )
        return [
            "-f",
            "lavfi",
            "-t",
            f"{duration_seconds:g}",
            "-i",
            source,
            *self.encoding.output_args(),
            str(path),
        ]

    def generate_silence(self, path: Path, duration_seconds: float) -> None:
        """Write ``duration_seconds`` of silence to ``path``."""
        if duration_seconds <= 0:
            raise PlaceholderError(f"Silence duration must be positive, got {duration_seconds}.")
        logger.info("Generating %gs silent placeholder %s", duration_seconds, Path(path).name)
        target = Path(path)
        try:
            self.ffmpeg.run(self.build_command(target, duration_seconds))
        except FFmpegError as exc:
            target.unlink(missing_ok=True)
            raise PlaceholderError(f"Failed to generate silence for {target.name}: {exc}") from exc
