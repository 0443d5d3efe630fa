"""Join processed segments into the final tagged program file."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from radio_builder.config.settings import MixSettings, ProgramMetadata
from radio_builder.exceptions import AssembleError
from radio_builder.utils.ffmpeg import FFmpeg, FFmpegError

from .encoding import AudioEncoding
from .mixer import crossfade_chain, log_progress

__all__ = ["AssembledProgram", "ProgramAssembler"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AssembledProgram:
    path: Path
    duration_seconds: float
    size_bytes: int


class ProgramAssembler:
    """Concatenates segments with the mixer's crossfade and embeds descriptive tags."""

    def __init__(
        self,
        encoding: AudioEncoding,
        settings: MixSettings | None = None,
        metadata: ProgramMetadata | None = None,
        *,
        ffmpeg: FFmpeg | None = None,
    ) -> None:
        self.encoding = encoding
        self.settings = settings or MixSettings()
        self.metadata = metadata or ProgramMetadata()
        self.ffmpeg = ffmpeg or FFmpeg()

    def metadata_args(self, title: str, year: int) -> list[str]:
        return [
            "-metadata",
            f"title={title}",
            "-metadata",
            f"artist={self.metadata.artist}",
            "-metadata",
            f"album={self.metadata.album}",
            "-metadata",
            f"date={year}",
        ]

    def build_command(
        self,
        segment_paths: Sequence[Path],
        output_path: Path,
        *,
        title: str,
        year: int,
    ) -> list[str]:
        args: list[str] = []
        for path in segment_paths:
            args.extend(["-i", str(path)])
        args.extend(
            [
                "-filter_complex",
                crossfade_chain(len(segment_paths), self.settings.crossfade_seconds, "out"),
                "-map",
                "[out]",
                *self.encoding.output_args(),
                *self.metadata_args(title, year),
                str(output_path),
            ]
        )
        return args

    def assemble(
        self,
        segment_paths: Sequence[Path],
        output_path: Path,
        *,
        world: str,
        program_id: int,
    ) -> AssembledProgram:
        """Write the program to ``output_path`` and report its duration and size."""
        if not segment_paths:
            raise AssembleError("Cannot assemble a program without segments.")
        output = Path(output_path)
        title = self.metadata.title(world, program_id)
        logger.info("Assembling %d segment(s) into %s", len(segment_paths), output.name)
        command = self.build_command(
            segment_paths, output, title=title, year=datetime.now().year
        )
        logger.debug("ffmpeg %s", " ".join(command))
        try:
            self.ffmpeg.run(command, progress_callback=log_progress(output.name))
            duration = self.ffmpeg.duration(output)
        except FFmpegError as exc:
            output.unlink(missing_ok=True)
            raise AssembleError(f"Failed to assemble {output.name}: {exc}") from exc

        if not output.exists():
            raise AssembleError(f"Assembly produced no file at {output}.")
        size = output.stat().st_size
        logger.info("Assembled %s (%.1fs, %d bytes)", output.name, duration, size)
        return AssembledProgram(path=output, duration_seconds=duration, size_bytes=size)
