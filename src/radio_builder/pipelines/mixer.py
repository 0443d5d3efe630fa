"""Mix the answers to one question over a quiet background track."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from radio_builder.config.settings import MixSettings
from radio_builder.exceptions import MixError
from radio_builder.utils.ffmpeg import FFmpeg, FFmpegError, FFmpegProgress

from .encoding import AudioEncoding

__all__ = ["SegmentMixer", "crossfade_chain", "log_progress"]

logger = logging.getLogger(__name__)


def crossfade_chain(count: int, crossfade_seconds: float, output_label: str) -> str:
    """Return a filter graph joining inputs ``0..count-1`` in order with crossfades.

    A single input is passed through with ``anull``; a zero crossfade falls back to
    plain concatenation.
    """
    if count < 1:
        raise ValueError("At least one input is required.")
    if count == 1:
        return f"[0:a]anull[{output_label}]"
    if crossfade_seconds <= 0:
        inputs = "".join(f"[{index}:a]" for index in range(count))
        return f"{inputs}concat=n={count}:v=0:a=1[{output_label}]"

    parts = []
    previous = "[0:a]"
    for index in range(1, count):
        label = f"[{output_label}]" if index == count - 1 else f"[xf{index}]"
        parts.append(f"{previous}[{index}:a]acrossfade=d={crossfade_seconds:g}{label}")
        previous = label
    return ";".join(parts)


def log_progress(label: str):
    """Return an ffmpeg progress callback that logs at DEBUG."""

    def _callback(progress: FFmpegProgress) -> None:
        if progress.out_time is not None:
            logger.debug("%s: %.1fs encoded (%s)", label, progress.out_time, progress.status)

    return _callback


class SegmentMixer:
    """Concatenates answer clips and overlays the background at a fixed low volume."""

    def __init__(
        self,
        encoding: AudioEncoding,
        settings: MixSettings | None = None,
        *,
        ffmpeg: FFmpeg | None = None,
    ) -> None:
        self.encoding = encoding
        self.settings = settings or MixSettings()
        self.ffmpeg = ffmpeg or FFmpeg()

    def filter_graph(self, answer_count: int) -> str:
        """Build the answers + background graph; the background input comes last."""
        answers = crossfade_chain(answer_count, self.settings.crossfade_seconds, "answers")
        channels = self.encoding.channels
        volume = f"{self.settings.background_volume:g}"
        # After amerge the voice owns channels [0, channels) and the background the rest.
        layout = "stereo" if channels == 2 else "mono"
        weights = "|".join(
            f"c{ch}<c{ch}+{volume}*c{ch + channels}" for ch in range(channels)
        )
        overlay = f"[answers][{answer_count}:a]amerge=inputs=2,pan={layout}|{weights}[out]"
        return f"{answers};{overlay}"

    def build_command(
        self, answer_paths: Sequence[Path], background_path: Path, output_path: Path
    ) -> list[str]:
        args: list[str] = []
        for path in answer_paths:
            args.extend(["-i", str(path)])
        # Loop the background so it always outlasts the answers; amerge stops at the shorter.
        args.extend(["-stream_loop", "-1", "-i", str(background_path)])
        args.extend(
            [
                "-filter_complex",
                self.filter_graph(len(answer_paths)),
                "-map",
                "[out]",
                *self.encoding.output_args(),
                str(output_path),
            ]
        )
        return args

    def combine(
        self,
        answer_paths: Sequence[Path],
        background_path: Path,
        output_path: Path,
    ) -> None:
        """Write the mixed segment to ``output_path``."""
        if not answer_paths:
            raise MixError("At least one answer clip is required.")
        logger.info(
            "Mixing %d answer(s) with background into %s",
            len(answer_paths),
            Path(output_path).name,
        )
        command = self.build_command(answer_paths, background_path, output_path)
        logger.debug("ffmpeg %s", " ".join(command))
        try:
            self.ffmpeg.run(command, progress_callback=log_progress(Path(output_path).name))
        except FFmpegError as exc:
            Path(output_path).unlink(missing_ok=True)
            raise MixError(f"Failed to mix {Path(output_path).name}: {exc}") from exc
