"""The canonical audio encoding shared by every pipeline stage."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ["AudioEncoding"]

# Encoders round VBR/CBR bitrates slightly; treat anything this close as a match.
BITRATE_TOLERANCE_BPS = 8_000


@dataclass(frozen=True, slots=True)
class AudioEncoding:
    """Fixed codec, bitrate, sample rate and channel layout."""

    codec: str = "libmp3lame"
    format: str = "mp3"
    bitrate: str = "128k"
    sample_rate: int = 44_100
    channels: int = 2

    @property
    def codec_name(self) -> str:
        """Name ffprobe reports for streams produced by ``codec``."""
        return {"libmp3lame": "mp3", "libopus": "opus", "libvorbis": "vorbis"}.get(
            self.codec, self.codec
        )

    @property
    def bitrate_bps(self) -> int:
        value = self.bitrate.strip().lower()
        if value.endswith("k"):
            return int(float(value[:-1]) * 1000)
        return int(value)

    @property
    def channel_layout(self) -> str:
        return "stereo" if self.channels == 2 else "mono"

    def output_args(self) -> list[str]:
        """ffmpeg output options that produce this encoding."""
        return [
            "-c:a",
            self.codec,
            "-b:a",
            self.bitrate,
            "-ar",
            str(self.sample_rate),
            "-ac",
            str(self.channels),
            "-f",
            self.format,
        ]

    def matches(self, stream: Mapping[str, Any] | None) -> bool:
        """Return ``True`` when an ffprobe audio stream already uses this encoding."""
        if not stream:
            return False
        if stream.get("codec_name") != self.codec_name:
            return False
        try:
            if int(stream.get("sample_rate", 0)) != self.sample_rate:
                return False
            if int(stream.get("channels", 0)) != self.channels:
                return False
            bit_rate = stream.get("bit_rate")
            drift = abs(int(bit_rate) - self.bitrate_bps) if bit_rate is not None else 0
            if drift > BITRATE_TOLERANCE_BPS:
                return False
        except (TypeError, ValueError):
            return False
        return True
