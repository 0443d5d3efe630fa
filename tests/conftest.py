"""Global pytest fixtures for the radio builder."""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pytest

from radio_builder.pipelines.encoding import AudioEncoding
from radio_builder.utils.ffmpeg import FFmpegError


class StubFFmpeg:
    """Stands in for the ffmpeg wrapper; records commands and writes fake outputs."""

    def __init__(
        self,
        *,
        stream: dict[str, Any] | None = None,
        duration: float = 42.0,
        fail_on: Callable[[Sequence[str]], bool] | None = None,
    ) -> None:
        self.stream = stream or {
            "codec_type": "audio",
            "codec_name": "mp3",
            "sample_rate": "44100",
            "channels": 2,
            "bit_rate": "128000",
        }
        self.duration_seconds = duration
        self.fail_on = fail_on
        self.commands: list[list[str]] = []
        self.progress_callbacks: list[Any] = []
        self.probed: list[Path] = []

    def probe(self, media_path: str | Path) -> dict[str, object]:
        self.probed.append(Path(media_path))
        return {"streams": [dict(self.stream)], "format": {"duration": str(self.duration_seconds)}}

    def duration(self, media_path: str | Path) -> float:
        return self.duration_seconds

    def run(self, args: Sequence[str], *, progress_callback=None, timeout=None) -> None:
        command = list(args)
        self.commands.append(command)
        self.progress_callbacks.append(progress_callback)
        if self.fail_on is not None and self.fail_on(command):
            raise FFmpegError("simulated encoder failure")
        output = Path(command[-1])
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(b"ID3fake-audio")


@pytest.fixture(autouse=True)
def _clear_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep local RADIO_BUILDER_* variables from leaking into tests."""
    for key in list(os.environ):
        if key.startswith("RADIO_BUILDER_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def encoding() -> AudioEncoding:
    return AudioEncoding()


@pytest.fixture
def make_ffmpeg() -> type[StubFFmpeg]:
    """Build stubs with a custom probed stream, duration or failure predicate."""
    return StubFFmpeg


@pytest.fixture
def stub_ffmpeg() -> StubFFmpeg:
    return StubFFmpeg()
