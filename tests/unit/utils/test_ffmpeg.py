"""Tests for the FFmpeg helper utilities."""

from __future__ import annotations

import json
import subprocess
from collections.abc import Iterator
from pathlib import Path

import pytest

from radio_builder.utils.ffmpeg import FFmpeg, FFmpegError, FFmpegProgress, first_audio_stream


class FakeCompletedProcess:
    def __init__(self, returncode: int, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class FakeProcess:
    """Minimal stub that mimics subprocess.Popen for progress parsing."""

    def __init__(self, lines: list[str], returncode: int = 0, stderr: str = "") -> None:
        self._lines: Iterator[str] = iter(lines)
        self.stdout = self
        self.stderr_content = stderr
        self.returncode = returncode
        self._closed = False

    def readline(self) -> str:
        try:
            return next(self._lines)
        except StopIteration:
            self._closed = True
            return ""

    def poll(self) -> int | None:
        return self.returncode if self._closed else None

    def communicate(self) -> tuple[str, str]:
        return "", self.stderr_content

    def kill(self) -> None:
        self.returncode = -9
        self._closed = True


def test_probe_returns_metadata(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    metadata = {"streams": [], "format": {}}

    def fake_run(*_args, **_kwargs):
        return FakeCompletedProcess(returncode=0, stdout=json.dumps(metadata))

    monkeypatch.setattr("subprocess.run", fake_run)
    probe = FFmpeg().probe(tmp_path / "clip.mp3")
    assert probe == metadata


def test_probe_failure_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    def fake_run(*_args, **_kwargs):
        return FakeCompletedProcess(returncode=1, stderr="not found")

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(FFmpegError):
        FFmpeg().probe(tmp_path / "clip.mp3")


def test_media_inspection_honours_timeout(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    captured: dict[str, object] = {}

    def fake_run(command, **kwargs):
        captured["timeout"] = kwargs.get("timeout")
        raise subprocess.TimeoutExpired(command, kwargs.get("timeout") or 0)

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(FFmpegError, match="ffprobe timed out on clip.mp3"):
        FFmpeg(timeout=7.5).probe(tmp_path / "clip.mp3")

    assert captured["timeout"] == 7.5


def test_duration_falls_back_to_audio_stream(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    metadata = {
        "streams": [{"codec_type": "video"}, {"codec_type": "audio", "duration": "12.5"}],
        "format": {},
    }

    def fake_run(*_args, **_kwargs):
        return FakeCompletedProcess(returncode=0, stdout=json.dumps(metadata))

    monkeypatch.setattr("subprocess.run", fake_run)
    assert FFmpeg().duration(tmp_path / "clip.mp3") == pytest.approx(12.5)


def test_first_audio_stream_skips_other_streams() -> None:
    metadata = {"streams": [{"codec_type": "video"}, {"codec_type": "audio", "channels": 2}]}
    assert first_audio_stream(metadata) == {"codec_type": "audio", "channels": 2}
    assert first_audio_stream({"streams": "broken"}) is None


def test_run_prepends_overwrite_flags(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_run(command, **kwargs):
        captured["command"] = command
        captured["timeout"] = kwargs.get("timeout")
        return FakeCompletedProcess(returncode=0)

    monkeypatch.setattr("subprocess.run", fake_run)
    FFmpeg(timeout=12.0).run(["-i", "in.mp3", "out.mp3"])

    assert captured["command"] == ["ffmpeg", "-hide_banner", "-y", "-i", "in.mp3", "out.mp3"]
    assert captured["timeout"] == 12.0


def test_run_failure_raises_with_stderr(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(*_args, **_kwargs):
        return FakeCompletedProcess(returncode=1, stderr="Invalid filter graph\n")

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(FFmpegError, match="Invalid filter graph"):
        FFmpeg().run(["-i", "in.mp3", "out.mp3"])


def test_run_timeout_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(command, **kwargs):
        raise subprocess.TimeoutExpired(command, kwargs.get("timeout") or 0)

    monkeypatch.setattr("subprocess.run", fake_run)
    with pytest.raises(FFmpegError, match="timed out"):
        FFmpeg(timeout=0.1).run(["-i", "in.mp3", "out.mp3"])


def test_run_with_progress_parses_updates(monkeypatch: pytest.MonkeyPatch) -> None:
    updates: list[FFmpegProgress] = []

    def fake_popen(*_args, **_kwargs):
        lines = [
            "bitrate=128.0kbits/s\n",
            "out_time=00:00:01.00\n",
            "speed=2.5x\n",
            "progress=continue\n",
            "total_size=2048\n",
            "out_time=00:00:02.00\n",
            "progress=end\n",
        ]
        return FakeProcess(lines)

    monkeypatch.setattr("subprocess.Popen", fake_popen)

    FFmpeg().run(
        ["-i", "input", "output"],
        progress_callback=lambda progress: updates.append(progress),
    )

    assert [update.status for update in updates] == ["continue", "end"]
    assert updates[0].bitrate_kbps == pytest.approx(128.0)
    assert updates[0].speed == pytest.approx(2.5)
    assert updates[-1].out_time == pytest.approx(2.0, abs=1e-2)
    assert updates[-1].total_size_kb == pytest.approx(2.0)


def test_run_with_progress_failure_raises(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_popen(*_args, **_kwargs):
        return FakeProcess(["progress=end\n"], returncode=1, stderr="Conversion failed!")

    monkeypatch.setattr("subprocess.Popen", fake_popen)

    with pytest.raises(FFmpegError, match="Conversion failed"):
        FFmpeg().run(["-i", "input", "output"], progress_callback=lambda _progress: None)
