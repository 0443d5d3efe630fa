"""Tests for the segment mixer filter graphs and error handling."""

from __future__ import annotations

from pathlib import Path

import pytest

from radio_builder.config.settings import MixSettings
from radio_builder.exceptions import MixError
from radio_builder.pipelines.encoding import AudioEncoding
from radio_builder.pipelines.mixer import SegmentMixer, crossfade_chain


def test_crossfade_chain_single_input_is_pass_through() -> None:
    assert crossfade_chain(1, 1.0, "answers") == "[0:a]anull[answers]"


def test_crossfade_chain_preserves_input_order() -> None:
    assert crossfade_chain(3, 1.0, "out") == (
        "[0:a][1:a]acrossfade=d=1[xf1];[xf1][2:a]acrossfade=d=1[out]"
    )


def test_crossfade_chain_without_crossfade_concatenates() -> None:
    assert crossfade_chain(2, 0, "out") == "[0:a][1:a]concat=n=2:v=0:a=1[out]"


def test_crossfade_chain_requires_input() -> None:
    with pytest.raises(ValueError):
        crossfade_chain(0, 1.0, "out")


def test_filter_graph_scales_only_background(encoding: AudioEncoding, stub_ffmpeg) -> None:
    mixer = SegmentMixer(encoding, MixSettings(background_volume=0.1), ffmpeg=stub_ffmpeg)

    graph = mixer.filter_graph(2)

    assert graph == (
        "[0:a][1:a]acrossfade=d=1[answers];"
        "[answers][2:a]amerge=inputs=2,pan=stereo|c0<c0+0.1*c2|c1<c1+0.1*c3[out]"
    )


def test_filter_graph_mono(stub_ffmpeg) -> None:
    mixer = SegmentMixer(AudioEncoding(channels=1), MixSettings(), ffmpeg=stub_ffmpeg)

    assert mixer.filter_graph(1) == (
        "[0:a]anull[answers];[answers][1:a]amerge=inputs=2,pan=mono|c0<c0+0.1*c1[out]"
    )


def test_combine_single_answer_applies_no_crossfade(
    tmp_path: Path, encoding: AudioEncoding, stub_ffmpeg
) -> None:
    answer = tmp_path / "answer.mp3"
    background = tmp_path / "background.mp3"
    output = tmp_path / "mixed.mp3"

    SegmentMixer(encoding, ffmpeg=stub_ffmpeg).combine([answer], background, output)

    command = stub_ffmpeg.commands[0]
    graph = command[command.index("-filter_complex") + 1]
    assert "acrossfade" not in graph
    assert graph.startswith("[0:a]anull[answers]")
    assert command[:6] == ["-i", str(answer), "-stream_loop", "-1", "-i", str(background)]
    assert command[command.index("-map") + 1] == "[out]"
    assert command[-1] == str(output)
    assert stub_ffmpeg.progress_callbacks[0] is not None
    assert output.exists()


def test_combine_orders_answers_before_background(
    tmp_path: Path, encoding: AudioEncoding, stub_ffmpeg
) -> None:
    answers = [tmp_path / f"answer{i}.mp3" for i in range(3)]

    SegmentMixer(encoding, ffmpeg=stub_ffmpeg).combine(
        answers, tmp_path / "bg.mp3", tmp_path / "mixed.mp3"
    )

    inputs = [
        arg for previous, arg in zip(stub_ffmpeg.commands[0], stub_ffmpeg.commands[0][1:])
        if previous == "-i"
    ]
    assert inputs == [str(path) for path in answers] + [str(tmp_path / "bg.mp3")]


def test_combine_requires_answers(tmp_path: Path, encoding: AudioEncoding, stub_ffmpeg) -> None:
    with pytest.raises(MixError):
        SegmentMixer(encoding, ffmpeg=stub_ffmpeg).combine(
            [], tmp_path / "bg.mp3", tmp_path / "mixed.mp3"
        )


def test_engine_failure_surfaces_as_mix_error(
    tmp_path: Path, encoding: AudioEncoding, make_ffmpeg
) -> None:
    ffmpeg = make_ffmpeg(fail_on=lambda _command: True)
    output = tmp_path / "mixed.mp3"

    with pytest.raises(MixError, match="mixed.mp3"):
        SegmentMixer(encoding, ffmpeg=ffmpeg).combine(
            [tmp_path / "a.mp3"], tmp_path / "bg.mp3", output
        )

    assert not output.exists()
