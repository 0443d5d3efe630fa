"""Tests for the default segment plan."""

from __future__ import annotations

from radio_builder.config.settings import AssetSettings
from radio_builder.pipelines.planning import group_recordings, plan_segments
from radio_builder.pipelines.segments import AssetKind, CombineWithBackground, Recording, Single

ASSETS = AssetSettings(base_url="https://cdn.example.com/audio")


def rec(question: str, ts: int, name: str | None = None) -> Recording:
    filename = name or f"kids-question_{question}-tm_{ts}.webm"
    return Recording(
        filename=filename,
        url=f"https://cdn.example.com/rec/{filename}",
        question_id=question,
        uploaded_at=ts,
    )


def test_group_recordings_orders_questions_numerically_and_answers_by_time() -> None:
    grouped = group_recordings([rec("10", 5), rec("2", 9), rec("2", 1), rec("10", 3)])

    assert list(grouped) == ["2", "10"]
    assert [r.uploaded_at for r in grouped["2"]] == [1, 9]
    assert [r.uploaded_at for r in grouped["10"]] == [3, 5]


def test_plan_segments_builds_intro_questions_outro() -> None:
    segments = plan_segments(
        [rec("3", 20), rec("1", 10), rec("3", 5)],
        world="spookyland",
        language="en",
        assets=ASSETS,
    )

    assert segments[0] == Single(
        url="https://cdn.example.com/audio/other/intro.mp3", kind=AssetKind.INTRO
    )
    assert segments[-1] == Single(
        url="https://cdn.example.com/audio/other/outro.mp3", kind=AssetKind.OUTRO
    )
    assert len(segments) == 6

    prompt, answers = segments[3], segments[4]
    assert prompt == Single(
        url="https://cdn.example.com/audio/spookyland/spookyland-QID3.mp3",
        kind=AssetKind.PROMPT,
        question_id="3",
    )
    assert isinstance(answers, CombineWithBackground)
    assert answers.question_id == "3"
    assert answers.answer_urls == (
        "https://cdn.example.com/rec/kids-question_3-tm_5.webm",
        "https://cdn.example.com/rec/kids-question_3-tm_20.webm",
    )
    assert answers.background_url == "https://cdn.example.com/audio/other/monkeys.mp3"


def test_plan_segments_without_recordings_is_intro_and_outro() -> None:
    segments = plan_segments([], world="spookyland", language="en", assets=ASSETS)

    assert [segment.kind for segment in segments] == [AssetKind.INTRO, AssetKind.OUTRO]
