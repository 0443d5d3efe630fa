"""Turn a snapshot of recordings into the default ordered segment plan."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable

from radio_builder.config.settings import AssetSettings

from .segments import AssetKind, CombineWithBackground, Recording, Segment, Single

__all__ = ["group_recordings", "plan_segments"]

logger = logging.getLogger(__name__)


def _question_sort_key(question_id: str) -> tuple[int, int | str]:
    try:
        return (0, int(question_id))
    except ValueError:
        return (1, question_id)


def group_recordings(recordings: Iterable[Recording]) -> dict[str, list[Recording]]:
    """Group recordings by question, questions in numeric order, answers oldest first."""
    grouped: dict[str, list[Recording]] = defaultdict(list)
    for recording in recordings:
        grouped[recording.question_id].append(recording)
    return {
        question_id: sorted(grouped[question_id], key=lambda rec: (rec.uploaded_at, rec.filename))
        for question_id in sorted(grouped, key=_question_sort_key)
    }


def plan_segments(
    recordings: Iterable[Recording],
    *,
    world: str,
    language: str,
    assets: AssetSettings,
) -> list[Segment]:
    """Build intro, prompt + answers per question, and outro."""

    def url(kind: AssetKind, question_id: str | None = None) -> str:
        return assets.url_for(kind, world=world, language=language, question_id=question_id)

    segments: list[Segment] = [Single(url=url(AssetKind.INTRO), kind=AssetKind.INTRO)]
    grouped = group_recordings(recordings)
    for question_id, answers in grouped.items():
        segments.append(
            Single(
                url=url(AssetKind.PROMPT, question_id),
                kind=AssetKind.PROMPT,
                question_id=question_id,
            )
        )
        segments.append(
            CombineWithBackground(
                answer_urls=tuple(answer.url for answer in answers),
                background_url=url(AssetKind.BACKGROUND, question_id),
                question_id=question_id,
            )
        )
    segments.append(Single(url=url(AssetKind.OUTRO), kind=AssetKind.OUTRO))

    logger.info(
        "Planned %d segments for %s with %d question(s)", len(segments), world, len(grouped)
    )
    return segments
