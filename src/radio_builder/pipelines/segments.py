"""Program segments, user recordings and asset classification."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Union
from urllib.parse import urlparse

from radio_builder.exceptions import RequestError
from radio_builder.storage.naming import is_path_token

__all__ = [
    "AssetKind",
    "AssetRequest",
    "BuildRequest",
    "CombineWithBackground",
    "Recording",
    "Segment",
    "Silence",
    "Single",
    "infer_asset_kind",
    "is_system_asset",
    "segment_from_mapping",
    "segment_type",
    "timestamp_from_filename",
]

_QUESTION_RE = re.compile(r"-question_(?P<qid>\d+)-")
_TIMESTAMP_RE = re.compile(r"tm_(?P<ts>\d+)")


class AssetKind(Enum):
    """Role of a remote audio file inside a program."""

    INTRO = "intro"
    OUTRO = "outro"
    PROMPT = "prompt"
    BACKGROUND = "background"
    SYSTEM = "system"
    ANSWER = "answer"


@dataclass(frozen=True, slots=True)
class Single:
    """One ready-made clip such as an intro, outro or question prompt."""

    url: str
    kind: AssetKind = AssetKind.SYSTEM
    question_id: str | None = None


@dataclass(frozen=True, slots=True)
class CombineWithBackground:
    """User answers to one question, mixed over a background track."""

    answer_urls: tuple[str, ...]
    background_url: str
    question_id: str | None = None

    def __post_init__(self) -> None:
        if not self.answer_urls:
            raise RequestError("combine_with_background segments need at least one answer.")


@dataclass(frozen=True, slots=True)
class Silence:
    """A gap of the requested duration."""

    duration_seconds: float = 3.0
    question_id: str | None = None

    def __post_init__(self) -> None:
        if self.duration_seconds <= 0:
            raise RequestError("Silence duration must be positive.")


Segment = Union[Single, CombineWithBackground, Silence]


def segment_type(segment: Segment) -> str:
    """Return the wire name of a segment variant."""
    if isinstance(segment, Single):
        return "single"
    if isinstance(segment, CombineWithBackground):
        return "combine_with_background"
    if isinstance(segment, Silence):
        return "silence"
    raise TypeError(f"Unknown segment variant: {type(segment).__name__}")


def infer_asset_kind(url: str) -> AssetKind:
    """Classify a static clip from its URL file name."""
    name = PurePosixPath(urlparse(url).path).name.lower()
    if "intro" in name:
        return AssetKind.INTRO
    if "outro" in name:
        return AssetKind.OUTRO
    if "-qid" in name:
        return AssetKind.PROMPT
    if "background" in name or "monkeys" in name:
        return AssetKind.BACKGROUND
    return AssetKind.SYSTEM


def segment_from_mapping(data: Mapping[str, Any]) -> Segment:
    """Build a segment from its JSON representation."""
    kind = data.get("type")
    question_id = _optional_str(data.get("questionId"))
    if kind == "single":
        url = data.get("url")
        if not isinstance(url, str) or not url:
            raise RequestError("single segments require a 'url'.")
        raw_kind = data.get("kind")
        try:
            asset_kind = AssetKind(raw_kind) if raw_kind else infer_asset_kind(url)
        except ValueError as exc:
            raise RequestError(f"Unknown asset kind {raw_kind!r}.") from exc
        if asset_kind is AssetKind.ANSWER:
            raise RequestError("single segments cannot carry user answers.")
        return Single(url=url, kind=asset_kind, question_id=question_id)
    if kind == "combine_with_background":
        answers = data.get("answerUrls")
        background = data.get("backgroundUrl")
        if not isinstance(answers, Sequence) or isinstance(answers, str):
            raise RequestError("combine_with_background segments require 'answerUrls'.")
        if not isinstance(background, str) or not background:
            raise RequestError("combine_with_background segments require 'backgroundUrl'.")
        return CombineWithBackground(
            answer_urls=tuple(str(url) for url in answers),
            background_url=background,
            question_id=question_id,
        )
    if kind == "silence":
        try:
            duration = float(data.get("duration", 3.0))
        except (TypeError, ValueError) as exc:
            raise RequestError("silence 'duration' must be a number.") from exc
        return Silence(duration_seconds=duration, question_id=question_id)
    raise RequestError(f"Unsupported segment type: {kind!r}")


@dataclass(frozen=True, slots=True)
class Recording:
    """A user-submitted answer clip."""

    filename: str
    url: str
    question_id: str
    uploaded_at: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Recording:
        filename = data.get("filename")
        url = data.get("url")
        if not isinstance(filename, str) or not filename:
            raise RequestError("Recordings require a 'filename'.")
        if not isinstance(url, str) or not url:
            raise RequestError(f"Recording {filename} has no 'url'.")

        question_id = _optional_str(data.get("questionId"))
        if question_id is None:
            match = _QUESTION_RE.search(filename)
            if not match:
                raise RequestError(f"Cannot determine question id of {filename}.")
            question_id = match.group("qid")

        uploaded_at = data.get("uploadedAt")
        if uploaded_at is None:
            uploaded_at = timestamp_from_filename(filename)
        try:
            timestamp = int(uploaded_at)
        except (TypeError, ValueError) as exc:
            raise RequestError(f"Recording {filename} has an invalid 'uploadedAt'.") from exc
        return cls(filename=filename, url=url, question_id=question_id, uploaded_at=timestamp)


def timestamp_from_filename(filename: str) -> int:
    """Return the ``tm_<epoch-ms>`` token of a recording file name, or 0."""
    match = _TIMESTAMP_RE.search(filename)
    return int(match.group("ts")) if match else 0


@dataclass(frozen=True, slots=True)
class BuildRequest:
    """Everything the pipeline needs to build one program."""

    world: str
    program_id: int
    language: str = "en"
    recordings: tuple[Recording, ...] = ()
    segments: tuple[Segment, ...] | None = None

    def __post_init__(self) -> None:
        if not is_path_token(self.world):
            raise RequestError(f"Invalid world identifier: {self.world!r}")
        if self.program_id < 0:
            raise RequestError("programId must be non-negative.")

    @property
    def recording_count(self) -> int:
        """Number of user recordings the program is built from.

        Requests carrying only an explicit segment list count their answer URLs.
        """
        if self.recordings or self.segments is None:
            return len(self.recordings)
        return sum(
            len(segment.answer_urls)
            for segment in self.segments
            if isinstance(segment, CombineWithBackground)
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> BuildRequest:
        world = data.get("world")
        raw_program_id = data.get("programId", data.get("lmid"))
        if not isinstance(world, str):
            raise RequestError("Missing required parameter 'world'.")
        try:
            program_id = int(raw_program_id)  # type: ignore[arg-type]
        except (TypeError, ValueError) as exc:
            raise RequestError("Missing or non-numeric 'programId'.") from exc

        recordings = tuple(
            Recording.from_mapping(item) for item in data.get("recordings") or []
        )
        raw_segments = data.get("segments")
        segments = None
        if raw_segments is not None:
            segments = tuple(segment_from_mapping(item) for item in raw_segments)
            if not segments:
                raise RequestError("'segments' must not be empty when provided.")
        return cls(
            world=world,
            program_id=program_id,
            language=str(data.get("language") or "en"),
            recordings=recordings,
            segments=segments,
        )


@dataclass(frozen=True, slots=True)
class AssetRequest:
    """One remote file a segment needs on local disk."""

    url: str
    destination: Path
    kind: AssetKind
    segment_index: int


def is_system_asset(request: AssetRequest) -> bool:
    """Static assets may be replaced by silence; user answers never are."""
    return request.kind is not AssetKind.ANSWER


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
