"""Published manifest records, build results and change detection."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .segments import CombineWithBackground, Segment, segment_type

__all__ = [
    "MANIFEST_VERSION",
    "BuildResult",
    "Manifest",
    "SegmentDescriptor",
    "describe_segments",
    "needs_rebuild",
]

MANIFEST_VERSION = "2.0"

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SegmentDescriptor:
    index: int
    type: str
    question_id: str | None = None
    answer_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "type": self.type,
            "questionId": self.question_id,
            "answerCount": self.answer_count,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SegmentDescriptor:
        question_id = data.get("questionId")
        return cls(
            index=int(data.get("index", 0)),
            type=str(data.get("type", "")),
            question_id=str(question_id) if question_id is not None else None,
            answer_count=int(data.get("answerCount") or 0),
        )


def describe_segments(segments: Sequence[Segment]) -> list[SegmentDescriptor]:
    """Describe segments in their declared order."""
    descriptors = []
    for index, segment in enumerate(segments):
        answer_count = (
            len(segment.answer_urls) if isinstance(segment, CombineWithBackground) else 0
        )
        descriptors.append(
            SegmentDescriptor(
                index=index,
                type=segment_type(segment),
                question_id=segment.question_id,
                answer_count=answer_count,
            )
        )
    return descriptors


@dataclass(frozen=True, slots=True)
class Manifest:
    """Record of the last successfully published program."""

    world: str
    program_id: int
    program_url: str
    file_name: str
    file_size: int
    processing_time_ms: int
    segment_count: int
    recording_count: int | None
    segments: tuple[SegmentDescriptor, ...] = ()
    duration_seconds: float | None = None
    generated_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    )
    version: str = MANIFEST_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "generatedAt": self.generated_at,
            "world": self.world,
            "lmid": self.program_id,
            "programUrl": self.program_url,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "processingTime": self.processing_time_ms,
            "segmentCount": self.segment_count,
            "recordingCount": self.recording_count,
            "duration": self.duration_seconds,
            "segments": [segment.to_dict() for segment in self.segments],
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Manifest:
        """Parse a published manifest; older manifests may lack most fields."""
        raw_count = data.get("recordingCount")
        raw_duration = data.get("duration")
        raw_segments = data.get("segments") or []
        return cls(
            world=str(data.get("world", "")),
            program_id=int(data.get("lmid", data.get("programId", 0)) or 0),
            program_url=str(data.get("programUrl", "")),
            file_name=str(data.get("fileName", "")),
            file_size=int(data.get("fileSize") or 0),
            processing_time_ms=int(data.get("processingTime") or 0),
            segment_count=int(data.get("segmentCount") or len(raw_segments)),
            recording_count=int(raw_count) if raw_count is not None else None,
            segments=tuple(
                SegmentDescriptor.from_mapping(item)
                for item in raw_segments
                if isinstance(item, Mapping)
            ),
            duration_seconds=float(raw_duration) if raw_duration is not None else None,
            generated_at=str(data.get("generatedAt", "")),
            version=str(data.get("version", "")),
        )


def needs_rebuild(current_count: int, previous: Manifest | None) -> bool:
    """Decide whether the program must be rebuilt.

    Rebuild when nothing was published yet, when the previous manifest predates the
    ``recordingCount`` field, or when the number of recordings changed.
    """
    if current_count < 0:
        raise ValueError("current_count must be non-negative.")
    if previous is None:
        logger.info("No previous manifest; rebuild required")
        return True
    if previous.recording_count is None:
        logger.info("Previous manifest has no recording count; rebuild required")
        return True
    if current_count != previous.recording_count:
        logger.info(
            "Recording count changed (%d -> %d); rebuild required",
            previous.recording_count,
            current_count,
        )
        return True
    return False


@dataclass(slots=True)
class BuildResult:
    """Outcome of one pipeline run."""

    success: bool
    audio_url: str | None = None
    duration_seconds: float | None = None
    processing_time_ms: int = 0
    segment_count: int = 0
    error: str | None = None
    skipped: bool = False
    manifest: Manifest | None = None
    states: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "audioUrl": self.audio_url,
            "duration": self.duration_seconds,
            "processingTimeMs": self.processing_time_ms,
            "segmentCount": self.segment_count,
            "skipped": self.skipped,
        }
        if self.error is not None:
            payload["error"] = self.error
        if self.manifest is not None:
            payload["manifest"] = self.manifest.to_dict()
        return payload
