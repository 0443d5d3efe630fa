"""Helpers for generating canonical storage paths for published programs."""

from __future__ import annotations

import re
from dataclasses import dataclass

__all__ = [
    "ProgramDescriptor",
    "build_manifest_filename",
    "build_program_filename",
    "build_storage_path",
    "is_path_token",
    "public_url",
]


_PATH_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def is_path_token(value: str) -> bool:
    """Return whether ``value`` is safe as a single storage path segment."""
    return isinstance(value, str) and _PATH_TOKEN_RE.fullmatch(value) is not None


@dataclass(frozen=True, slots=True)
class ProgramDescriptor:
    """Structured information that uniquely identifies a program."""

    world: str
    program_id: int

    def __post_init__(self) -> None:
        if not is_path_token(self.world):
            raise ValueError(f"World {self.world!r} is not a valid path token.")
        if self.program_id < 0:
            raise ValueError("program_id must be a non-negative integer.")

    @property
    def slug(self) -> str:
        """Return the ``<world>-<program_id>`` token used in file names."""
        return f"{self.world}-{self.program_id}"


def build_program_filename(descriptor: ProgramDescriptor, timestamp_ms: int) -> str:
    """Return a timestamped audio file name so rebuilds never collide."""
    return f"radio-program-{descriptor.slug}-{timestamp_ms}.mp3"


def build_manifest_filename(descriptor: ProgramDescriptor) -> str:
    """Return the stable manifest file name of a program."""
    return f"manifest-{descriptor.slug}.json"


def build_storage_path(category: str, descriptor: ProgramDescriptor, filename: str) -> str:
    """Return ``/<category>/<world>/<filename>``."""
    if not is_path_token(category):
        raise ValueError(f"Category {category!r} is not a valid path token.")
    return f"/{category}/{descriptor.world}/{filename}"


def public_url(cdn_url: str, storage_path: str) -> str:
    """Join the CDN base URL and a storage path, adding a scheme if missing."""
    base = cdn_url.rstrip("/")
    if not base.startswith(("http://", "https://")):
        base = f"https://{base}"
    return f"{base}{storage_path}"
