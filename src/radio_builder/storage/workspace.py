"""Run-scoped temporary directories."""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

__all__ = ["Workspace", "open_workspace"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Workspace:
    """A directory owned by exactly one pipeline run."""

    root: Path

    def path_for(self, filename: str) -> Path:
        """Return a path inside the workspace, rejecting anything that escapes it."""
        candidate = (self.root / filename).resolve()
        if candidate.parent != self.root.resolve():
            raise ValueError(f"{filename!r} does not name a file inside the workspace.")
        return candidate

    def files(self) -> list[Path]:
        if not self.root.exists():
            return []
        return sorted(path for path in self.root.rglob("*") if path.is_file())


@contextmanager
def open_workspace(prefix: str, *, parent: Path | None = None) -> Iterator[Workspace]:
    """Create a private workspace and remove it on every exit path."""
    if parent is not None:
        parent.mkdir(parents=True, exist_ok=True)
    root = Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent) if parent else None))
    logger.debug("Created workspace %s", root)
    try:
        yield Workspace(root=root)
    finally:
        shutil.rmtree(root, ignore_errors=True)
        if root.exists():
            logger.warning("Workspace %s could not be fully removed", root)
        else:
            logger.debug("Removed workspace %s", root)
