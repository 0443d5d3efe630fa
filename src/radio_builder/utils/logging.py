"""Project-wide logging configuration helpers."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, MutableMapping
from logging import Logger, LoggerAdapter
from pathlib import Path
from typing import Any

__all__ = [
    "DEFAULT_QUIET_LOGGERS",
    "ProgramLogAdapter",
    "configure_logging",
    "get_logger",
    "program_logger",
    "set_log_level",
]

DEFAULT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# HTTP client libraries log every request at INFO.
DEFAULT_QUIET_LOGGERS = ("httpx", "httpcore")


def configure_logging(settings: Mapping[str, Any] | None = None, *, force: bool = True) -> None:
    """Configure the root logger from the ``logging`` config section.

    .. code-block:: yaml

        logging:
          level: INFO
          quiet: [httpx, httpcore]
          file:
            enabled: true
            path: ./logs/radio-builder.log

    Loggers listed under ``quiet`` never log below WARNING.
    """

    section = settings or {}
    level = _coerce_level(section.get("level"))
    logging.basicConfig(level=level, format=DEFAULT_FORMAT, force=force)

    file_settings = section.get("file")
    if isinstance(file_settings, Mapping) and file_settings.get("enabled"):
        path_value = file_settings.get("path")
        if path_value:
            log_path = Path(path_value).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_path, encoding="utf-8")
            handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
            logging.getLogger().addHandler(handler)

    quiet = section.get("quiet", DEFAULT_QUIET_LOGGERS)
    if isinstance(quiet, str):
        quiet = (quiet,)
    _quiet_loggers(quiet if isinstance(quiet, Iterable) else (), level)


def get_logger(name: str | None = None) -> Logger:
    """Return a module logger."""
    return logging.getLogger(name if name else "radio_builder")


def set_log_level(level: str | int) -> None:
    """Set the log level on the root logger."""
    logging.getLogger().setLevel(_coerce_level(level))


class ProgramLogAdapter(LoggerAdapter):
    """Prefixes every message with the ``[world-program_id]`` being built."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        extra = self.extra or {}
        return f"[{extra.get('world')}-{extra.get('program_id')}] {msg}", kwargs


def program_logger(logger: Logger, world: str, program_id: int) -> ProgramLogAdapter:
    return ProgramLogAdapter(logger, {"world": world, "program_id": program_id})


def _quiet_loggers(names: Iterable[Any], level: int) -> None:
    for name in names:
        if isinstance(name, str) and name:
            logging.getLogger(name).setLevel(max(level, logging.WARNING))


def _coerce_level(level: Any) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str) and level:
        resolved = logging.getLevelName(level.upper())
        if isinstance(resolved, int):
            return resolved
    return logging.INFO
