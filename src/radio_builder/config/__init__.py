"""Configuration loading helpers."""

from __future__ import annotations

from .load import ConfigError, load_config
from .settings import BuilderSettings

__all__ = [
    "BuilderSettings",
    "ConfigError",
    "load_config",
]
