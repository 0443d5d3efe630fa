"""Configuration loading helpers for the radio builder."""

from __future__ import annotations

import json
import os
import string
from collections.abc import Iterable, Mapping, MutableMapping
from copy import deepcopy
from pathlib import Path
from typing import Any, cast

import yaml
from jsonschema import Draft7Validator

__all__ = [
    "ASSET_TEMPLATE_FIELDS",
    "PUBLISHING_KEYS",
    "ConfigError",
    "load_config",
    "missing_settings",
]

PROJECT_ROOT = Path(__file__).resolve().parents[3]
CONFIG_DIR = PROJECT_ROOT / "configs"
SCHEMA_PATH = Path(__file__).with_name("schema.json")
ENV_PREFIX = "RADIO_BUILDER_"
ENV_SEPARATOR = "__"

# Settings a run must have before it can upload anything.
PUBLISHING_KEYS = ("storage.api_url", "storage.zone", "storage.access_key", "storage.cdn_url")

# Fields available to the ``assets`` URL templates.
ASSET_TEMPLATE_FIELDS = frozenset({"base_url", "world", "language", "question_id"})

# Env values kept verbatim; YAML would turn a numeric access key into an int.
_VERBATIM_ENV_PATHS = frozenset(
    {
        ("storage", "access_key"),
        ("storage", "zone"),
        ("storage", "api_url"),
        ("storage", "cdn_url"),
        ("assets", "base_url"),
    }
)


class ConfigError(RuntimeError):
    """Raised when configuration loading or validation fails."""


def load_config(
    env: str = "dev",
    *,
    config_dir: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    validate: bool = True,
    require: Iterable[str] = (),
) -> dict[str, Any]:
    """Load the configuration for the requested environment.

    The lookup order is:
        1. ``configs/{env}.yaml`` (or ``.yml``) under ``config_dir``.
        2. Programmatic ``overrides``, deep-merged.
        3. ``RADIO_BUILDER_*`` environment variables, ``__`` separating nested keys,
           e.g. ``RADIO_BUILDER_STORAGE__ACCESS_KEY``.

    ``require`` lists dotted keys that must be set to a non-empty value, such as
    :data:`PUBLISHING_KEYS` for runs that upload programs.
    """

    base_dir = Path(config_dir) if config_dir is not None else CONFIG_DIR
    config = _read_environment_file(base_dir, env)
    if overrides:
        config = _deep_merge(config, overrides)
    env_overrides = _env_overrides(os.environ)
    if env_overrides:
        config = _deep_merge(config, env_overrides)

    if validate:
        problems = _schema_problems(config) + _asset_template_problems(config)
        if problems:
            listing = "\n".join(f"- {problem}" for problem in problems)
            raise ConfigError(f"Configuration validation failed:\n{listing}")

    missing = missing_settings(config, require)
    if missing:
        raise ConfigError(
            f"Configuration for '{env}' is missing required settings: {', '.join(missing)}"
        )
    return config


def missing_settings(config: Mapping[str, Any], keys: Iterable[str]) -> list[str]:
    """Return the dotted ``keys`` that are absent, null or empty in ``config``."""
    missing = []
    for dotted in keys:
        value: Any = config
        for part in dotted.split("."):
            value = value.get(part) if isinstance(value, Mapping) else None
        if value is None or value == "":
            missing.append(dotted)
    return missing


def _read_environment_file(base_dir: Path, env: str) -> dict[str, Any]:
    candidates = [base_dir / f"{env}{suffix}" for suffix in (".yaml", ".yml")]
    path = next((candidate for candidate in candidates if candidate.exists()), None)
    if path is None:
        raise FileNotFoundError(
            f"Configuration file not found for environment '{env}' in {base_dir}."
        )
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping in {path}.")
    return data


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge two mappings without mutating either."""
    merged: dict[str, Any] = deepcopy(dict(base))
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(current, value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name, raw_value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        path = tuple(
            token.strip().lower().replace("-", "_")
            for token in name[len(ENV_PREFIX) :].split(ENV_SEPARATOR)
            if token.strip()
        )
        if not path:
            continue
        value = raw_value if path in _VERBATIM_ENV_PATHS else _coerce_env_value(raw_value)
        _set_nested_value(overrides, path, value)
    return overrides


def _set_nested_value(target: MutableMapping[str, Any], path: tuple[str, ...], value: Any) -> None:
    current = target
    for key in path[:-1]:
        child = current.get(key)
        if not isinstance(child, MutableMapping):
            child = current[key] = {}
        current = child
    current[path[-1]] = value


def _coerce_env_value(raw_value: str) -> Any:
    """Parse an env value as YAML so numbers and booleans keep their types."""
    if raw_value == "":
        return ""
    try:
        return yaml.safe_load(raw_value)
    except yaml.YAMLError:
        return raw_value


def _load_schema() -> dict[str, Any]:
    with SCHEMA_PATH.open("r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ConfigError("Configuration schema must be a JSON object.")
    return cast(dict[str, Any], data)


def _schema_problems(config: Mapping[str, Any]) -> list[str]:
    validator = Draft7Validator(_load_schema())
    errors = sorted(validator.iter_errors(config), key=lambda err: list(err.path))
    return [
        f"{'.'.join(str(piece) for piece in error.path) or '<root>'}: {error.message}"
        for error in errors
    ]


def _asset_template_problems(config: Mapping[str, Any]) -> list[str]:
    assets = config.get("assets")
    if not isinstance(assets, Mapping):
        return []
    problems = []
    formatter = string.Formatter()
    for name in ("intro", "outro", "prompt", "background"):
        template = assets.get(name)
        if not isinstance(template, str):
            continue
        try:
            fields = {field for _, field, _, _ in formatter.parse(template) if field}
        except ValueError as exc:
            problems.append(f"assets.{name}: {exc}")
            continue
        unknown = sorted(fields - ASSET_TEMPLATE_FIELDS)
        if unknown:
            problems.append(f"assets.{name}: unknown template field(s) {', '.join(unknown)}")
    return problems
