"""Tests for the configuration loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from radio_builder.config.load import (
    PUBLISHING_KEYS,
    ConfigError,
    load_config,
    missing_settings,
)


def test_load_config_reads_default_environment() -> None:
    config = load_config("dev")

    assert config["version"] == 1
    assert config["audio"]["bitrate"] == "128k"
    assert config["placeholders"]["prompt_seconds"] == 5


def test_load_config_environment_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Environment variables prefixed with RADIO_BUILDER_ override YAML values."""
    monkeypatch.setenv("RADIO_BUILDER_LOGGING__LEVEL", "ERROR")
    monkeypatch.setenv("RADIO_BUILDER_FETCH__MAX_RETRIES", "5")
    monkeypatch.setenv("RADIO_BUILDER_STORAGE__ACCESS_KEY", "secret-key")

    config = load_config("dev")

    assert config["logging"]["level"] == "ERROR"
    assert config["fetch"]["max_retries"] == 5
    assert config["storage"]["access_key"] == "secret-key"


def test_load_config_programmatic_overrides_merge_deeply() -> None:
    config = load_config("dev", overrides={"audio": {"crossfade_seconds": 0.5}})

    assert config["audio"]["crossfade_seconds"] == 0.5
    assert config["audio"]["codec"] == "libmp3lame"


def test_load_config_validation_error(tmp_path: Path) -> None:
    """Invalid files raise ConfigError listing the offending paths."""
    config_dir = tmp_path / "configs"
    config_dir.mkdir()
    (config_dir / "broken.yaml").write_text(
        "environment: dev\n" "audio:\n" "  channels: 6\n",
        encoding="utf-8",
    )

    with pytest.raises(ConfigError) as excinfo:
        load_config("broken", config_dir=config_dir)

    message = str(excinfo.value)
    assert "version" in message
    assert "audio.channels" in message


def test_load_config_skips_validation_when_disabled(tmp_path: Path) -> None:
    config_dir = tmp_path / "configs"
    config_dir.mkdir()
    (config_dir / "loose.yml").write_text("audio:\n  channels: 6\n", encoding="utf-8")

    config = load_config("loose", config_dir=config_dir, validate=False)

    assert config["audio"]["channels"] == 6


def test_load_config_rejects_non_mapping_root(tmp_path: Path) -> None:
    config_dir = tmp_path / "configs"
    config_dir.mkdir()
    (config_dir / "list.yaml").write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config("list", config_dir=config_dir)


def test_load_config_missing_environment(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config("staging", config_dir=tmp_path)


def test_publishing_run_requires_access_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("RADIO_BUILDER_STORAGE__ACCESS_KEY", raising=False)

    with pytest.raises(ConfigError, match="storage.access_key"):
        load_config("dev", require=PUBLISHING_KEYS)


def test_publishing_run_accepts_access_key_from_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("RADIO_BUILDER_STORAGE__ACCESS_KEY", "0123")

    config = load_config("dev", require=PUBLISHING_KEYS)

    assert config["storage"]["access_key"] == "0123"


def test_unknown_asset_template_field_is_rejected() -> None:
    with pytest.raises(ConfigError, match="assets.prompt: unknown template field"):
        load_config("dev", overrides={"assets": {"prompt": "{base_url}/{lang}.mp3"}})


def test_missing_settings_reports_null_and_empty_values() -> None:
    config = {"storage": {"zone": "mics", "access_key": "", "cdn_url": None}}

    assert missing_settings(config, PUBLISHING_KEYS) == [
        "storage.api_url",
        "storage.access_key",
        "storage.cdn_url",
    ]
    assert missing_settings(config, ["storage.zone"]) == []
