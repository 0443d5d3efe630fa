"""Typed views over the parsed configuration mapping."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from radio_builder.pipelines.encoding import AudioEncoding
from radio_builder.pipelines.segments import AssetKind

__all__ = [
    "AssetSettings",
    "BuilderSettings",
    "FetchSettings",
    "MixSettings",
    "PlaceholderSettings",
    "ProgramMetadata",
    "StorageSettings",
]


@dataclass(frozen=True, slots=True)
class MixSettings:
    """Crossfade and background levels used by the mixer and assembler."""

    crossfade_seconds: float = 1.0
    background_volume: float = 0.1


@dataclass(frozen=True, slots=True)
class ProgramMetadata:
    """Tags embedded in the final program file."""

    title_template: str = "Radio Program {world}-{program_id}"
    artist: str = "Little Microphones"
    album: str = "Radio Programs"

    def title(self, world: str, program_id: int) -> str:
        return self.title_template.format(world=world, program_id=program_id)


@dataclass(frozen=True, slots=True)
class FetchSettings:
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_seconds: float = 1.0
    chunk_size: int = 64 * 1024
    max_parallel: int | None = None


@dataclass(frozen=True, slots=True)
class PlaceholderSettings:
    """Silence durations substituted for missing system assets."""

    intro_outro_seconds: float = 3.0
    prompt_seconds: float = 5.0
    background_seconds: float = 30.0
    default_seconds: float = 3.0

    def duration_for(self, kind: AssetKind) -> float:
        if kind in (AssetKind.INTRO, AssetKind.OUTRO):
            return self.intro_outro_seconds
        if kind is AssetKind.PROMPT:
            return self.prompt_seconds
        if kind is AssetKind.BACKGROUND:
            return self.background_seconds
        return self.default_seconds


@dataclass(frozen=True, slots=True)
class StorageSettings:
    """Storage origin (PUT API) and public CDN locations."""

    api_url: str = "https://storage.bunnycdn.com"
    zone: str = "little-microphones"
    access_key: str | None = None
    cdn_url: str = "https://little-microphones.b-cdn.net"
    category: str = "radio-programs"
    timeout_seconds: float = 120.0
    max_retries: int = 3
    backoff_seconds: float = 1.0


@dataclass(frozen=True, slots=True)
class AssetSettings:
    """URL templates for static intro, outro, prompt and background clips."""

    base_url: str = "https://little-microphones.b-cdn.net/audio"
    intro: str = "{base_url}/other/intro.mp3"
    outro: str = "{base_url}/other/outro.mp3"
    prompt: str = "{base_url}/{world}/{world}-QID{question_id}.mp3"
    background: str = "{base_url}/other/monkeys.mp3"

    def url_for(
        self,
        kind: AssetKind,
        *,
        world: str,
        language: str,
        question_id: str | None = None,
    ) -> str:
        templates = {
            AssetKind.INTRO: self.intro,
            AssetKind.OUTRO: self.outro,
            AssetKind.PROMPT: self.prompt,
            AssetKind.BACKGROUND: self.background,
        }
        try:
            template = templates[kind]
        except KeyError:
            raise ValueError(f"No URL template for {kind.value} assets.") from None
        return template.format(
            base_url=self.base_url.rstrip("/"),
            world=world,
            language=language,
            question_id=question_id or "",
        )


@dataclass(frozen=True, slots=True)
class BuilderSettings:
    """All settings a pipeline run needs."""

    encoding: AudioEncoding = field(default_factory=AudioEncoding)
    mix: MixSettings = field(default_factory=MixSettings)
    metadata: ProgramMetadata = field(default_factory=ProgramMetadata)
    fetch: FetchSettings = field(default_factory=FetchSettings)
    placeholders: PlaceholderSettings = field(default_factory=PlaceholderSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    assets: AssetSettings = field(default_factory=AssetSettings)
    temp_dir: Path | None = None
    engine_timeout_seconds: float | None = 300.0

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> BuilderSettings:
        audio = _section(config, "audio")
        metadata = _section(audio, "metadata")
        fetch = _section(config, "fetch")
        placeholders = _section(config, "placeholders")
        storage = _section(config, "storage")
        assets = _section(config, "assets")
        paths = _section(config, "paths")

        encoding = AudioEncoding(
            codec=str(audio.get("codec", "libmp3lame")),
            format=str(audio.get("format", "mp3")),
            bitrate=str(audio.get("bitrate", "128k")),
            sample_rate=int(audio.get("sample_rate", 44_100)),
            channels=int(audio.get("channels", 2)),
        )
        mix = MixSettings(
            crossfade_seconds=float(audio.get("crossfade_seconds", 1.0)),
            background_volume=float(audio.get("background_volume", 0.1)),
        )
        program_metadata = ProgramMetadata(
            **{
                key: str(metadata[key])
                for key in ("title_template", "artist", "album")
                if key in metadata
            }
        )
        max_parallel = fetch.get("max_parallel")
        fetch_settings = FetchSettings(
            timeout_seconds=float(fetch.get("timeout_seconds", 30.0)),
            max_retries=int(fetch.get("max_retries", 3)),
            backoff_seconds=float(fetch.get("backoff_seconds", 1.0)),
            chunk_size=int(fetch.get("chunk_size", 64 * 1024)),
            max_parallel=int(max_parallel) if max_parallel else None,
        )
        placeholder_settings = PlaceholderSettings(
            intro_outro_seconds=float(placeholders.get("intro_outro_seconds", 3.0)),
            prompt_seconds=float(placeholders.get("prompt_seconds", 5.0)),
            background_seconds=float(placeholders.get("background_seconds", 30.0)),
            default_seconds=float(placeholders.get("default_seconds", 3.0)),
        )
        defaults = StorageSettings()
        access_key = storage.get("access_key")
        storage_settings = StorageSettings(
            api_url=str(storage.get("api_url", defaults.api_url)).rstrip("/"),
            zone=str(storage.get("zone", defaults.zone)),
            access_key=str(access_key) if access_key else None,
            cdn_url=str(storage.get("cdn_url", defaults.cdn_url)).rstrip("/"),
            category=str(storage.get("category", defaults.category)),
            timeout_seconds=float(storage.get("timeout_seconds", defaults.timeout_seconds)),
            max_retries=int(storage.get("max_retries", defaults.max_retries)),
            backoff_seconds=float(storage.get("backoff_seconds", defaults.backoff_seconds)),
        )
        asset_settings = AssetSettings(
            **{
                key: str(assets[key])
                for key in ("base_url", "intro", "outro", "prompt", "background")
                if key in assets
            }
        )
        temp_dir_raw = paths.get("temp_dir")
        timeout_raw = audio.get("engine_timeout_seconds", 300.0)

        return cls(
            encoding=encoding,
            mix=mix,
            metadata=program_metadata,
            fetch=fetch_settings,
            placeholders=placeholder_settings,
            storage=storage_settings,
            assets=asset_settings,
            temp_dir=Path(str(temp_dir_raw)).expanduser() if temp_dir_raw else None,
            engine_timeout_seconds=float(timeout_raw) if timeout_raw else None,
        )


def _section(config: Mapping[str, Any], key: str) -> dict[str, Any]:
    raw = config.get(key, {})
    if not isinstance(raw, Mapping):
        return {}
    return dict(raw)
