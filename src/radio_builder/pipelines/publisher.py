"""Upload finished programs and their manifests to the storage origin."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType

import httpx

from radio_builder.config.settings import StorageSettings
from radio_builder.exceptions import ManifestPublishError, PublishError
from radio_builder.storage.naming import (
    ProgramDescriptor,
    build_manifest_filename,
    build_program_filename,
    build_storage_path,
    public_url,
)
from radio_builder.utils.retry import linear_backoff, retry_call

from .manifest import Manifest

__all__ = ["PublishedFile", "PublishedManifest", "Publisher"]

RETRYABLE_STATUSES = frozenset({408, 425, 429})

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PublishedFile:
    url: str
    file_name: str
    size: int
    storage_path: str


@dataclass(frozen=True, slots=True)
class PublishedManifest:
    url: str
    file_name: str


class _RetryableUploadError(Exception):
    """Transport failure or a status worth trying again."""


class Publisher:
    """PUTs files to the storage API and reads manifests back from the CDN."""

    def __init__(
        self,
        settings: StorageSettings,
        *,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True)
        self._sleep = sleep
        self._clock = clock

    def __enter__(self) -> Publisher:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def publish(self, local_path: Path, world: str, program_id: int) -> PublishedFile:
        """Upload the program audio under a timestamped, collision-free name."""
        path = Path(local_path)
        descriptor = self._descriptor(world, program_id, PublishError)
        file_name = build_program_filename(descriptor, int(self._clock() * 1000))
        storage_path = build_storage_path(self.settings.category, descriptor, file_name)
        try:
            size = path.stat().st_size
        except OSError as exc:
            raise PublishError(f"Cannot read program file {path}: {exc}") from exc

        try:
            self._upload(storage_path, path.read_bytes, "audio/mpeg")
        except (_RetryableUploadError, httpx.HTTPError, OSError, ValueError) as exc:
            raise PublishError(f"Failed to upload {file_name}: {exc}") from exc

        url = public_url(self.settings.cdn_url, storage_path)
        logger.info("Published %s (%d bytes) to %s", file_name, size, url)
        return PublishedFile(url=url, file_name=file_name, size=size, storage_path=storage_path)

    def publish_manifest(
        self, manifest: Manifest, world: str, program_id: int
    ) -> PublishedManifest:
        """Upload the manifest, replacing the previous one for this program."""
        descriptor = self._descriptor(world, program_id, ManifestPublishError)
        file_name = build_manifest_filename(descriptor)
        storage_path = build_storage_path(self.settings.category, descriptor, file_name)
        body = json.dumps(manifest.to_dict(), indent=2).encode("utf-8")
        try:
            self._upload(storage_path, lambda: body, "application/json")
        except (_RetryableUploadError, PublishError, httpx.HTTPError, ValueError) as exc:
            raise ManifestPublishError(f"Failed to upload {file_name}: {exc}") from exc

        url = public_url(self.settings.cdn_url, storage_path)
        logger.info("Published manifest %s", url)
        return PublishedManifest(url=url, file_name=file_name)

    def fetch_manifest(self, world: str, program_id: int) -> Manifest | None:
        """Return the last published manifest, or ``None`` if there is none usable."""
        descriptor = ProgramDescriptor(world=world, program_id=program_id)
        storage_path = build_storage_path(
            self.settings.category, descriptor, build_manifest_filename(descriptor)
        )
        url = public_url(self.settings.cdn_url, storage_path)
        try:
            # Cache-buster so the CDN edge does not serve a stale manifest.
            response = self._client.get(
                url,
                params={"v": int(self._clock() * 1000)},
                timeout=self.settings.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.warning("Could not fetch manifest %s: %s", url, exc)
            return None

        if response.status_code == 404:
            logger.info("No manifest published yet for %s", descriptor.slug)
            return None
        if not response.is_success:
            logger.warning("Manifest request %s returned HTTP %d", url, response.status_code)
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            logger.warning("Manifest %s is not valid JSON: %s", url, exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("Manifest %s is not a JSON object", url)
            return None
        try:
            return Manifest.from_mapping(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("Manifest %s could not be parsed: %s", url, exc)
            return None

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    @staticmethod
    def _descriptor(
        world: str, program_id: int, error_type: type[Exception]
    ) -> ProgramDescriptor:
        try:
            return ProgramDescriptor(world=world, program_id=program_id)
        except ValueError as exc:
            raise error_type(str(exc)) from exc

    def _upload(
        self, storage_path: str, read_body: Callable[[], bytes], content_type: str
    ) -> None:
        if not self.settings.access_key:
            raise ValueError("storage.access_key is not configured.")
        url = f"{self.settings.api_url.rstrip('/')}/{self.settings.zone}{storage_path}"
        headers = {"AccessKey": self.settings.access_key, "Content-Type": content_type}

        def _attempt() -> None:
            try:
                response = self._client.put(
                    url,
                    content=read_body(),
                    headers=headers,
                    timeout=self.settings.timeout_seconds,
                )
            except httpx.TransportError as exc:
                raise _RetryableUploadError(f"transport error: {exc}") from exc
            if response.status_code in (200, 201):
                return
            message = f"HTTP {response.status_code} {response.reason_phrase}"
            if response.status_code >= 500 or response.status_code in RETRYABLE_STATUSES:
                raise _RetryableUploadError(message)
            raise PublishError(f"Storage rejected upload of {storage_path}: {message}")

        retry_call(
            _attempt,
            max_attempts=self.settings.max_retries + 1,
            backoff=linear_backoff(self.settings.backoff_seconds),
            retry_on=(_RetryableUploadError,),
            sleep=self._sleep,
            describe=f"Upload of {storage_path}",
        )
