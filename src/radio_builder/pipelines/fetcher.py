"""Download remote audio files and normalise them to the canonical encoding."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from types import TracebackType

import httpx

from radio_builder.config.settings import FetchSettings, PlaceholderSettings
from radio_builder.exceptions import (
    AssetNotFoundError,
    DownloadError,
    MissingSystemAssetError,
    MissingUserAssetError,
)
from radio_builder.utils.ffmpeg import FFmpeg, FFmpegError, first_audio_stream
from radio_builder.utils.retry import linear_backoff, retry_call

from .encoding import AudioEncoding
from .segments import AssetRequest, is_system_asset

__all__ = ["RemoteFileFetcher"]

NOT_FOUND_STATUSES = frozenset({404, 410})

logger = logging.getLogger(__name__)


class _TransientDownloadError(Exception):
    """A failure worth retrying: transport error, timeout, bad status or disk write."""


class RemoteFileFetcher:
    """Fetches remote files with bounded retries and a per-download deadline."""

    def __init__(
        self,
        settings: FetchSettings,
        encoding: AudioEncoding,
        *,
        placeholders: PlaceholderSettings | None = None,
        client: httpx.Client | None = None,
        ffmpeg: FFmpeg | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.encoding = encoding
        self.placeholders = placeholders or PlaceholderSettings()
        self.ffmpeg = ffmpeg or FFmpeg()
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True)
        self._sleep = sleep
        self._clock = clock

    def __enter__(self) -> RemoteFileFetcher:
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

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def acquire(self, request: AssetRequest) -> Path:
        """Fetch the file behind ``request``, classifying a missing file by owner.

        Raises :class:`MissingSystemAssetError` for unavailable static assets so the
        caller can substitute silence, and :class:`MissingUserAssetError` for any
        unavailable user recording.
        """
        system_asset = is_system_asset(request)
        try:
            self.fetch(request.url, request.destination)
        except AssetNotFoundError as exc:
            if system_asset:
                raise MissingSystemAssetError(
                    request.url, self.placeholders.duration_for(request.kind)
                ) from exc
            raise MissingUserAssetError(f"User recording not found: {request.url}") from exc
        except DownloadError as exc:
            if system_asset:
                raise
            raise MissingUserAssetError(
                f"User recording could not be downloaded: {request.url} ({exc})"
            ) from exc
        return request.destination

    def fetch(self, url: str, destination: Path, max_retries: int | None = None) -> None:
        """Download ``url`` to ``destination`` in the canonical encoding."""
        retries = max_retries if max_retries is not None else self.settings.max_retries
        attempts = retries + 1
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        try:
            retry_call(
                lambda: self._download_once(url, destination),
                max_attempts=attempts,
                backoff=linear_backoff(self.settings.backoff_seconds),
                retry_on=(_TransientDownloadError,),
                sleep=self._sleep,
                describe=f"Download of {destination.name}",
            )
        except _TransientDownloadError as exc:
            destination.unlink(missing_ok=True)
            raise DownloadError(
                f"Failed to download {url} after {attempts} attempt(s): {exc}"
            ) from exc
        except AssetNotFoundError:
            destination.unlink(missing_ok=True)
            raise

        self.normalize(destination)

    def normalize(self, path: Path) -> None:
        """Transcode ``path`` in place unless it already uses the canonical encoding."""
        try:
            metadata = self.ffmpeg.probe(path)
        except FFmpegError as exc:
            path.unlink(missing_ok=True)
            raise DownloadError(
                f"Downloaded file {path.name} is not readable audio: {exc}"
            ) from exc

        stream = first_audio_stream(metadata)
        if stream is None:
            path.unlink(missing_ok=True)
            raise DownloadError(f"Downloaded file {path.name} has no audio stream.")
        if self.encoding.matches(stream):
            logger.debug("%s already uses the canonical encoding", path.name)
            return

        logger.info(
            "Converting %s from %s/%sHz/%sch to %s",
            path.name,
            stream.get("codec_name"),
            stream.get("sample_rate"),
            stream.get("channels"),
            self.encoding.format,
        )
        converted = path.with_name(f"{path.stem}.converted.{self.encoding.format}")
        try:
            self.ffmpeg.run(
                ["-i", str(path), "-vn", *self.encoding.output_args(), str(converted)]
            )
            os.replace(converted, path)
        except (FFmpegError, OSError) as exc:
            converted.unlink(missing_ok=True)
            path.unlink(missing_ok=True)
            raise DownloadError(f"Failed to convert {path.name}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _download_once(self, url: str, destination: Path) -> None:
        timeout = self.settings.timeout_seconds
        deadline = self._clock() + timeout
        try:
            with self._client.stream("GET", url, timeout=httpx.Timeout(timeout)) as response:
                if response.status_code in NOT_FOUND_STATUSES:
                    raise AssetNotFoundError(url, response.status_code)
                if not response.is_success:
                    raise _TransientDownloadError(
                        f"HTTP {response.status_code} {response.reason_phrase}"
                    )

                total = _content_length(response)
                received = 0
                next_mark = 10
                with destination.open("wb") as handle:
                    for chunk in response.iter_bytes(self.settings.chunk_size):
                        if self._clock() > deadline:
                            raise _TransientDownloadError(f"timed out after {timeout:.0f}s")
                        handle.write(chunk)
                        received = response.num_bytes_downloaded
                        if total and received * 100 >= next_mark * total:
                            percent = received * 100 // total
                            logger.debug("%s: %d%%", destination.name, percent)
                            next_mark = (percent // 10 + 1) * 10
        except httpx.TimeoutException as exc:
            destination.unlink(missing_ok=True)
            raise _TransientDownloadError(f"timed out after {timeout:.0f}s") from exc
        except httpx.TransportError as exc:
            destination.unlink(missing_ok=True)
            raise _TransientDownloadError(f"transport error: {exc}") from exc
        except OSError as exc:
            destination.unlink(missing_ok=True)
            raise _TransientDownloadError(f"write error: {exc}") from exc
        except _TransientDownloadError:
            destination.unlink(missing_ok=True)
            raise

        if total and received != total:
            destination.unlink(missing_ok=True)
            raise _TransientDownloadError(f"received {received} of {total} bytes")
        logger.debug("Downloaded %s (%d bytes)", destination.name, received)


def _content_length(response: httpx.Response) -> int:
    try:
        return int(response.headers.get("Content-Length") or 0)
    except ValueError:
        return 0
