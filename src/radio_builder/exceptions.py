"""Exception types for the radio program pipeline."""

from __future__ import annotations

__all__ = [
    "AssembleError",
    "AssetNotFoundError",
    "DownloadError",
    "ManifestPublishError",
    "MissingSystemAssetError",
    "MissingUserAssetError",
    "MixError",
    "PlaceholderError",
    "PublishError",
    "RadioBuildError",
    "RequestError",
]


class RadioBuildError(RuntimeError):
    """Base class for every failure raised while building a program."""


class RequestError(RadioBuildError):
    """Raised when a build request is malformed."""


class DownloadError(RadioBuildError):
    """Raised when a remote file could not be downloaded after all retries."""


class AssetNotFoundError(DownloadError):
    """Raised when the origin reports that a remote file does not exist."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"Remote file not found ({status_code}): {url}")
        self.url = url
        self.status_code = status_code


class MissingUserAssetError(RadioBuildError):
    """Raised when a user recording is unavailable. Never recovered."""


class MissingSystemAssetError(RadioBuildError):
    """
    Raised when a static system asset is unavailable.

    The orchestrator recovers by synthesising ``placeholder_seconds`` of silence.
    """

    def __init__(self, url: str, placeholder_seconds: float) -> None:
        super().__init__(f"System asset missing: {url}")
        self.url = url
        self.placeholder_seconds = placeholder_seconds


class PlaceholderError(RadioBuildError):
    """Raised when a silent placeholder could not be synthesised."""


class MixError(RadioBuildError):
    """Raised when answers could not be mixed with their background track."""


class AssembleError(RadioBuildError):
    """Raised when the final program could not be assembled."""


class PublishError(RadioBuildError):
    """Raised when the program audio could not be uploaded."""


class ManifestPublishError(RadioBuildError):
    """Raised when the manifest could not be uploaded. Logged, never fatal."""
