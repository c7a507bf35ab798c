"""System-image server client.

This module handles:
- URL construction for the channel index of a release/channel/arch
- Fetching and validating the JSON index
- Picking the latest full image revision (deltas are skipped)
"""

from __future__ import annotations

import logging

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from snappy_cloud_image.config import DEFAULT_SYSTEM_IMAGE_URL

logger = logging.getLogger(__name__)

INDEX_FILE_NAME = "index.json"

# Timeout for index requests (seconds)
INDEX_TIMEOUT = 60


class SystemImageError(Exception):
    """Raised when the system-image index cannot be retrieved or read."""

    def __init__(self, message: str, code: str = "system_image_error") -> None:
        """Initialize SystemImageError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class IndexFile(BaseModel):
    """One file of an image entry."""

    model_config = ConfigDict(extra="ignore")

    checksum: str = ""
    order: int = 0
    path: str = ""
    signature: str = ""
    size: int = 0


class IndexImage(BaseModel):
    """One image entry of a channel index."""

    model_config = ConfigDict(extra="ignore")

    type: str
    version: int
    description: str = ""
    version_detail: str = ""
    files: list[IndexFile] = Field(default_factory=list)


class ChannelIndex(BaseModel):
    """Channel index document served as index.json."""

    model_config = ConfigDict(extra="ignore")

    images: list[IndexImage] = Field(default_factory=list)


def build_index_url(
    release: str,
    channel: str,
    arch: str,
    base_url: str = DEFAULT_SYSTEM_IMAGE_URL,
) -> str:
    """Build the URL of a channel index.

    Args:
        release: Dotted release (e.g., '15.04') or 'rolling'.
        channel: Channel name (e.g., 'edge').
        arch: Architecture; 'arm' is served as 'armhf'.
        base_url: Base URL of the system-image server.

    Returns:
        URL of index.json.
    """
    if arch == "arm":
        arch = "armhf"
    return f"{base_url}/{release}/{channel}/generic_{arch}/{INDEX_FILE_NAME}"


def latest_full_version(index: ChannelIndex) -> int:
    """Return the version of the last full image in the index, or 0."""
    for image in reversed(index.images):
        if image.type == "full":
            return image.version
    return 0


class SystemImageClient:
    """Source of upstream revisions from the system-image server.

    Args:
        client: HTTPX client instance.
        base_url: Base URL of the system-image server.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        client: httpx.Client,
        base_url: str = DEFAULT_SYSTEM_IMAGE_URL,
        timeout: float = INDEX_TIMEOUT,
    ) -> None:
        self.client = client
        self.base_url = base_url
        self.timeout = timeout

    def fetch_index(self, release: str, channel: str, arch: str) -> ChannelIndex:
        """Fetch and validate the channel index.

        Raises:
            SystemImageError: If the request fails or the document is invalid.
        """
        url = build_index_url(release, channel, arch, self.base_url)
        logger.debug("Fetching system-image index from %s", url)

        try:
            response = self.client.get(url, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SystemImageError(
                f"HTTP error fetching {url}: {e.response.status_code} {e.response.reason_phrase}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise SystemImageError(
                f"Timeout fetching {url}",
                code="timeout",
            ) from e
        except httpx.RequestError as e:
            raise SystemImageError(
                f"Network error fetching {url}: {e}",
                code="network_error",
            ) from e

        try:
            return ChannelIndex.model_validate_json(response.content)
        except ValidationError as e:
            raise SystemImageError(
                f"Invalid index document at {url}: {e}",
                code="parse_error",
            ) from e

    def get_latest_version(self, release: str, channel: str, arch: str) -> int:
        """Return the latest full revision for a release, channel and arch.

        Raises:
            SystemImageError: If the index cannot be retrieved or read.
        """
        version = latest_full_version(self.fetch_index(release, channel, arch))
        logger.info(
            "Latest system-image version for %s/%s/%s: %d",
            release,
            channel,
            arch,
            version,
        )
        return version


__all__ = [
    "ChannelIndex",
    "INDEX_FILE_NAME",
    "IndexImage",
    "SystemImageClient",
    "SystemImageError",
    "build_index_url",
    "latest_full_version",
]
