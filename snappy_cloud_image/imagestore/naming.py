"""Image naming scheme for the image store.

Published images are named

    ubuntu-core/<image_type>/ubuntu-<release>-snappy-core-<arch>-<channel>-<version>-disk1.img

where ``release`` is in compact form ("1504") and ``version`` is either the
system-image revision (15.04 images) or a UTC timestamp
``YYYYMMDDHHMMSS.ffffff`` for images without an upstream revision.

Names are ordered with ``version_sort_key``: integer versions compare as
numbers, so "99" sorts before "100". Timestamps are fixed width and compare
as text.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import datetime, timezone

from snappy_cloud_image.types import BuildRequest

IMAGE_ROOT = "ubuntu-core"
IMAGE_NAME_SUFFIX = "disk1.img"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S.%f"

# Index of the version once a name is split on "-"
VERSION_FIELD = 7

_COMPACT_RELEASE = re.compile(r"^\d{4}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_release(release: str) -> str:
    """Return the compact release used in image names ("15.04" -> "1504")."""
    return release.replace(".", "", 1)


def dotted_release(release: str) -> str:
    """Return the dotted release used upstream ("1504" -> "15.04").

    Only 4-digit numeric releases are converted; anything else, including
    already dotted releases, is returned unchanged.
    """
    if _COMPACT_RELEASE.match(release):
        return f"{release[:2]}.{release[2:]}"
    return release


def image_type_prefix(image_type: str) -> str:
    """Return the prefix shared by every image of one type."""
    return f"{IMAGE_ROOT}/{image_type}/"


def image_name_pattern(request: BuildRequest) -> str:
    """Return the name prefix shared by all versions of a request."""
    return (
        f"{image_type_prefix(request.image_type)}"
        f"ubuntu-{normalize_release(request.release)}-snappy-core-"
        f"{request.arch}-{request.channel}-"
    )


def format_version(version: int, now: Callable[[], datetime] = _utcnow) -> str:
    """Render the version segment of an image name.

    Version 0 means the image has no upstream revision; the current UTC
    time is used instead. Two calls within the same microsecond yield the
    same value.
    """
    if version == 0:
        return now().strftime(TIMESTAMP_FORMAT)
    return str(version)


def build_identifier(
    request: BuildRequest,
    version: int,
    now: Callable[[], datetime] = _utcnow,
) -> str:
    """Build the published name of an image.

    Args:
        request: Build request.
        version: Upstream revision, or 0 for a timestamped name.
        now: Clock used for timestamped names.

    Returns:
        Image identifier.
    """
    return (
        f"{image_name_pattern(request)}"
        f"{format_version(version, now)}-{IMAGE_NAME_SUFFIX}"
    )


def extract_version(identifier: str) -> int:
    """Return the integer version embedded in an image name.

    Raises:
        ValueError: If the version segment is missing or not an integer.
    """
    parts = identifier.split("-")
    if len(parts) <= VERSION_FIELD:
        raise ValueError(f"No version field in image name {identifier}")
    return int(parts[VERSION_FIELD])


def version_sort_key(identifier: str) -> tuple[int, int, str]:
    """Sort key ordering image names by version.

    Names with an integer version rank above the rest and compare by that
    integer. Other names, timestamped ones included, compare as text.
    """
    try:
        return (1, extract_version(identifier), identifier)
    except ValueError:
        return (0, 0, identifier)


def parse_properties(extra_properties: str) -> list[str]:
    """Split ``k1='v1',k2='v2'`` into its pairs, keeping their order."""
    return [item.strip() for item in extra_properties.split(",") if item.strip()]


__all__ = [
    "IMAGE_NAME_SUFFIX",
    "IMAGE_ROOT",
    "TIMESTAMP_FORMAT",
    "VERSION_FIELD",
    "build_identifier",
    "dotted_release",
    "extract_version",
    "format_version",
    "image_name_pattern",
    "image_type_prefix",
    "normalize_release",
    "parse_properties",
    "version_sort_key",
]
