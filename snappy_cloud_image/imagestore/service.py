"""Image store service backed by the OpenStack image API.

This module provides the published-image operations:
- Listing the store inventory and filtering it by name
- Querying the latest published version for a request
- Uploading, deleting and purging images

All calls go through the ``openstack`` client executed by an injected
command runner.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from snappy_cloud_image.execution import CommandError
from snappy_cloud_image.imagestore.naming import (
    build_identifier,
    extract_version,
    image_name_pattern,
    image_type_prefix,
    normalize_release,
    parse_properties,
    version_sort_key,
)

if TYPE_CHECKING:
    from snappy_cloud_image.types import BuildRequest, CommandRunner

logger = logging.getLogger(__name__)

# Column of the image name in `openstack image list` table rows
NAME_COLUMN = 3


class ImageStoreError(Exception):
    """Base error for image store operations."""

    def __init__(self, message: str, code: str = "image_store_error") -> None:
        super().__init__(message)
        self.code = code


class ListError(ImageStoreError):
    """Raised when the image inventory cannot be listed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="list_error")


class CreateError(ImageStoreError):
    """Raised when an image upload fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="create_error")


class DeleteError(ImageStoreError):
    """Raised when deleting images fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="delete_error")


class ParseError(ImageStoreError):
    """Raised when a published name carries no integer version."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="parse_error")


class VersionNotFoundError(ImageStoreError):
    """Raised when no image is published for a release, channel and arch."""

    def __init__(self, release: str, channel: str, arch: str) -> None:
        super().__init__(
            f"Version not found for release {release}, channel {channel} "
            f"and arch {arch}",
            code="version_not_found",
        )
        self.release = release
        self.channel = channel
        self.arch = arch


class OpenStackImageStore:
    """Published images held in an OpenStack (Glance) image store.

    Args:
        runner: Command runner used to call the OpenStack client.
        openstack_bin: OpenStack client executable.
    """

    def __init__(self, runner: CommandRunner, openstack_bin: str = "openstack") -> None:
        self.runner = runner
        self.openstack_bin = openstack_bin

    def _list_command(self) -> list[str]:
        return [
            self.openstack_bin,
            "image",
            "list",
            "--private",
            "--property",
            "status=active",
        ]

    def list_matching(self, pattern: str) -> list[str]:
        """List image names containing ``pattern``, in listing order.

        The listing is a table whose rows look like
        ``| <uuid> | <name> |``; the name is the fourth field.

        Raises:
            ListError: If the listing command fails.
        """
        try:
            output = self.runner.run(self._list_command())
        except CommandError as e:
            raise ListError(f"Failed to list images: {e}") from e

        names: list[str] = []
        for line in output.splitlines():
            if pattern not in line:
                continue
            fields = line.split()
            if len(fields) > NAME_COLUMN:
                names.append(fields[NAME_COLUMN])
        return names

    def get_versions(self, request: BuildRequest) -> list[str]:
        """Return the published names for a request, newest first.

        Integer versions are ordered numerically, timestamps as text (see
        ``version_sort_key``). An empty list is returned when nothing is
        published.

        Raises:
            ListError: If the listing command fails.
        """
        names = self.list_matching(image_name_pattern(request))
        return sorted(names, key=version_sort_key, reverse=True)

    def get_latest_version(self, request: BuildRequest) -> int:
        """Return the highest published integer version for a request.

        Raises:
            ListError: If the listing command fails.
            VersionNotFoundError: If nothing is published.
            ParseError: If the latest name has no integer version.
        """
        names = self.get_versions(request)
        if not names:
            raise VersionNotFoundError(
                normalize_release(request.release), request.channel, request.arch
            )

        latest = names[0]
        try:
            version = extract_version(latest)
        except ValueError as e:
            raise ParseError(f"Cannot read version from {latest}: {e}") from e

        logger.debug("Latest published image: %s", latest)
        return version

    def create(self, path: Path, request: BuildRequest, version: int) -> None:
        """Upload a local QCOW2 file as a new image.

        Raises:
            CreateError: If the upload fails.
        """
        identifier = build_identifier(request, version)
        cmd = [
            self.openstack_bin,
            "image",
            "create",
            "--disk-format",
            "qcow2",
            "--file",
            str(path),
        ]
        for prop in parse_properties(request.extra_properties):
            cmd.extend(["--property", prop])
        cmd.append(identifier)

        logger.info("Uploading %s as %s", path, identifier)
        try:
            self.runner.run(cmd)
        except CommandError as e:
            raise CreateError(f"Failed to create image {identifier}: {e}") from e

    def delete(self, *identifiers: str) -> None:
        """Delete the given images with a single client call.

        Raises:
            DeleteError: If the deletion fails.
        """
        logger.info("Deleting %d image(s)", len(identifiers))
        try:
            self.runner.run([self.openstack_bin, "image", "delete", *identifiers])
        except CommandError as e:
            raise DeleteError(f"Failed to delete images: {e}") from e

    def purge(self, request: BuildRequest) -> None:
        """Delete every image of the request's image type.

        Release, channel and arch are ignored. This cannot be undone.

        Raises:
            ListError: If the listing command fails.
            DeleteError: If the deletion fails.
        """
        prefix = image_type_prefix(request.image_type)
        names = self.list_matching(prefix)
        if not names:
            logger.info("No images under %s to purge", prefix)
            return

        logger.warning("Purging %d image(s) under %s", len(names), prefix)
        self.delete(*names)


__all__ = [
    "CreateError",
    "DeleteError",
    "ImageStoreError",
    "ListError",
    "OpenStackImageStore",
    "ParseError",
    "VersionNotFoundError",
]
