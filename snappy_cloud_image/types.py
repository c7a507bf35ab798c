"""Shared type definitions for snappy_cloud_image.

This module contains the build request, the action labels and the
collaborator protocols shared across subpackages to avoid circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol


class Action(str, Enum):
    """Workflow selected on the command line."""

    CREATE = "create"
    CLEANUP = "cleanup"
    PURGE = "purge"


@dataclass(frozen=True)
class BuildRequest:
    """Parameters of one image build or retention run.

    Attributes:
        release: Ubuntu Core release, dotted ("15.04") or compact ("1504").
        os_channel: Channel of the OS snap.
        kernel_channel: Channel of the kernel snap.
        gadget_channel: Channel of the gadget snap.
        arch: Target architecture (amd64, arm, ...).
        image_type: Image type segment of the published name.
        extra_properties: Comma separated key='value' pairs attached on upload.
        os_snap: OS snap name passed to the image builder.
        kernel_snap: Kernel snap name passed to the image builder.
        gadget_snap: Gadget snap name passed to the image builder.
    """

    release: str = "rolling"
    os_channel: str = "edge"
    kernel_channel: str = "edge"
    gadget_channel: str = "edge"
    arch: str = "amd64"
    image_type: str = "custom"
    extra_properties: str = ""
    os_snap: str = "ubuntu-core"
    kernel_snap: str = "canonical-pc-linux"
    gadget_snap: str = "canonical-pc"

    @property
    def channel(self) -> str:
        """Channel used for naming and version queries.

        The kernel channel wins when it agrees with the gadget channel,
        otherwise the OS channel is used.
        """
        if self.kernel_channel == self.gadget_channel:
            return self.kernel_channel
        return self.os_channel


class CommandRunner(Protocol):
    """Runs an external command and returns its combined output."""

    def run(self, args: list[str], timeout: float | None = None) -> str: ...


class VersionSource(Protocol):
    """Upstream feed of source revisions."""

    def get_latest_version(self, release: str, channel: str, arch: str) -> int: ...


class ImageBuilder(Protocol):
    """Produces a local disk image for a request and version."""

    def create(self, request: BuildRequest, version: int) -> Path: ...


class ImageStore(Protocol):
    """Published image inventory."""

    def get_latest_version(self, request: BuildRequest) -> int: ...

    def get_versions(self, request: BuildRequest) -> list[str]: ...

    def create(self, path: Path, request: BuildRequest, version: int) -> None: ...

    def delete(self, *identifiers: str) -> None: ...

    def purge(self, request: BuildRequest) -> None: ...


__all__ = [
    "Action",
    "BuildRequest",
    "CommandRunner",
    "ImageBuilder",
    "ImageStore",
    "VersionSource",
]
