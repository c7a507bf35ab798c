"""Publish, cleanup and purge workflows.

This module provides the high-level API:
- Runner.execute(): entry point dispatching on the action label
- create: build and publish a new revision when upstream is ahead
- cleanup: keep the newest published images, delete the rest
- purge: delete every image of an image type

The image store is the only durable state; nothing is kept between runs.
"""

from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import TYPE_CHECKING

from snappy_cloud_image.imagebuilder.udf import BUILD_DIR_PREFIX
from snappy_cloud_image.imagestore.naming import dotted_release, normalize_release
from snappy_cloud_image.imagestore.service import VersionNotFoundError
from snappy_cloud_image.types import Action

if TYPE_CHECKING:
    from snappy_cloud_image.types import (
        BuildRequest,
        ImageBuilder,
        ImageStore,
        VersionSource,
    )

logger = logging.getLogger(__name__)

# Number of most recent published images kept by cleanup
KEEP_IMAGES = 3

# Only this release is versioned by system-image revisions
LEGACY_RELEASE = "15.04"


class WorkflowError(Exception):
    """Base error for workflow failures."""

    def __init__(self, message: str, code: str = "workflow_error") -> None:
        super().__init__(message)
        self.code = code


class VersionError(WorkflowError):
    """Raised when upstream is not newer than the published image."""

    def __init__(self, si_version: int, cloud_version: int) -> None:
        super().__init__(
            f"Source version {si_version} is not newer than "
            f"published version {cloud_version}",
            code="version_error",
        )
        self.si_version = si_version
        self.cloud_version = cloud_version


class ActionUnknownError(WorkflowError):
    """Raised for an unsupported action label."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Unknown action {action}", code="unknown_action")
        self.action = action


def _result_or_raise(future: Future[int]) -> int:
    error = future.exception()
    if error is not None:
        raise error
    return future.result()


def remove_artifact(path: Path) -> None:
    """Remove a local image file, logging instead of raising on failure.

    The builder's temporary directory holding the file is removed too once
    it is empty. Other directories are left alone.
    """
    try:
        path.unlink(missing_ok=True)
        logger.debug("Removed %s", path)
        build_dir = path.parent
        if build_dir.name.startswith(BUILD_DIR_PREFIX) and not any(
            build_dir.iterdir()
        ):
            build_dir.rmdir()
            logger.debug("Removed %s", build_dir)
    except OSError as e:
        logger.warning("Failed to remove %s: %s", path, e)


class Runner:
    """Drives the image workflows over injected collaborators.

    Args:
        source: Upstream revision feed.
        store: Published image store.
        builder: Local image builder.
        keep: Number of images kept by cleanup.
    """

    def __init__(
        self,
        source: VersionSource,
        store: ImageStore,
        builder: ImageBuilder,
        keep: int = KEEP_IMAGES,
    ) -> None:
        self.source = source
        self.store = store
        self.builder = builder
        self.keep = keep

    def execute(self, action: str, request: BuildRequest) -> None:
        """Run the workflow selected by ``action``.

        Raises:
            ActionUnknownError: If the action is not supported.
            WorkflowError: If the create workflow finds nothing newer.
            Exception: Collaborator errors propagate unchanged.
        """
        try:
            selected = Action(action)
        except ValueError:
            raise ActionUnknownError(action) from None

        logger.info(
            "Running %s for release %s, channel %s, arch %s",
            selected.value,
            request.release,
            request.channel,
            request.arch,
        )
        if selected is Action.CREATE:
            self.create(request)
        elif selected is Action.CLEANUP:
            self.cleanup(request)
        else:
            self.purge(request)

    def fetch_versions(self, request: BuildRequest) -> tuple[int, int]:
        """Fetch upstream and published versions concurrently.

        Both queries always run to completion. A missing published image
        counts as version 0.

        Returns:
            Tuple of (source version, published version).
        """
        store_request = dataclasses.replace(
            request, release=normalize_release(request.release)
        )
        with ThreadPoolExecutor(max_workers=2) as executor:
            si_future = executor.submit(
                self.source.get_latest_version,
                dotted_release(request.release),
                request.channel,
                request.arch,
            )
            cloud_future = executor.submit(
                self.store.get_latest_version, store_request
            )
            wait([si_future, cloud_future])

        si_version = _result_or_raise(si_future)
        try:
            cloud_version = _result_or_raise(cloud_future)
        except VersionNotFoundError as e:
            logger.info("%s, assuming nothing is published", e)
            cloud_version = 0

        return si_version, cloud_version

    def create(self, request: BuildRequest) -> None:
        """Build and publish a new image when upstream is ahead.

        Raises:
            VersionError: If the upstream revision is not newer.
        """
        version = 0
        if dotted_release(request.release) == LEGACY_RELEASE:
            si_version, cloud_version = self.fetch_versions(request)
            logger.info(
                "Source version %d, published version %d", si_version, cloud_version
            )
            if si_version <= cloud_version:
                raise VersionError(si_version, cloud_version)
            version = si_version

        path = self.builder.create(request, version)
        try:
            self.store.create(path, request, version)
        finally:
            remove_artifact(path)

        logger.info("Published image for release %s", request.release)

    def cleanup(self, request: BuildRequest) -> None:
        """Delete published images beyond the newest ``keep``."""
        store_request = dataclasses.replace(
            request, release=normalize_release(request.release)
        )
        images = self.store.get_versions(store_request)
        if len(images) <= self.keep:
            logger.info("%d image(s) published, nothing to clean up", len(images))
            return

        stale = images[self.keep :]
        logger.info("Removing %d old image(s)", len(stale))
        self.store.delete(*stale)

    def purge(self, request: BuildRequest) -> None:
        """Delete every published image of the request's image type."""
        self.store.purge(request)


__all__ = [
    "ActionUnknownError",
    "KEEP_IMAGES",
    "Runner",
    "VersionError",
    "WorkflowError",
    "remove_artifact",
]
