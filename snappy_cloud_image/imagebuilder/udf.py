"""Image builder based on ubuntu-device-flash.

This module handles:
- Composing the ubuntu-device-flash command for a build request
- Producing a raw disk image in a fresh temporary directory
- Converting the raw image to QCOW2 with qemu-img
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from snappy_cloud_image.execution import CommandError
from snappy_cloud_image.imagestore.naming import dotted_release

if TYPE_CHECKING:
    from snappy_cloud_image.types import BuildRequest, CommandRunner

logger = logging.getLogger(__name__)

BUILD_DIR_PREFIX = "snappy-cloud-image-"
RAW_OUTPUT_FILE_NAME = "udf.raw"
OUTPUT_FILE_NAME = "udf.img"
QEMU_IMG = "/usr/bin/qemu-img"

# Releases built from a system-image revision rather than from snaps
LEGACY_RELEASE = "15.04"


class ImageBuildError(Exception):
    """Raised when the image cannot be built."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_error",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code


def compose_udf_command(
    request: BuildRequest,
    version: int,
    output_path: Path,
) -> list[str]:
    """Compose the ubuntu-device-flash command for a request.

    Args:
        request: Build request.
        version: System-image revision; 0 builds the channel head.
        output_path: Path of the raw image to write.

    Returns:
        Command as list of strings suitable for subprocess.
    """
    cmd = ["sudo", "ubuntu-device-flash"]

    if version > 0:
        cmd.append(f"--revision={version}")

    cmd.extend(["core", request.release, "--channel", request.channel])

    if dotted_release(request.release) != LEGACY_RELEASE:
        cmd.extend(
            [
                "--os",
                request.os_snap,
                "--kernel",
                request.kernel_snap,
                "--gadget",
                request.gadget_snap,
            ]
        )

    cmd.append("--developer-mode")

    if request.arch == "arm":
        cmd.extend(["--oem", "beagleblack"])

    cmd.extend(["-o", str(output_path)])
    return cmd


def compose_convert_command(raw_path: Path, output_path: Path, compat: str) -> list[str]:
    """Compose the qemu-img command converting a raw image to QCOW2."""
    return [
        QEMU_IMG,
        "convert",
        "-O",
        "qcow2",
        "-o",
        f"compat={compat}",
        str(raw_path),
        str(output_path),
    ]


class UDFQcow2Builder:
    """Build QCOW2 images with ubuntu-device-flash and qemu-img.

    Args:
        runner: Command runner for the external tools.
        qcow2_compat: QCOW2 compatibility level.
        tmp_dir: Parent directory for build directories (system default
            if None).
        timeout: Timeout in seconds for each build command.
    """

    def __init__(
        self,
        runner: CommandRunner,
        qcow2_compat: str = "1.1",
        tmp_dir: Path | None = None,
        timeout: float | None = None,
    ) -> None:
        self.runner = runner
        self.qcow2_compat = qcow2_compat
        self.tmp_dir = tmp_dir
        self.timeout = timeout

    def create(self, request: BuildRequest, version: int) -> Path:
        """Build an image and return the path of the QCOW2 file.

        The file sits alone in a fresh ``BUILD_DIR_PREFIX`` directory; the
        caller owns both and must remove them.

        Raises:
            ImageBuildError: If either build step fails.
        """
        build_dir = Path(
            tempfile.mkdtemp(
                prefix=BUILD_DIR_PREFIX,
                dir=str(self.tmp_dir) if self.tmp_dir else None,
            )
        )
        raw_path = build_dir / RAW_OUTPUT_FILE_NAME
        output_path = build_dir / OUTPUT_FILE_NAME
        logger.debug("Target image filename: %s", raw_path)

        try:
            self.runner.run(
                compose_udf_command(request, version, raw_path), timeout=self.timeout
            )
            logger.debug("Converting to QCOW2 format")
            self.runner.run(
                compose_convert_command(raw_path, output_path, self.qcow2_compat),
                timeout=self.timeout,
            )
        except CommandError as e:
            shutil.rmtree(build_dir, ignore_errors=True)
            raise ImageBuildError(
                f"Image build failed: {e}", exit_code=e.exit_code
            ) from e

        raw_path.unlink(missing_ok=True)

        logger.info("Built image %s", output_path)
        return output_path


__all__ = [
    "BUILD_DIR_PREFIX",
    "ImageBuildError",
    "OUTPUT_FILE_NAME",
    "RAW_OUTPUT_FILE_NAME",
    "UDFQcow2Builder",
    "compose_convert_command",
    "compose_udf_command",
]
