"""Image builder module.

This module handles building a local QCOW2 disk image for a build request.
"""

from snappy_cloud_image.imagebuilder.udf import ImageBuildError, UDFQcow2Builder

__all__ = ["ImageBuildError", "UDFQcow2Builder"]
