"""System-image server module.

This module handles discovering the latest upstream revision of an
Ubuntu Core release/channel/arch from the system-image channel index.
"""

from snappy_cloud_image.sysimage.fetch import (
    SystemImageClient,
    SystemImageError,
    build_index_url,
)

__all__ = ["SystemImageClient", "SystemImageError", "build_index_url"]
