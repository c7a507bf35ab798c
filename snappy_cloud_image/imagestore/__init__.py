"""Image store module.

This module handles:
- The naming scheme of published images
- Listing, uploading, deleting and purging images in OpenStack
"""

from snappy_cloud_image.imagestore.naming import (
    build_identifier,
    dotted_release,
    normalize_release,
)
from snappy_cloud_image.imagestore.service import (
    CreateError,
    DeleteError,
    ImageStoreError,
    ListError,
    OpenStackImageStore,
    ParseError,
    VersionNotFoundError,
)

__all__ = [
    # Naming
    "build_identifier",
    "dotted_release",
    "normalize_release",
    # Service
    "CreateError",
    "DeleteError",
    "ImageStoreError",
    "ListError",
    "OpenStackImageStore",
    "ParseError",
    "VersionNotFoundError",
]
