"""Snappy Cloud Image - build and publish Ubuntu Core cloud images.

This package decides whether a newer Ubuntu Core revision needs to be
published, builds it with ubuntu-device-flash, uploads it to an OpenStack
image store and retires old revisions.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
