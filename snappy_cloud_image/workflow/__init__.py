"""Workflow orchestration module.

This module handles:
- Deciding whether a new image must be built
- Building and publishing it
- Retention cleanup and purging of published images
"""

from snappy_cloud_image.workflow.service import (
    KEEP_IMAGES,
    ActionUnknownError,
    Runner,
    VersionError,
    WorkflowError,
)

__all__ = ["KEEP_IMAGES", "ActionUnknownError", "Runner", "VersionError", "WorkflowError"]
