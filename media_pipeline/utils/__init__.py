"""Utility functions for the media production pipeline."""

from media_pipeline.utils.io_utils import download_file, extension_for
from media_pipeline.utils.workspace import RenderWorkspace

__all__ = [
    "download_file",
    "extension_for",
    "RenderWorkspace",
]
