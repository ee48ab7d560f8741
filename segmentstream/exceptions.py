"""Exception types raised by segment-stream."""

from pathlib import Path
from typing import Optional


class SegmentStreamError(Exception):
    """Base class for segment-stream errors."""


class StartupError(SegmentStreamError):
    """The engine cannot prepare its working storage and must not start."""

    def __init__(self, message: str, path: Optional[Path] = None):
        super().__init__(message)
        self.path = path


class PlaylistStoreError(SegmentStreamError):
    """The playlist file exists but cannot be read or parsed."""

    def __init__(
        self,
        message: str,
        path: Optional[Path] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.path = path
        self.original_error = original_error
