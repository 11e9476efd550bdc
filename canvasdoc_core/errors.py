from __future__ import annotations


class CanvasDocError(Exception):
    """Base class for errors raised by the canvasdoc packages."""


class StorageMissingError(CanvasDocError):
    """A required artifact was absent when reassembling a document."""

    def __init__(self, artifact_name: str, message: str | None = None) -> None:
        self.artifact_name = artifact_name
        super().__init__(message or f"required artifact missing: {artifact_name}")


class RenderCancelledError(CanvasDocError):
    """A render was cancelled through its cancellation token."""


class ImageLoadError(CanvasDocError):
    def __init__(self, uri: str, reason: str) -> None:
        self.uri = uri
        self.reason = reason
        super().__init__(f"failed to load image `{_shorten(uri)}`: {reason}")


def _shorten(uri: str, limit: int = 96) -> str:
    if len(uri) <= limit:
        return uri
    return uri[: limit - 3] + "..."
