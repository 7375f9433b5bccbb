from __future__ import annotations

from typing import Protocol

from ...domain.models import BoundingBox, SearchPage


class ApiError(RuntimeError):
    """Raised when the remote photo search cannot be completed or parsed."""


class DownloadError(RuntimeError):
    """Raised when the content behind a photo URL cannot be retrieved."""


class PhotoSearchAdapter(Protocol):
    def search(self, bbox: BoundingBox, *, page: int | None = None) -> SearchPage:
        """Return one page of photos taken inside the bounding box."""

    def download(self, url: str) -> bytes:
        """Return the binary content stored at a photo URL."""
