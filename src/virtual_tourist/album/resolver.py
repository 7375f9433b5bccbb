from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

from ..adapters.photos.base import DownloadError, PhotoSearchAdapter
from ..domain.models import PhotoReference

LOGGER = logging.getLogger(__name__)


class DownloadInProgressError(DownloadError):
    """Raised when a reference is already being resolved elsewhere."""


class PhotoResolver:
    """Fetch content for pending references, one attempt per reference at a time.

    The in-flight set is shared by every caller of this instance, including
    the background prefetch job running on its own thread.
    """

    def __init__(self, adapter: PhotoSearchAdapter) -> None:
        self._adapter = adapter
        self._in_flight: set[int] = set()
        self._guard = threading.Lock()

    def is_in_flight(self, photo_id: int) -> bool:
        with self._guard:
            return photo_id in self._in_flight

    def _claim(self, photo_id: int) -> bool:
        with self._guard:
            if photo_id in self._in_flight:
                return False
            self._in_flight.add(photo_id)
            return True

    def _release(self, photo_id: int) -> None:
        with self._guard:
            self._in_flight.discard(photo_id)

    async def resolve(
        self,
        photo: PhotoReference,
        *,
        on_resolved: Callable[[bytes], object] | None = None,
    ) -> bytes:
        """Download the content behind ``photo.source_url``.

        ``on_resolved`` runs with the downloaded bytes before the reference is
        released, so a write-back completes before another attempt can start.
        """
        if photo.content is not None:
            return photo.content
        if not photo.source_url:
            raise DownloadError(f"Photo {photo.id} has no source URL")
        if not self._claim(photo.id):
            raise DownloadInProgressError(f"Photo {photo.id} is already being downloaded")

        try:
            content = await asyncio.to_thread(self._adapter.download, photo.source_url)
            if on_resolved is not None:
                on_resolved(content)
        finally:
            self._release(photo.id)

        LOGGER.debug("Resolved photo %s (%d bytes)", photo.id, len(content))
        return content
