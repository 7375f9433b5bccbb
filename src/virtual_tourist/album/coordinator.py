from __future__ import annotations

import asyncio
import logging
import random
from typing import Iterable

from ..adapters.photos.base import DownloadError
from ..domain.models import AlbumState, PhotoReference, ResolveReport
from ..search.bbox import bounding_box_for
from ..search.pages import SearchPagePicker
from ..search.sampling import sample_urls
from ..settings import SearchSettings
from ..storage.album import LocationPhotoStore, PhotoNotFoundError
from .resolver import DownloadInProgressError, PhotoResolver

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT_DOWNLOADS = 6


class AlbumCoordinator:
    def __init__(
        self,
        *,
        store: LocationPhotoStore,
        picker: SearchPagePicker,
        resolver: PhotoResolver,
        search_settings: SearchSettings,
        max_concurrent_downloads: int = DEFAULT_MAX_CONCURRENT_DOWNLOADS,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._picker = picker
        self._resolver = resolver
        self._search = search_settings
        self._max_concurrent_downloads = max(max_concurrent_downloads, 1)
        self._rng = rng or random.Random()

    @property
    def store(self) -> LocationPhotoStore:
        return self._store

    async def refresh_album(self, location_id: int) -> list[PhotoReference]:
        """Fill an empty album with a random batch of pending photo URLs.

        Nothing is written unless the search and the sampling both succeed.
        An album that already holds references is left alone, including when
        another refresh fills it while this one is waiting on the network.
        ``ApiError`` and ``NoPhotosError`` propagate to the caller.
        """
        location = self._store.get_location(location_id)
        if self._store.album_state(location.id) != "empty":
            LOGGER.info("Album for location %s is already filled; use replace for a new set", location.id)
            return []
        bbox = bounding_box_for(location, self._search)

        pick = await asyncio.to_thread(self._picker.pick_random_page, bbox)
        items = await asyncio.to_thread(self._picker.fetch_page_items, bbox, pick)
        urls = sample_urls(items, self._search.url_field, self._search.max_photos, rng=self._rng)

        inserted = self._store.insert_pending_batch(location.id, urls, require_empty=True)
        LOGGER.info(
            "Refreshed album for location %s: page %d of %d, %d photo(s) stored",
            location.id,
            pick.page,
            pick.total_pages,
            len(inserted),
        )
        return inserted

    async def replace_album(self, location_id: int) -> list[PhotoReference]:
        """Clear the album immediately, then populate it again."""
        self._store.get_location(location_id)
        self._store.delete_all(location_id)
        return await self.refresh_album(location_id)

    def remove_selected(self, location_id: int, photo_ids: Iterable[int]) -> list[int]:
        self._store.get_location(location_id)
        return self._store.delete(location_id, photo_ids)

    def album_state(self, location_id: int) -> AlbumState:
        self._store.get_location(location_id)
        return self._store.album_state(location_id)

    async def resolve(self, photo: PhotoReference) -> bytes:
        def write_back(content: bytes) -> None:
            if not self._store.fill_content(photo.id, content):
                LOGGER.info("Discarded content for photo %s: already resolved or removed", photo.id)

        return await self._resolver.resolve(photo, on_resolved=write_back)

    async def resolve_photo(self, photo_id: int) -> bytes:
        photo = self._store.get_photo(photo_id)
        if photo is None:
            raise PhotoNotFoundError(f"Photo {photo_id} does not exist")
        return await self.resolve(photo)

    async def resolve_pending(
        self,
        *,
        location_id: int | None = None,
        limit: int | None = None,
    ) -> ResolveReport:
        """Resolve pending references concurrently; failures stay per photo."""
        if location_id is not None:
            self._store.get_location(location_id)
        photos = self._store.list_pending(limit=limit, location_id=location_id)
        report = ResolveReport(resolved=[], failed=[], skipped=[])
        if not photos:
            return report

        semaphore = asyncio.Semaphore(self._max_concurrent_downloads)

        async def resolve_one(photo: PhotoReference) -> None:
            async with semaphore:
                try:
                    await self.resolve(photo)
                except DownloadInProgressError:
                    report.skipped.append(photo.id)
                except DownloadError as exc:
                    LOGGER.warning("Photo %s stays pending: %s", photo.id, exc)
                    report.failed.append(photo.id)
                else:
                    report.resolved.append(photo.id)

        await asyncio.gather(*(resolve_one(photo) for photo in photos))
        report.resolved.sort()
        report.failed.sort()
        report.skipped.sort()
        return report
