from __future__ import annotations

import random
import threading
from pathlib import Path

import pytest

from virtual_tourist.adapters.photos.base import ApiError, DownloadError
from virtual_tourist.album import AlbumCoordinator, PhotoResolver
from virtual_tourist.domain.models import BoundingBox, SearchPage
from virtual_tourist.search.pages import SearchPagePicker
from virtual_tourist.settings import SearchSettings
from virtual_tourist.storage.album import LocationPhotoStore
from virtual_tourist.storage.db import initialize_database


class FakeSearchAdapter:
    def __init__(
        self,
        *,
        pages: int = 1,
        items: list[dict] | None = None,
        error: str | None = None,
        contents: dict[str, bytes] | None = None,
    ) -> None:
        self.pages = pages
        self.items = items if items is not None else []
        self.error = error
        self.contents = contents or {}
        self.search_calls: list[tuple[str, int | None]] = []
        self.download_calls: list[str] = []
        self._lock = threading.Lock()

    def search(self, bbox: BoundingBox, *, page: int | None = None) -> SearchPage:
        self.search_calls.append((bbox.as_query(), page))
        if self.error is not None:
            raise ApiError(self.error)
        return SearchPage(page=page or 1, pages=self.pages, items=self.items)

    def download(self, url: str) -> bytes:
        with self._lock:
            self.download_calls.append(url)
        content = self.contents.get(url)
        if content is None:
            raise DownloadError(f"Unable to download image from URL: {url} (status 404)")
        return content


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "tourist.db"
    initialize_database(path)
    return path


@pytest.fixture
def store(db_path: Path) -> LocationPhotoStore:
    return LocationPhotoStore(db_path)


@pytest.fixture
def search_settings() -> SearchSettings:
    return SearchSettings()


@pytest.fixture
def make_coordinator(store: LocationPhotoStore, search_settings: SearchSettings):
    def factory(adapter: FakeSearchAdapter, *, seed: int = 7) -> AlbumCoordinator:
        picker = SearchPagePicker(adapter, max_page=search_settings.max_page, rng=random.Random(seed))
        return AlbumCoordinator(
            store=store,
            picker=picker,
            resolver=PhotoResolver(adapter),
            search_settings=search_settings,
            max_concurrent_downloads=4,
            rng=random.Random(seed),
        )

    return factory
