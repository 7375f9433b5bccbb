from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone

import pytest

from virtual_tourist.adapters.photos import DownloadError
from virtual_tourist.album import DownloadInProgressError, PhotoResolver
from virtual_tourist.domain.models import PhotoReference


class BlockingAdapter:
    def __init__(self) -> None:
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def search(self, bbox, *, page=None):  # pragma: no cover - not used here
        raise NotImplementedError

    def download(self, url: str) -> bytes:
        self.calls += 1
        self.started.set()
        self.release.wait(timeout=5)
        return b"content"


def _photo(photo_id: int = 1, url: str | None = "https://farm.example/a.jpg") -> PhotoReference:
    return PhotoReference(
        id=photo_id,
        location_id=1,
        source_url=url,
        created_at=datetime.now(timezone.utc),
    )


def test_second_resolve_of_same_photo_is_rejected_while_in_flight() -> None:
    adapter = BlockingAdapter()
    resolver = PhotoResolver(adapter)
    photo = _photo()

    async def scenario() -> bytes:
        first = asyncio.create_task(resolver.resolve(photo))
        await asyncio.to_thread(adapter.started.wait, 5)
        assert resolver.is_in_flight(photo.id)
        with pytest.raises(DownloadInProgressError):
            await resolver.resolve(photo)
        adapter.release.set()
        return await first

    assert asyncio.run(scenario()) == b"content"
    assert adapter.calls == 1
    assert not resolver.is_in_flight(photo.id)


def test_write_back_runs_before_release() -> None:
    adapter = BlockingAdapter()
    adapter.release.set()
    resolver = PhotoResolver(adapter)
    observed: list[bool] = []

    def write_back(content: bytes) -> None:
        observed.append(resolver.is_in_flight(1))

    asyncio.run(resolver.resolve(_photo(), on_resolved=write_back))

    assert observed == [True]


def test_photo_with_content_is_not_downloaded() -> None:
    adapter = BlockingAdapter()
    resolver = PhotoResolver(adapter)
    photo = _photo().model_copy(update={"content": b"stored"})

    assert asyncio.run(resolver.resolve(photo)) == b"stored"
    assert adapter.calls == 0


def test_photo_without_url_cannot_resolve() -> None:
    resolver = PhotoResolver(BlockingAdapter())

    with pytest.raises(DownloadError):
        asyncio.run(resolver.resolve(_photo(url=None)))
