from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..adapters.photos.base import PhotoSearchAdapter
from ..domain.models import BoundingBox, SearchPage
from ..storage.cache import get_cache_payload, set_cache_entry

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_PAGE = 30
PAGE_COUNT_CACHE_PREFIX = "search.pages."


@dataclass(slots=True)
class PagePick:
    page: int
    total_pages: int
    prefetched: SearchPage | None = None


def choose_page(total_pages: int, max_page: int = DEFAULT_MAX_PAGE, *, rng: random.Random | None = None) -> int:
    """Pick a page uniformly from ``[1, min(total_pages, max_page)]``.

    Result depth past ``max_page`` is unreliable on the remote side, so pages
    beyond it are never requested. A search with no pages yields page 1.
    """
    page_limit = min(total_pages, max_page)
    if page_limit < 1:
        return 1
    return (rng or random).randint(1, page_limit)


def _page_count_key(bbox: BoundingBox) -> str:
    return f"{PAGE_COUNT_CACHE_PREFIX}{bbox.as_query()}"


class SearchPagePicker:
    def __init__(
        self,
        adapter: PhotoSearchAdapter,
        *,
        max_page: int = DEFAULT_MAX_PAGE,
        db_path: Path | None = None,
        page_count_ttl_seconds: int = 0,
        rng: random.Random | None = None,
    ) -> None:
        self._adapter = adapter
        self._max_page = max_page
        self._db_path = db_path
        self._ttl_seconds = page_count_ttl_seconds
        self._rng = rng or random.Random()

    def _cached_page_count(self, bbox: BoundingBox) -> int | None:
        if self._db_path is None or self._ttl_seconds <= 0:
            return None
        payload = get_cache_payload(self._db_path, _page_count_key(bbox))
        if not isinstance(payload, dict):
            return None
        pages = payload.get("pages")
        if isinstance(pages, int) and not isinstance(pages, bool) and pages >= 0:
            return pages
        return None

    def _remember_page_count(self, bbox: BoundingBox, pages: int) -> None:
        if self._db_path is None or self._ttl_seconds <= 0:
            return
        set_cache_entry(
            self._db_path,
            _page_count_key(bbox),
            {"pages": pages, "bbox": bbox.as_query()},
            ttl_seconds=self._ttl_seconds,
        )

    def pick_random_page(self, bbox: BoundingBox) -> PagePick:
        """Choose a result page for the bounding box.

        The count request doubles as the fetch of page 1; when page 1 is the
        pick its items come back in ``prefetched``.
        """
        cached_pages = self._cached_page_count(bbox)
        if cached_pages is not None:
            page = choose_page(cached_pages, self._max_page, rng=self._rng)
            LOGGER.debug("Using cached page count %d for bbox %s", cached_pages, bbox.as_query())
            return PagePick(page=page, total_pages=cached_pages)

        first_page = self._adapter.search(bbox)
        self._remember_page_count(bbox, first_page.pages)
        page = choose_page(first_page.pages, self._max_page, rng=self._rng)
        return PagePick(
            page=page,
            total_pages=first_page.pages,
            prefetched=first_page if page == first_page.page else None,
        )

    def fetch_page_items(self, bbox: BoundingBox, pick: PagePick) -> list[dict[str, Any]]:
        if pick.prefetched is not None:
            return pick.prefetched.items
        return self._adapter.search(bbox, page=pick.page).items
