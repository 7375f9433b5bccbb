from __future__ import annotations

import random
from typing import Any, Iterable, Mapping

DEFAULT_MAX_PHOTOS = 45


class NoPhotosError(RuntimeError):
    """Raised when a result page holds no item with a usable photo URL."""


def _extract_url(item: Mapping[str, Any], url_field: str) -> str | None:
    value = item.get(url_field)
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def sample_urls(
    page_items: Iterable[Mapping[str, Any]],
    url_field: str,
    max_count: int = DEFAULT_MAX_PHOTOS,
    *,
    rng: random.Random | None = None,
) -> list[str]:
    """Pick at most ``max_count`` photo URLs from a page without replacement.

    Items lacking ``url_field`` are ignored and repeated URLs collapse to
    one. When more eligible URLs remain than ``max_count``, a uniform random
    subset is drawn with distinct indices. The order of the result is
    unspecified.
    """
    if max_count < 1:
        raise ValueError("max_count must be >= 1")

    extracted = (_extract_url(item, url_field) for item in page_items if isinstance(item, Mapping))
    urls = list(dict.fromkeys(url for url in extracted if url is not None))
    if not urls:
        raise NoPhotosError("This location has no images.")

    if len(urls) <= max_count:
        return urls

    generator = rng or random.Random()
    indices = generator.sample(range(len(urls)), max_count)
    return [urls[index] for index in indices]
