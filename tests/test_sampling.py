from __future__ import annotations

import random

import pytest

from virtual_tourist.search.sampling import NoPhotosError, sample_urls


def _items(count: int) -> list[dict]:
    return [{"id": str(index), "url_m": f"https://farm.example/{index}.jpg"} for index in range(count)]


def test_small_page_returns_every_eligible_url() -> None:
    items = [{"url_m": "a"}, {"title": "no url"}, {"url_m": "b"}, {"url_m": ""}, {"url_m": "c"}]

    urls = sample_urls(items, "url_m")

    assert sorted(urls) == ["a", "b", "c"]


def test_page_of_exactly_max_count_is_returned_whole() -> None:
    urls = sample_urls(_items(45), "url_m", 45)

    assert len(urls) == 45
    assert set(urls) == {item["url_m"] for item in _items(45)}


@pytest.mark.parametrize("seed", [0, 1, 2, 99])
def test_large_page_is_sampled_without_replacement(seed: int) -> None:
    items = _items(250)

    urls = sample_urls(items, "url_m", 45, rng=random.Random(seed))

    assert len(urls) == 45
    assert len(set(urls)) == 45
    assert set(urls) <= {item["url_m"] for item in items}


def test_sampling_terminates_when_only_one_spare_item_exists() -> None:
    urls = sample_urls(_items(46), "url_m", 45, rng=random.Random(3))

    assert len(set(urls)) == 45


def test_repeated_urls_are_collapsed() -> None:
    urls = sample_urls([{"url_m": "a"}, {"url_m": "a"}, {"url_m": "b"}], "url_m")

    assert sorted(urls) == ["a", "b"]


def test_page_without_eligible_urls_raises() -> None:
    with pytest.raises(NoPhotosError):
        sample_urls([{"title": "x"}, {"url_s": "small-only"}], "url_m")


def test_empty_page_raises() -> None:
    with pytest.raises(NoPhotosError):
        sample_urls([], "url_m")


def test_max_count_must_be_positive() -> None:
    with pytest.raises(ValueError):
        sample_urls(_items(3), "url_m", 0)
