from __future__ import annotations

import json
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

from ...domain.models import BoundingBox, SearchPage
from .base import ApiError, DownloadError

FLICKR_REST_URL = "https://api.flickr.com/services/rest/"
SEARCH_METHOD = "flickr.photos.search"
DEFAULT_TIMEOUT_SECONDS = 30
USER_AGENT = "virtual-tourist/0.1"


def _coerce_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool):
        raise ApiError(f"Invalid integer value for {field_name}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ApiError(f"Invalid integer value for {field_name}") from exc


def _read(url: str, *, timeout: float) -> tuple[int, bytes]:
    request = Request(url, headers={"User-Agent": USER_AGENT})
    with urlopen(request, timeout=timeout) as response:
        status = getattr(response, "status", 200)
        return status, response.read()


def _fetch_json(url: str, *, timeout: float) -> dict[str, Any]:
    try:
        status, body = _read(url, timeout=timeout)
    except HTTPError as exc:
        raise ApiError(f"Flickr search returned status {exc.code}") from exc
    except (URLError, TimeoutError, OSError) as exc:
        raise ApiError(f"There was an error with the Flickr search request: {exc}") from exc

    if not 200 <= status <= 299:
        raise ApiError(f"Flickr search returned status {status}")
    if not body:
        raise ApiError("No data was returned by the Flickr search request")

    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ApiError("Could not parse the Flickr search response as JSON") from exc

    if not isinstance(payload, dict):
        raise ApiError("Unexpected Flickr response shape")
    return payload


class FlickrPhotoSearchAdapter:
    def __init__(
        self,
        *,
        api_key: str,
        api_url: str = FLICKR_REST_URL,
        url_field: str = "url_m",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._api_key = api_key
        self._api_url = api_url
        self._url_field = url_field
        self._timeout = timeout_seconds

    @property
    def url_field(self) -> str:
        return self._url_field

    def _search_params(self, bbox: BoundingBox, page: int | None) -> dict[str, str]:
        params = {
            "method": SEARCH_METHOD,
            "api_key": self._api_key,
            "bbox": bbox.as_query(),
            "safe_search": "1",
            "extras": self._url_field,
            "format": "json",
            "nojsoncallback": "1",
        }
        if page is not None:
            params["page"] = str(page)
        return params

    def search(self, bbox: BoundingBox, *, page: int | None = None) -> SearchPage:
        url = f"{self._api_url}?{urlencode(self._search_params(bbox, page))}"
        payload = _fetch_json(url, timeout=self._timeout)

        stat = payload.get("stat")
        if stat != "ok":
            message = payload.get("message") or "no message"
            raise ApiError(f"Flickr API returned an error (stat={stat!r}): {message}")

        photos = payload.get("photos")
        if not isinstance(photos, dict):
            raise ApiError("Cannot find key 'photos' in the Flickr response")
        if "pages" not in photos:
            raise ApiError("Cannot find key 'pages' in the Flickr response")
        items = photos.get("photo")
        if not isinstance(items, list):
            raise ApiError("Cannot find key 'photo' in the Flickr response")

        total_pages = _coerce_int(photos.get("pages"), field_name="photos.pages")
        current_page = photos.get("page", page or 1)
        return SearchPage(
            page=max(_coerce_int(current_page, field_name="photos.page"), 1),
            pages=max(total_pages, 0),
            items=items,
        )

    def download(self, url: str) -> bytes:
        try:
            status, body = _read(url, timeout=self._timeout)
        except HTTPError as exc:
            raise DownloadError(f"Unable to download image from URL: {url} (status {exc.code})") from exc
        except (URLError, TimeoutError, OSError, ValueError) as exc:
            raise DownloadError(f"Unable to download image from URL: {url}") from exc

        if not 200 <= status <= 299 or not body:
            raise DownloadError(f"Unable to download image from URL: {url}")
        return body
