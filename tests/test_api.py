from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from conftest import FakeSearchAdapter
from virtual_tourist.main import app
from virtual_tourist.settings import AppSettings, EnvSettings, TouristYamlSettings

PHOTO_URLS = ["https://farm.example/a.jpg", "https://farm.example/b.jpg", "https://farm.example/c.jpg"]


@pytest.fixture
def adapter() -> FakeSearchAdapter:
    return FakeSearchAdapter(
        pages=1,
        items=[{"url_m": url} for url in PHOTO_URLS],
        contents={PHOTO_URLS[0]: b"jpeg-a", PHOTO_URLS[1]: b"jpeg-b"},
    )


@pytest.fixture
def client(db_path: Path, adapter: FakeSearchAdapter, make_coordinator) -> TestClient:
    settings = AppSettings(
        env=EnvSettings(tourist_env="test"),
        yaml=TouristYamlSettings(),
        project_root=db_path.parent,
        config_path=db_path.parent / "virtual_tourist.yaml",
        db_path=db_path,
        timezone=ZoneInfo("UTC"),
    )
    app.state.settings = settings
    app.state.coordinator = make_coordinator(adapter)
    app.state.scheduler = None
    return TestClient(app)


def _create_location(client: TestClient, latitude: float = 10.0, longitude: float = 20.0) -> int:
    response = client.post("/locations", json={"latitude": latitude, "longitude": longitude})
    assert response.status_code == 201
    return response.json()["id"]


def test_health_reports_counts(client: TestClient) -> None:
    _create_location(client)

    payload = client.get("/health").json()

    assert payload["status"] == "ok"
    assert payload["location_count"] == 1
    assert payload["scheduler_running"] is False


def test_create_location_validates_coordinates(client: TestClient) -> None:
    response = client.post("/locations", json={"latitude": 95.0, "longitude": 20.0})

    assert response.status_code == 422


def test_location_lifecycle(client: TestClient) -> None:
    location_id = _create_location(client)

    assert client.get(f"/locations/{location_id}").json()["album_state"] == "empty"
    assert [item["id"] for item in client.get("/locations").json()] == [location_id]
    assert client.delete(f"/locations/{location_id}").status_code == 204
    assert client.get(f"/locations/{location_id}").status_code == 404
    assert client.delete(f"/locations/{location_id}").status_code == 404


def test_opening_empty_album_populates_it(client: TestClient) -> None:
    location_id = _create_location(client)

    payload = client.get(f"/locations/{location_id}/album").json()

    assert payload["state"] == "populating"
    assert payload["count"] == 3
    assert payload["message"] is None
    assert {photo["source_url"] for photo in payload["photos"]} == set(PHOTO_URLS)


def test_opening_album_reports_search_failure_as_message(client: TestClient, adapter: FakeSearchAdapter) -> None:
    adapter.error = "Flickr API returned an error (stat='fail')"
    location_id = _create_location(client)

    response = client.get(f"/locations/{location_id}/album")

    assert response.status_code == 200
    assert response.json()["state"] == "empty"
    assert "stat='fail'" in response.json()["message"]


def test_refresh_maps_errors_to_status_codes(client: TestClient, adapter: FakeSearchAdapter) -> None:
    location_id = _create_location(client)

    adapter.error = "boom"
    assert client.post(f"/locations/{location_id}/album/refresh").status_code == 502

    adapter.error = None
    adapter.items = [{"title": "no url"}]
    response = client.post(f"/locations/{location_id}/album/refresh")
    assert response.status_code == 404
    assert response.json()["detail"] == "This location has no images."

    assert client.post("/locations/999/album/refresh").status_code == 404


def test_replace_album_returns_fresh_batch(client: TestClient, adapter: FakeSearchAdapter) -> None:
    location_id = _create_location(client)
    client.post(f"/locations/{location_id}/album/refresh")
    adapter.items = [{"url_m": "https://farm.example/z.jpg"}]

    payload = client.post(f"/locations/{location_id}/album/replace").json()

    assert [photo["source_url"] for photo in payload["photos"]] == ["https://farm.example/z.jpg"]


def test_remove_selected_photos(client: TestClient) -> None:
    location_id = _create_location(client)
    photos = client.post(f"/locations/{location_id}/album/refresh").json()["photos"]
    selected = [photos[0]["id"]]

    payload = client.post(f"/locations/{location_id}/album/remove", json={"photo_ids": selected}).json()

    assert payload["deleted_ids"] == selected
    assert payload["count"] == 2
    assert client.post(f"/locations/{location_id}/album/remove", json={"photo_ids": []}).status_code == 422


def test_photo_content_is_resolved_lazily_and_cached(client: TestClient, adapter: FakeSearchAdapter) -> None:
    location_id = _create_location(client)
    photos = client.post(f"/locations/{location_id}/album/refresh").json()["photos"]
    by_url = {photo["source_url"]: photo for photo in photos}
    photo_id = by_url[PHOTO_URLS[0]]["id"]

    first = client.get(f"/photos/{photo_id}/content")
    second = client.get(f"/photos/{photo_id}/content")

    assert first.status_code == 200
    assert first.content == b"jpeg-a"
    assert first.headers["content-type"] == "image/jpeg"
    assert second.content == b"jpeg-a"
    assert adapter.download_calls == [PHOTO_URLS[0]]
    assert client.get(f"/photos/{photo_id}").json()["state"] == "resolved"


def test_photo_content_failure_is_bad_gateway(client: TestClient) -> None:
    location_id = _create_location(client)
    photos = client.post(f"/locations/{location_id}/album/refresh").json()["photos"]
    missing = next(photo for photo in photos if photo["source_url"] == PHOTO_URLS[2])

    assert client.get(f"/photos/{missing['id']}/content").status_code == 502
    assert client.get(f"/photos/{missing['id']}").json()["state"] == "pending"
    assert client.get("/photos/9999/content").status_code == 404


def test_resolve_album_reports_each_photo(client: TestClient) -> None:
    location_id = _create_location(client)
    photos = client.post(f"/locations/{location_id}/album/refresh").json()["photos"]
    ids = {photo["source_url"]: photo["id"] for photo in photos}

    payload = client.post(f"/locations/{location_id}/album/resolve").json()

    assert payload["resolved_ids"] == sorted([ids[PHOTO_URLS[0]], ids[PHOTO_URLS[1]]])
    assert payload["failed_ids"] == [ids[PHOTO_URLS[2]]]
    assert payload["state"] == "populating"


def test_map_region_round_trip(client: TestClient) -> None:
    assert client.get("/map/region").status_code == 404

    region = {
        "center_latitude": 37.77,
        "center_longitude": -122.42,
        "latitude_delta": 0.5,
        "longitude_delta": 0.4,
    }
    assert client.put("/map/region", json=region).status_code == 200
    assert client.get("/map/region").json() == region

    assert client.delete("/map/region").status_code == 204
    assert client.get("/map/region").status_code == 404


def test_refresh_on_filled_album_keeps_existing_photos(client: TestClient, adapter: FakeSearchAdapter) -> None:
    location_id = _create_location(client)
    first = client.get(f"/locations/{location_id}/album").json()["photos"]

    payload = client.post(f"/locations/{location_id}/album/refresh").json()

    assert payload["count"] == 3
    assert [photo["id"] for photo in payload["photos"]] == [photo["id"] for photo in first]
    assert len(adapter.search_calls) == 1
