from __future__ import annotations

import logging
import mimetypes
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from .adapters.photos import ApiError, DownloadError
from .album import AlbumCoordinator, DownloadInProgressError
from .domain.models import Coordinate, Location, MapRegion, PhotoReference
from .location.service import clear_map_region, load_map_region, save_map_region
from .scheduler import build_coordinator, build_scheduler
from .search.sampling import NoPhotosError
from .settings import AppSettings, load_settings
from .storage.album import RecordNotFoundError
from .storage.db import initialize_database

LOGGER = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "image/jpeg"


class RemoveSelectedRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    photo_ids: list[int] = Field(min_length=1)


def _get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def _get_coordinator(request: Request) -> AlbumCoordinator:
    return request.app.state.coordinator


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, NoPhotosError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, DownloadInProgressError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, (ApiError, DownloadError)):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _location_payload(location: Location, coordinator: AlbumCoordinator) -> dict[str, Any]:
    return {
        "id": location.id,
        "latitude": location.latitude,
        "longitude": location.longitude,
        "created_at": location.created_at.isoformat(),
        "album_state": coordinator.store.album_state(location.id),
    }


def _photo_payload(photo: PhotoReference) -> dict[str, Any]:
    return {
        "id": photo.id,
        "location_id": photo.location_id,
        "source_url": photo.source_url,
        "state": photo.state,
        "created_at": photo.created_at.isoformat(),
        "resolved_at": photo.resolved_at.isoformat() if photo.resolved_at else None,
        "content_url": f"/photos/{photo.id}/content",
    }


def _album_payload(
    coordinator: AlbumCoordinator,
    location_id: int,
    *,
    message: str | None = None,
) -> dict[str, Any]:
    photos = coordinator.store.list_for(location_id)
    return {
        "location_id": location_id,
        "state": coordinator.album_state(location_id),
        "count": len(photos),
        "pending_count": sum(1 for photo in photos if not photo.is_resolved),
        "message": message,
        "photos": [_photo_payload(photo) for photo in photos],
    }


def _content_type(photo: PhotoReference) -> str:
    guessed, _ = mimetypes.guess_type(photo.source_url or "")
    if guessed and guessed.startswith("image/"):
        return guessed
    return DEFAULT_CONTENT_TYPE


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings = load_settings()
    logging.getLogger("virtual_tourist").setLevel(settings.env.tourist_log_level)
    initialize_database(settings.db_path)
    coordinator = build_coordinator(settings)
    scheduler = build_scheduler(settings, coordinator)
    scheduler.start()

    application.state.settings = settings
    application.state.coordinator = coordinator
    application.state.scheduler = scheduler
    application.state.started_at_utc = datetime.now(timezone.utc)
    LOGGER.info("Virtual Tourist started with database %s", settings.db_path)

    try:
        yield
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)


app = FastAPI(title="Virtual Tourist", version="0.1.0", lifespan=lifespan)


@app.get("/health", response_class=JSONResponse)
async def health(request: Request) -> JSONResponse:
    settings = _get_settings(request)
    coordinator = _get_coordinator(request)
    scheduler = getattr(request.app.state, "scheduler", None)
    return JSONResponse(
        {
            "status": "ok",
            "service": "virtual-tourist",
            "environment": settings.env.tourist_env,
            "scheduler_running": bool(scheduler is not None and scheduler.running),
            "location_count": len(coordinator.store.list_locations()),
            "pending_photo_count": len(coordinator.store.list_pending()),
            "timestamp_utc": datetime.now(timezone.utc).isoformat(),
        }
    )


@app.get("/locations", response_class=JSONResponse)
async def list_locations(request: Request) -> JSONResponse:
    coordinator = _get_coordinator(request)
    locations = coordinator.store.list_locations()
    return JSONResponse([_location_payload(location, coordinator) for location in locations])


@app.post("/locations", response_class=JSONResponse, status_code=status.HTTP_201_CREATED)
async def create_location(request: Request, point: Coordinate) -> JSONResponse:
    coordinator = _get_coordinator(request)
    location = coordinator.store.add_location(point.latitude, point.longitude)
    return JSONResponse(_location_payload(location, coordinator), status_code=status.HTTP_201_CREATED)


@app.get("/locations/{location_id}", response_class=JSONResponse)
async def get_location(request: Request, location_id: int) -> JSONResponse:
    coordinator = _get_coordinator(request)
    try:
        location = coordinator.store.get_location(location_id)
    except RecordNotFoundError as exc:
        raise _http_error(exc) from exc
    return JSONResponse(_location_payload(location, coordinator))


@app.delete("/locations/{location_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_location(request: Request, location_id: int) -> Response:
    coordinator = _get_coordinator(request)
    if not coordinator.store.delete_location(location_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Location not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/locations/{location_id}/album", response_class=JSONResponse)
async def get_album(request: Request, location_id: int) -> JSONResponse:
    settings = _get_settings(request)
    coordinator = _get_coordinator(request)
    message: str | None = None
    try:
        state = coordinator.album_state(location_id)
        if state == "empty" and settings.yaml.album.auto_populate_on_open:
            await coordinator.refresh_album(location_id)
    except (ApiError, NoPhotosError) as exc:
        message = str(exc)
    except RecordNotFoundError as exc:
        raise _http_error(exc) from exc
    return JSONResponse(_album_payload(coordinator, location_id, message=message))


@app.post("/locations/{location_id}/album/refresh", response_class=JSONResponse)
async def refresh_album(request: Request, location_id: int) -> JSONResponse:
    coordinator = _get_coordinator(request)
    try:
        await coordinator.refresh_album(location_id)
    except (RecordNotFoundError, ApiError, NoPhotosError) as exc:
        raise _http_error(exc) from exc
    return JSONResponse(_album_payload(coordinator, location_id))


@app.post("/locations/{location_id}/album/replace", response_class=JSONResponse)
async def replace_album(request: Request, location_id: int) -> JSONResponse:
    coordinator = _get_coordinator(request)
    try:
        await coordinator.replace_album(location_id)
    except (RecordNotFoundError, ApiError, NoPhotosError) as exc:
        raise _http_error(exc) from exc
    return JSONResponse(_album_payload(coordinator, location_id))


@app.post("/locations/{location_id}/album/remove", response_class=JSONResponse)
async def remove_selected(request: Request, location_id: int, selection: RemoveSelectedRequest) -> JSONResponse:
    coordinator = _get_coordinator(request)
    try:
        deleted = coordinator.remove_selected(location_id, selection.photo_ids)
    except RecordNotFoundError as exc:
        raise _http_error(exc) from exc
    payload = _album_payload(coordinator, location_id)
    payload["deleted_ids"] = deleted
    return JSONResponse(payload)


@app.post("/locations/{location_id}/album/resolve", response_class=JSONResponse)
async def resolve_album(request: Request, location_id: int) -> JSONResponse:
    coordinator = _get_coordinator(request)
    try:
        report = await coordinator.resolve_pending(location_id=location_id)
    except RecordNotFoundError as exc:
        raise _http_error(exc) from exc
    return JSONResponse(
        {
            "location_id": location_id,
            "state": coordinator.album_state(location_id),
            "resolved_ids": report.resolved,
            "failed_ids": report.failed,
            "skipped_ids": report.skipped,
        }
    )


@app.get("/photos/{photo_id}", response_class=JSONResponse)
async def get_photo(request: Request, photo_id: int) -> JSONResponse:
    coordinator = _get_coordinator(request)
    photo = coordinator.store.get_photo(photo_id)
    if photo is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found")
    return JSONResponse(_photo_payload(photo))


@app.get("/photos/{photo_id}/content")
async def photo_content(request: Request, photo_id: int) -> Response:
    coordinator = _get_coordinator(request)
    photo = coordinator.store.get_photo(photo_id)
    if photo is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found")

    try:
        content = await coordinator.resolve(photo)
    except DownloadError as exc:
        raise _http_error(exc) from exc
    return Response(content=content, media_type=_content_type(photo))


@app.get("/map/region", response_class=JSONResponse)
async def get_map_region(request: Request) -> JSONResponse:
    settings = _get_settings(request)
    region = load_map_region(settings.db_path)
    if region is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No map region saved")
    return JSONResponse(region.model_dump(mode="json"))


@app.put("/map/region", response_class=JSONResponse)
async def put_map_region(request: Request, region: MapRegion) -> JSONResponse:
    settings = _get_settings(request)
    save_map_region(settings.db_path, region)
    return JSONResponse(region.model_dump(mode="json"))


@app.delete("/map/region", status_code=status.HTTP_204_NO_CONTENT)
async def delete_map_region(request: Request) -> Response:
    settings = _get_settings(request)
    clear_map_region(settings.db_path)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
