from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from .adapters.photos import FlickrPhotoSearchAdapter, PhotoSearchAdapter
from .album import AlbumCoordinator, PhotoResolver
from .search.pages import SearchPagePicker
from .settings import AppSettings
from .storage.album import LocationPhotoStore
from .storage.cache import prune_expired_entries

LOGGER = logging.getLogger(__name__)

CACHE_MAINTENANCE_INTERVAL_MINUTES = 60


def build_search_adapter(settings: AppSettings) -> FlickrPhotoSearchAdapter:
    search = settings.yaml.search
    return FlickrPhotoSearchAdapter(
        api_key=settings.env.flickr_api_key,
        api_url=search.api_url,
        url_field=search.url_field,
        timeout_seconds=search.timeout_seconds,
    )


def build_coordinator(
    settings: AppSettings,
    *,
    adapter: PhotoSearchAdapter | None = None,
) -> AlbumCoordinator:
    search = settings.yaml.search
    search_adapter = adapter or build_search_adapter(settings)
    picker = SearchPagePicker(
        search_adapter,
        max_page=search.max_page,
        db_path=settings.db_path,
        page_count_ttl_seconds=search.page_count_ttl_seconds,
    )
    return AlbumCoordinator(
        store=LocationPhotoStore(settings.db_path),
        picker=picker,
        resolver=PhotoResolver(search_adapter),
        search_settings=search,
        max_concurrent_downloads=settings.yaml.album.max_concurrent_downloads,
    )


def run_prefetch_job(coordinator: AlbumCoordinator, batch_size: int) -> None:
    started_at = datetime.now(timezone.utc)
    try:
        report = asyncio.run(coordinator.resolve_pending(limit=batch_size))
    except Exception:  # pragma: no cover - defensive fallback
        LOGGER.exception("Photo prefetch job failed")
        return

    if report.resolved or report.failed:
        LOGGER.info(
            "Photo prefetch job started at %s: %d resolved, %d failed, %d skipped",
            started_at,
            len(report.resolved),
            len(report.failed),
            len(report.skipped),
        )


def run_cache_maintenance_job(settings: AppSettings) -> None:
    try:
        deleted = prune_expired_entries(settings.db_path)
    except Exception:  # pragma: no cover - defensive fallback
        LOGGER.exception("Cache maintenance job failed")
        return
    LOGGER.info("Cache maintenance job pruned %d expired entr%s", deleted, "y" if deleted == 1 else "ies")


def build_scheduler(settings: AppSettings, coordinator: AlbumCoordinator) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.timezone)
    prefetch = settings.yaml.prefetch
    if prefetch.enabled:
        scheduler.add_job(
            run_prefetch_job,
            "interval",
            kwargs={"coordinator": coordinator, "batch_size": prefetch.batch_size},
            minutes=prefetch.interval_minutes,
            jitter=prefetch.jitter_seconds,
            id="photo_prefetch_job",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=120,
        )
    scheduler.add_job(
        run_cache_maintenance_job,
        "interval",
        kwargs={"settings": settings},
        minutes=CACHE_MAINTENANCE_INTERVAL_MINUTES,
        jitter=prefetch.jitter_seconds,
        id="cache_maintenance_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=300,
    )
    return scheduler
