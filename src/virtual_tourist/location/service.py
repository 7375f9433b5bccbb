from __future__ import annotations

from pathlib import Path

from pydantic import ValidationError

from ..domain.models import MapRegion
from ..storage.cache import delete_cache_entry, get_cache_payload, set_cache_entry

MAP_REGION_CACHE_KEY = "map.region"


def save_map_region(db_path: Path, region: MapRegion) -> None:
    set_cache_entry(db_path, MAP_REGION_CACHE_KEY, region.model_dump(mode="json"), ttl_seconds=None)


def load_map_region(db_path: Path) -> MapRegion | None:
    """Return the last saved viewport, however old it is."""
    payload = get_cache_payload(db_path, MAP_REGION_CACHE_KEY)
    if not isinstance(payload, dict):
        return None
    try:
        return MapRegion.model_validate(payload)
    except ValidationError:
        return None


def clear_map_region(db_path: Path) -> bool:
    return delete_cache_entry(db_path, MAP_REGION_CACHE_KEY)
