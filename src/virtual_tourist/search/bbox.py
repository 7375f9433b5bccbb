from __future__ import annotations

from ..domain.models import BoundingBox, Coordinate
from ..settings import SearchSettings


def compute_bounding_box(
    lat: float,
    lon: float,
    half_width: float,
    half_height: float,
    lon_range: tuple[float, float],
    lat_range: tuple[float, float],
) -> BoundingBox:
    """Return the search rectangle around a point, clamped to the given ranges."""
    return BoundingBox(
        min_lon=max(lon - half_width, lon_range[0]),
        min_lat=max(lat - half_height, lat_range[0]),
        max_lon=min(lon + half_width, lon_range[1]),
        max_lat=min(lat + half_height, lat_range[1]),
    )


def bounding_box_for(point: Coordinate, settings: SearchSettings) -> BoundingBox:
    return compute_bounding_box(
        point.latitude,
        point.longitude,
        settings.bbox_half_width,
        settings.bbox_half_height,
        settings.lon_range,
        settings.lat_range,
    )
