from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]

GLOBAL_LON_RANGE = (-180.0, 180.0)
GLOBAL_LAT_RANGE = (-90.0, 90.0)


def _validate_range(value: tuple[float, float], bounds: tuple[float, float], name: str) -> tuple[float, float]:
    low, high = value
    if low >= high:
        raise ValueError(f"search.{name} must be an ordered pair [min, max]")
    if low < bounds[0] or high > bounds[1]:
        raise ValueError(f"search.{name} must lie within [{bounds[0]:g}, {bounds[1]:g}]")
    return low, high


class SearchSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    api_url: str = "https://api.flickr.com/services/rest/"
    bbox_half_width: float = Field(default=1.0, gt=0, le=180)
    bbox_half_height: float = Field(default=1.0, gt=0, le=90)
    lon_range: tuple[float, float] = GLOBAL_LON_RANGE
    lat_range: tuple[float, float] = GLOBAL_LAT_RANGE
    max_page: int = Field(default=30, ge=1, le=100)
    max_photos: int = Field(default=45, ge=1, le=500)
    url_field: str = "url_m"
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)
    page_count_ttl_seconds: int = Field(default=3600, ge=0)

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, value: str) -> str:
        text = value.strip()
        parsed = urlparse(text)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("search.api_url must be an absolute http(s) URL")
        return text

    @field_validator("lon_range")
    @classmethod
    def validate_lon_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        return _validate_range(value, GLOBAL_LON_RANGE, "lon_range")

    @field_validator("lat_range")
    @classmethod
    def validate_lat_range(cls, value: tuple[float, float]) -> tuple[float, float]:
        return _validate_range(value, GLOBAL_LAT_RANGE, "lat_range")

    @field_validator("url_field")
    @classmethod
    def validate_url_field(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("search.url_field must not be empty")
        return text


class AlbumSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    max_concurrent_downloads: int = Field(default=6, ge=1, le=64)
    auto_populate_on_open: bool = True


class PrefetchSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    interval_minutes: int = Field(default=5, ge=1, le=1440)
    jitter_seconds: int = Field(default=15, ge=0, le=300)
    batch_size: int = Field(default=20, ge=1, le=500)


class TouristYamlSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    search: SearchSettings = Field(default_factory=SearchSettings)
    album: AlbumSettings = Field(default_factory=AlbumSettings)
    prefetch: PrefetchSettings = Field(default_factory=PrefetchSettings)


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    tourist_env: Literal["dev", "test", "prod"] = "dev"
    tourist_timezone: str = "UTC"
    tourist_config_path: Path = Path("config/virtual_tourist.yaml")
    tourist_db_path: Path = Path("data/virtual_tourist.db")
    tourist_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    flickr_api_key: str = ""

    @field_validator("tourist_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("tourist_log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def validate_api_key(self) -> EnvSettings:
        if self.tourist_env == "prod" and not self.flickr_api_key.strip():
            raise ValueError("FLICKR_API_KEY is required when TOURIST_ENV is 'prod'")
        return self


class AppSettings(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    env: EnvSettings
    yaml: TouristYamlSettings
    project_root: Path
    config_path: Path
    db_path: Path
    timezone: ZoneInfo


def _resolve_project_path(path: Path) -> Path:
    if path.is_absolute():
        return path
    return (PROJECT_ROOT / path).resolve()


def _load_yaml_settings(path: Path) -> TouristYamlSettings:
    if not path.exists():
        raise FileNotFoundError(f"Virtual Tourist config file not found: {path}")

    raw_config = yaml.safe_load(path.read_text(encoding="utf-8"))
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ValueError("Virtual Tourist config must be a YAML mapping/object at the top level")
    return TouristYamlSettings.model_validate(raw_config)


def build_settings(env: EnvSettings) -> AppSettings:
    config_path = _resolve_project_path(env.tourist_config_path)
    db_path = _resolve_project_path(env.tourist_db_path)
    return AppSettings(
        env=env,
        yaml=_load_yaml_settings(config_path),
        project_root=PROJECT_ROOT,
        config_path=config_path,
        db_path=db_path,
        timezone=ZoneInfo(env.tourist_timezone),
    )


@lru_cache(maxsize=1)
def load_settings() -> AppSettings:
    return build_settings(EnvSettings())
