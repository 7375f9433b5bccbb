from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .db import open_db


@dataclass(slots=True)
class CacheEntry:
    """A cached JSON payload. ``ttl_seconds=None`` keeps it until deleted."""

    key: str
    payload: Any
    fetched_at: datetime
    ttl_seconds: int | None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: str) -> datetime:
    return normalize_datetime(datetime.fromisoformat(value))


def _has_expired(fetched_at: datetime, ttl_seconds: int | None, now: datetime) -> bool:
    if ttl_seconds is None:
        return False
    return (now - fetched_at).total_seconds() > ttl_seconds


def set_cache_entry(
    db_path: Path,
    key: str,
    payload: Any,
    ttl_seconds: int | None,
    *,
    fetched_at: datetime | None = None,
) -> None:
    if ttl_seconds is not None and ttl_seconds < 0:
        raise ValueError("ttl_seconds must be >= 0")

    record_time = normalize_datetime(fetched_at) if fetched_at is not None else utc_now()
    payload_json = json.dumps(payload, ensure_ascii=True, separators=(",", ":"))

    with open_db(db_path) as connection:
        connection.execute(
            """
            INSERT INTO cache_entries (key, json, fetched_at, ttl_seconds)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                json=excluded.json,
                fetched_at=excluded.fetched_at,
                ttl_seconds=excluded.ttl_seconds
            """,
            (key, payload_json, record_time.isoformat(), ttl_seconds),
        )
        connection.commit()


def get_cache_entry(db_path: Path, key: str) -> CacheEntry | None:
    with open_db(db_path) as connection:
        row = connection.execute(
            "SELECT key, json, fetched_at, ttl_seconds FROM cache_entries WHERE key = ?",
            (key,),
        ).fetchone()

    if row is None:
        return None

    ttl_seconds = row["ttl_seconds"]
    return CacheEntry(
        key=row["key"],
        payload=json.loads(row["json"]),
        fetched_at=parse_datetime(row["fetched_at"]),
        ttl_seconds=int(ttl_seconds) if ttl_seconds is not None else None,
    )


def get_cache_payload(db_path: Path, key: str) -> Any | None:
    """Return the payload stored under ``key`` unless it has expired."""
    entry = get_cache_entry(db_path, key)
    if entry is None or _has_expired(entry.fetched_at, entry.ttl_seconds, utc_now()):
        return None
    return entry.payload


def delete_cache_entry(db_path: Path, key: str) -> bool:
    with open_db(db_path) as connection:
        cursor = connection.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        connection.commit()
    return cursor.rowcount > 0


def prune_expired_entries(db_path: Path, *, now: datetime | None = None) -> int:
    """Delete expired entries; entries stored without a TTL are never pruned."""
    reference = normalize_datetime(now) if now is not None else utc_now()

    with open_db(db_path) as connection:
        rows = connection.execute(
            "SELECT key, fetched_at, ttl_seconds FROM cache_entries WHERE ttl_seconds IS NOT NULL"
        ).fetchall()
        expired = [
            (row["key"],)
            for row in rows
            if _has_expired(parse_datetime(row["fetched_at"]), int(row["ttl_seconds"]), reference)
        ]
        connection.executemany("DELETE FROM cache_entries WHERE key = ?", expired)
        connection.commit()

    return len(expired)
