from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Callable, Iterable

from ..domain.models import AlbumChange, AlbumState, Location, PhotoReference
from .cache import parse_datetime, utc_now
from .db import open_db

LOGGER = logging.getLogger(__name__)

ChangeListener = Callable[[AlbumChange], None]

PHOTO_COLUMNS = "id, location_id, source_url, content, created_at, resolved_at"


class RecordNotFoundError(RuntimeError):
    """Raised when an operation addresses a record that does not exist."""


class LocationNotFoundError(RecordNotFoundError):
    pass


class PhotoNotFoundError(RecordNotFoundError):
    pass


def _location_from_row(row: sqlite3.Row) -> Location:
    return Location(
        id=int(row["id"]),
        latitude=float(row["latitude"]),
        longitude=float(row["longitude"]),
        created_at=parse_datetime(row["created_at"]),
    )


def _photo_from_row(row: sqlite3.Row) -> PhotoReference:
    content = row["content"]
    resolved_at = row["resolved_at"]
    return PhotoReference(
        id=int(row["id"]),
        location_id=int(row["location_id"]),
        source_url=row["source_url"],
        content=bytes(content) if content is not None else None,
        created_at=parse_datetime(row["created_at"]),
        resolved_at=parse_datetime(resolved_at) if resolved_at else None,
    )


def _location_exists(connection: sqlite3.Connection, location_id: int) -> bool:
    row = connection.execute("SELECT 1 FROM locations WHERE id = ?", (location_id,)).fetchone()
    return row is not None


def _photo_count(connection: sqlite3.Connection, location_id: int) -> int:
    row = connection.execute("SELECT COUNT(*) AS total FROM photos WHERE location_id = ?", (location_id,)).fetchone()
    return int(row["total"])


class LocationPhotoStore:
    """Persisted locations and the photo references each one owns.

    Every write runs under one lock and is committed before subscribers hear
    about it. A batch write produces exactly one ``AlbumChange``.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._lock = threading.RLock()
        self._listeners: list[ChangeListener] = []

    @property
    def db_path(self) -> Path:
        return self._db_path

    def subscribe(self, listener: ChangeListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, change: AlbumChange) -> None:
        if not change.photo_ids:
            return
        LOGGER.info(
            "Album change %s for location %s: %d photo(s)",
            change.kind,
            change.location_id,
            len(change.photo_ids),
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:  # pragma: no cover - subscriber bugs must not undo a commit
                LOGGER.exception("Album change listener %r failed", listener)

    # Locations

    def add_location(self, latitude: float, longitude: float) -> Location:
        created_at = utc_now()
        with self._lock, open_db(self._db_path) as connection:
            cursor = connection.execute(
                "INSERT INTO locations (latitude, longitude, created_at) VALUES (?, ?, ?)",
                (latitude, longitude, created_at.isoformat()),
            )
            connection.commit()
            location_id = int(cursor.lastrowid)
        return Location(id=location_id, latitude=latitude, longitude=longitude, created_at=created_at)

    def get_location(self, location_id: int) -> Location:
        with open_db(self._db_path) as connection:
            row = connection.execute(
                "SELECT id, latitude, longitude, created_at FROM locations WHERE id = ?",
                (location_id,),
            ).fetchone()
        if row is None:
            raise LocationNotFoundError(f"Location {location_id} does not exist")
        return _location_from_row(row)

    def has_location(self, location_id: int) -> bool:
        with open_db(self._db_path) as connection:
            return _location_exists(connection, location_id)

    def list_locations(self) -> list[Location]:
        with open_db(self._db_path) as connection:
            rows = connection.execute(
                "SELECT id, latitude, longitude, created_at FROM locations ORDER BY id ASC"
            ).fetchall()
        return [_location_from_row(row) for row in rows]

    def delete_location(self, location_id: int) -> bool:
        with self._lock, open_db(self._db_path) as connection:
            photo_ids = tuple(
                int(row["id"])
                for row in connection.execute(
                    "SELECT id FROM photos WHERE location_id = ? ORDER BY id ASC", (location_id,)
                ).fetchall()
            )
            cursor = connection.execute("DELETE FROM locations WHERE id = ?", (location_id,))
            connection.commit()
            deleted = cursor.rowcount > 0
            if deleted:
                self._emit(AlbumChange(kind="delete", location_id=location_id, photo_ids=photo_ids))
        return deleted

    # Photo references

    def insert_pending(self, location_id: int, url: str) -> PhotoReference | None:
        inserted = self.insert_pending_batch(location_id, [url])
        return inserted[0] if inserted else None

    def insert_pending_batch(
        self,
        location_id: int,
        urls: Iterable[str],
        *,
        require_empty: bool = False,
    ) -> list[PhotoReference]:
        """Append one pending reference per URL in a single transaction.

        Returns an empty list without writing anything when the location has
        been removed in the meantime, or when ``require_empty`` is set and the
        location already holds references.
        """
        url_list = list(urls)
        if not url_list:
            return []

        created_at = utc_now().isoformat()
        with self._lock, open_db(self._db_path) as connection:
            if not _location_exists(connection, location_id):
                LOGGER.info("Discarding %d photo(s) for removed location %s", len(url_list), location_id)
                return []
            if require_empty and _photo_count(connection, location_id) > 0:
                LOGGER.info("Discarding %d photo(s) for location %s: album already filled", len(url_list), location_id)
                return []
            photo_ids: list[int] = []
            for url in url_list:
                cursor = connection.execute(
                    "INSERT INTO photos (location_id, source_url, created_at) VALUES (?, ?, ?)",
                    (location_id, url, created_at),
                )
                photo_ids.append(int(cursor.lastrowid))
            connection.commit()
            self._emit(AlbumChange(kind="insert", location_id=location_id, photo_ids=tuple(photo_ids)))

        return [
            PhotoReference(
                id=photo_id,
                location_id=location_id,
                source_url=url,
                created_at=parse_datetime(created_at),
            )
            for photo_id, url in zip(photo_ids, url_list)
        ]

    def list_for(self, location_id: int) -> list[PhotoReference]:
        with open_db(self._db_path) as connection:
            rows = connection.execute(
                f"SELECT {PHOTO_COLUMNS} FROM photos WHERE location_id = ? ORDER BY id ASC",
                (location_id,),
            ).fetchall()
        return [_photo_from_row(row) for row in rows]

    def get_photo(self, photo_id: int) -> PhotoReference | None:
        with open_db(self._db_path) as connection:
            row = connection.execute(
                f"SELECT {PHOTO_COLUMNS} FROM photos WHERE id = ?",
                (photo_id,),
            ).fetchone()
        return _photo_from_row(row) if row is not None else None

    def list_pending(self, *, limit: int | None = None, location_id: int | None = None) -> list[PhotoReference]:
        query = f"SELECT {PHOTO_COLUMNS} FROM photos WHERE content IS NULL AND source_url IS NOT NULL"
        params: list[object] = []
        if location_id is not None:
            query += " AND location_id = ?"
            params.append(location_id)
        query += " ORDER BY id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with open_db(self._db_path) as connection:
            rows = connection.execute(query, params).fetchall()
        return [_photo_from_row(row) for row in rows]

    def delete(self, location_id: int, photo_ids: Iterable[int]) -> list[int]:
        """Delete the given references of one location as one change-set."""
        requested = list(dict.fromkeys(int(photo_id) for photo_id in photo_ids))
        if not requested:
            return []

        placeholders = ",".join("?" for _ in requested)
        with self._lock, open_db(self._db_path) as connection:
            rows = connection.execute(
                f"SELECT id FROM photos WHERE location_id = ? AND id IN ({placeholders}) ORDER BY id ASC",
                (location_id, *requested),
            ).fetchall()
            deleted = [int(row["id"]) for row in rows]
            if deleted:
                connection.execute(
                    f"DELETE FROM photos WHERE id IN ({','.join('?' for _ in deleted)})",
                    deleted,
                )
                connection.commit()
            self._emit(AlbumChange(kind="delete", location_id=location_id, photo_ids=tuple(deleted)))
        return deleted

    def delete_all(self, location_id: int) -> list[int]:
        with self._lock, open_db(self._db_path) as connection:
            deleted = [
                int(row["id"])
                for row in connection.execute(
                    "SELECT id FROM photos WHERE location_id = ? ORDER BY id ASC", (location_id,)
                ).fetchall()
            ]
            connection.execute("DELETE FROM photos WHERE location_id = ?", (location_id,))
            connection.commit()
            self._emit(AlbumChange(kind="delete", location_id=location_id, photo_ids=tuple(deleted)))
        return deleted

    def fill_content(self, photo_id: int, content: bytes) -> bool:
        """Store downloaded bytes for a pending reference.

        Returns False without touching the row when the reference is already
        resolved or no longer exists.
        """
        if not content:
            raise ValueError("photo content must not be empty")

        with self._lock, open_db(self._db_path) as connection:
            row = connection.execute("SELECT location_id FROM photos WHERE id = ?", (photo_id,)).fetchone()
            if row is None:
                return False
            cursor = connection.execute(
                "UPDATE photos SET content = ?, resolved_at = ? WHERE id = ? AND content IS NULL",
                (sqlite3.Binary(content), utc_now().isoformat(), photo_id),
            )
            connection.commit()
            updated = cursor.rowcount > 0
            if updated:
                self._emit(AlbumChange(kind="update", location_id=int(row["location_id"]), photo_ids=(photo_id,)))
        return updated

    def album_state(self, location_id: int) -> AlbumState:
        with open_db(self._db_path) as connection:
            row = connection.execute(
                """
                SELECT COUNT(*) AS total,
                       SUM(CASE WHEN content IS NULL THEN 1 ELSE 0 END) AS pending
                FROM photos WHERE location_id = ?
                """,
                (location_id,),
            ).fetchone()

        total = int(row["total"] or 0)
        if total == 0:
            return "empty"
        if int(row["pending"] or 0) > 0:
            return "populating"
        return "populated"
