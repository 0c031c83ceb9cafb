"""
SQLite-backed metadata repository for annotated images.
"""

import sqlite3
import threading
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterator, Optional, Union
from .models import ImageInfo, ImageRecord
from .tags import join_tags, normalize_tags
from .logging import get_logger


class StorageError(Exception):
    """Custom exception for metadata storage errors."""
    pass


_SCHEMA = """
CREATE TABLE IF NOT EXISTS images (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    file_path TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    tags TEXT NOT NULL DEFAULT '',
    last_filesize INTEGER,
    last_modified TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

_UPSERT = """
INSERT INTO images
    (file_path, title, description, tags, last_filesize, last_modified, created_at, updated_at)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(file_path) DO UPDATE SET
    title=excluded.title,
    description=excluded.description,
    tags=excluded.tags,
    last_filesize=excluded.last_filesize,
    last_modified=excluded.last_modified,
    updated_at=excluded.updated_at
"""


def format_timestamp(value: datetime) -> str:
    """UTC, second precision, RFC 3339."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def _utcnow() -> str:
    # Microseconds are kept so successive upserts stay ordered.
    return datetime.now(timezone.utc).isoformat()


class MetadataRepository:
    """Stores image metadata keyed by the file path relative to the catalog root."""

    def __init__(self, database_path: Union[str, Path]):
        self.database_path = Path(database_path)
        self.logger = get_logger("repository")
        self._initialized = False
        self._init_lock = threading.Lock()
        # file path -> [lock, number of writers holding or waiting for it]
        self._key_locks: Dict[str, list] = {}
        self._key_locks_guard = threading.Lock()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for one operation; commit on success, roll back on error."""
        try:
            with closing(sqlite3.connect(self.database_path, timeout=30.0)) as conn:
                with conn:
                    yield conn
        except sqlite3.Error as e:
            raise StorageError(f"Database error ({self.database_path}): {e}") from e

    def initialize(self) -> None:
        """Create the images table if it does not exist yet."""
        with self._init_lock:
            if self._initialized:
                return
            try:
                self.database_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Cannot create database folder: {e}") from e

            with self._connect() as conn:
                conn.execute(_SCHEMA)

            self._initialized = True
            self.logger.debug(f"Metadata database ready: {self.database_path}")

    @contextmanager
    def _key_lock(self, file_path: str) -> Iterator[None]:
        """Hold the write lock of one file path; the entry is dropped once no writer needs it."""
        with self._key_locks_guard:
            entry = self._key_locks.get(file_path)
            if entry is None:
                entry = self._key_locks[file_path] = [threading.Lock(), 0]
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._key_locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[file_path]

    def lookup(self, file_path: str) -> Optional[ImageInfo]:
        """Get title, description and tags of a file, or None if it was never annotated."""
        self.initialize()
        with self._connect() as conn:
            row = conn.execute(
                "SELECT title, description, tags FROM images WHERE file_path = ?",
                (file_path,),
            ).fetchone()

        if row is None:
            return None

        title, description, tags = row
        return ImageInfo(
            title=title or "",
            description=description or "",
            tags=normalize_tags(tags or ""),
        )

    def get_record(self, file_path: str) -> Optional[ImageRecord]:
        """Get the full stored record of a file."""
        self.initialize()
        with self._connect() as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute(
                "SELECT * FROM images WHERE file_path = ?",
                (file_path,),
            ).fetchone()

        if row is None:
            return None

        return ImageRecord(
            file_path=row["file_path"],
            title=row["title"],
            description=row["description"],
            tags=normalize_tags(row["tags"]),
            last_filesize=row["last_filesize"],
            last_modified=row["last_modified"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def upsert(self, record: ImageRecord) -> None:
        """Insert a record or replace all mutable fields of the existing one.

        ``created_at`` is only written on insert; ``updated_at`` is refreshed
        on every call. Writes to the same file path are serialized.
        """
        self.initialize()

        with self._key_lock(record.file_path):
            # Stamped under the lock so updated_at follows commit order
            now = _utcnow()
            params = (
                record.file_path,
                record.title,
                record.description,
                join_tags(record.tags),
                record.last_filesize,
                format_timestamp(record.last_modified),
                now,
                now,
            )
            with self._connect() as conn:
                conn.execute(_UPSERT, params)

        self.logger.debug(f"Stored metadata for '{record.file_path}'")

    def count(self) -> int:
        """Get the number of stored records."""
        self.initialize()
        with self._connect() as conn:
            (total,) = conn.execute("SELECT COUNT(*) FROM images").fetchone()
        return int(total)
