"""
Database module for tunebox.

Handles SQLite database initialization, schema creation, connection management,
and the per-entity repositories that make up the library store.

Repositories hold storage mechanics only: required-field validation and the
document-level uniqueness constraints. Ownership and cascade rules live in
LibraryManager.
"""

import logging
import os
import re
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from .errors import Conflict, InvalidArgument
from .models import ConfigEntry, Favorite, Playlist, Song, User

_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

FAVORITE_ACTIVE = "active"
FAVORITE_REMOVED = "removed"


def new_id() -> str:
    """Generate an opaque entity ID."""
    return uuid.uuid4().hex


def is_valid_id(value) -> bool:
    """Check whether a value is a well-formed entity ID."""
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class Database:
    """Manages SQLite database connection and schema."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses $TUNEBOX_DB_PATH
                or ~/.tunebox/tunebox.db
        """
        self.logger = logging.getLogger(__name__)

        if db_path is None:
            db_path = os.environ.get("TUNEBOX_DB_PATH")

        if db_path is None:
            tunebox_dir = Path.home() / ".tunebox"
            tunebox_dir.mkdir(exist_ok=True)
            db_path = str(tunebox_dir / "tunebox.db")

        self.db_path = db_path
        self._ensure_schema()
        self.logger.info("Database initialized at %s", self.db_path)

    def _ensure_schema(self):
        """Ensure database schema exists."""
        conn = self.get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                display_name TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS config (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS songs (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                artist TEXT NOT NULL,
                album TEXT,
                duration_seconds REAL,
                file_path TEXT NOT NULL,
                album_art TEXT,
                user_id TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS playlists (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                user_id TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # One row per membership; the primary key makes duplicates impossible
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS playlist_songs (
                playlist_id TEXT NOT NULL,
                song_id TEXT NOT NULL,
                position INTEGER NOT NULL,
                added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (playlist_id, song_id)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS favorites (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                song_id TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active'
                    CHECK (status IN ('active', 'removed')),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # At most one active favorite per (user, song); removed rows are history
        cursor.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_favorites_active
            ON favorites(user_id, song_id) WHERE status = 'active'
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_favorites_song
            ON favorites(song_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_playlist_songs_song
            ON playlist_songs(song_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_playlists_user
            ON playlists(user_id)
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_songs_user
            ON songs(user_id)
        """)

        conn.commit()
        conn.close()
        self.logger.debug("Database schema created/verified")

    def get_connection(self):
        """
        Get a new database connection (thread-safe).

        Each thread should get its own connection. Caller is responsible
        for closing the connection when done.
        """
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Open a connection whose statements commit or roll back together.

        Pass the yielded connection to repository methods via their ``conn``
        argument to group them.
        """
        conn = self.get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def reset(self):
        """Delete all library data (songs, playlists, favorites). Users and config are kept."""
        with self.transaction() as conn:
            for table in ("playlist_songs", "playlists", "favorites", "songs"):
                conn.execute(f"DELETE FROM {table}")
        self.logger.info("Library data reset")

    def close(self):
        """Close database connection (no-op since we use per-call connections)."""
        pass

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class BaseRepository:
    """Shared connection handling for repositories."""

    def __init__(self, database: Database):
        self.database = database

    @contextmanager
    def _cursor(self, conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Cursor]:
        """
        Yield a cursor.

        With ``conn`` given, the caller owns commit/close (see
        Database.transaction). Otherwise a private connection is opened and
        committed when the block exits cleanly.
        """
        if conn is not None:
            yield conn.cursor()
            return

        own = self.database.get_connection()
        try:
            yield own.cursor()
            own.commit()
        finally:
            own.close()


class UserRepository(BaseRepository):
    """Persistence for users."""

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = cursor.fetchone()
        if not row:
            return None
        return User(
            id=row["id"],
            display_name=row["display_name"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    def create(self, user_id: str, display_name: str) -> User:
        with self._cursor() as cursor:
            cursor.execute(
                "INSERT INTO users (id, display_name) VALUES (?, ?)", (user_id, display_name)
            )
        return self.get_by_id(user_id)

    def update_display_name(self, user_id: str, display_name: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE users SET display_name = ? WHERE id = ?", (display_name, user_id)
            )
            return cursor.rowcount > 0


class ConfigRepository(BaseRepository):
    """Persistence for key/value configuration."""

    def get(self, key: str) -> Optional[ConfigEntry]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM config WHERE key = ?", (key,))
            row = cursor.fetchone()
        if not row:
            return None
        return ConfigEntry(
            key=row["key"], value=row["value"], updated_at=_parse_timestamp(row["updated_at"])
        )

    def set(self, key: str, value: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO config (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, value),
            )
        return True

    def get_all(self) -> List[ConfigEntry]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM config ORDER BY key")
            rows = cursor.fetchall()
        return [
            ConfigEntry(
                key=row["key"], value=row["value"], updated_at=_parse_timestamp(row["updated_at"])
            )
            for row in rows
        ]

    def initialize_defaults(self, defaults: Dict[str, Optional[str]]):
        """Insert default values for keys that have never been set."""
        with self._cursor() as cursor:
            for key, value in defaults.items():
                if value is None:
                    continue
                cursor.execute(
                    "INSERT OR IGNORE INTO config (key, value) VALUES (?, ?)", (key, str(value))
                )


class SongRepository(BaseRepository):
    """Persistence for songs."""

    UPDATABLE_FIELDS = ("title", "artist", "album", "duration_seconds", "album_art")

    @staticmethod
    def _row_to_song(row) -> Song:
        return Song(
            id=row["id"],
            title=row["title"],
            artist=row["artist"],
            file_path=row["file_path"],
            user_id=row["user_id"],
            album=row["album"],
            duration_seconds=row["duration_seconds"],
            album_art=row["album_art"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    def create(
        self,
        title: str,
        artist: str,
        file_path: str,
        user_id: str,
        album: Optional[str] = None,
        duration_seconds: Optional[float] = None,
        album_art: Optional[str] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Song:
        """Insert a song. Raises InvalidArgument if a required field is missing."""
        required = {"title": title, "artist": artist, "file_path": file_path, "user_id": user_id}
        missing = [name for name, value in required.items() if value is None]
        if missing:
            raise InvalidArgument(f"Song requires: {', '.join(missing)}")

        song_id = new_id()
        with self._cursor(conn) as cursor:
            cursor.execute(
                """
                INSERT INTO songs
                (id, title, artist, album, duration_seconds, file_path, album_art, user_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (song_id, title, artist, album, duration_seconds, file_path, album_art, user_id),
            )
            cursor.execute("SELECT * FROM songs WHERE id = ?", (song_id,))
            return self._row_to_song(cursor.fetchone())

    def get(self, song_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Song]:
        with self._cursor(conn) as cursor:
            cursor.execute("SELECT * FROM songs WHERE id = ?", (song_id,))
            row = cursor.fetchone()
        return self._row_to_song(row) if row else None

    def list_all(self) -> List[Song]:
        """All songs in upload order."""
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM songs ORDER BY rowid")
            return [self._row_to_song(row) for row in cursor.fetchall()]

    def list_by_user(self, user_id: str) -> List[Song]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM songs WHERE user_id = ? ORDER BY rowid", (user_id,))
            return [self._row_to_song(row) for row in cursor.fetchall()]

    def update(
        self, song_id: str, conn: Optional[sqlite3.Connection] = None, **fields
    ) -> Optional[Song]:
        """
        Update the given fields of a song.

        Only keys present in ``fields`` are written. Returns the updated song,
        or None if it does not exist.
        """
        unknown = set(fields) - set(self.UPDATABLE_FIELDS)
        if unknown:
            raise InvalidArgument(f"Unknown song fields: {', '.join(sorted(unknown))}")
        for name in ("title", "artist"):
            if name in fields and fields[name] is None:
                raise InvalidArgument(f"Song requires: {name}")

        with self._cursor(conn) as cursor:
            if fields:
                assignments = ", ".join(f"{name} = ?" for name in fields)
                cursor.execute(
                    f"UPDATE songs SET {assignments} WHERE id = ?",
                    (*fields.values(), song_id),
                )
            cursor.execute("SELECT * FROM songs WHERE id = ?", (song_id,))
            row = cursor.fetchone()
        return self._row_to_song(row) if row else None

    def delete(self, song_id: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._cursor(conn) as cursor:
            cursor.execute("DELETE FROM songs WHERE id = ?", (song_id,))
            return cursor.rowcount > 0


class PlaylistRepository(BaseRepository):
    """Persistence for playlists and their membership lists."""

    def _load(self, cursor, row) -> Playlist:
        cursor.execute(
            "SELECT song_id FROM playlist_songs WHERE playlist_id = ? ORDER BY position",
            (row["id"],),
        )
        return Playlist(
            id=row["id"],
            name=row["name"],
            user_id=row["user_id"],
            song_ids=[r["song_id"] for r in cursor.fetchall()],
            created_at=_parse_timestamp(row["created_at"]),
        )

    def create(self, name: str, user_id: str) -> Playlist:
        if name is None or user_id is None:
            raise InvalidArgument("Playlist requires: name, user_id")

        playlist_id = new_id()
        with self._cursor() as cursor:
            cursor.execute(
                "INSERT INTO playlists (id, name, user_id) VALUES (?, ?, ?)",
                (playlist_id, name, user_id),
            )
        return self.get(playlist_id)

    def get(self, playlist_id: str, conn: Optional[sqlite3.Connection] = None) -> Optional[Playlist]:
        with self._cursor(conn) as cursor:
            cursor.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,))
            row = cursor.fetchone()
            return self._load(cursor, row) if row else None

    def list_by_user(self, user_id: str) -> List[Playlist]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM playlists WHERE user_id = ? ORDER BY rowid", (user_id,)
            )
            rows = cursor.fetchall()
            return [self._load(cursor, row) for row in rows]

    def get_songs(self, playlist_id: str) -> List[Song]:
        """Expand membership into songs, skipping IDs that no longer resolve."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT s.* FROM playlist_songs ps
                JOIN songs s ON s.id = ps.song_id
                WHERE ps.playlist_id = ?
                ORDER BY ps.position
                """,
                (playlist_id,),
            )
            return [SongRepository._row_to_song(row) for row in cursor.fetchall()]

    def add_song(
        self, playlist_id: str, song_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """
        Append a song to a playlist.

        Raises Conflict if the song is already a member.
        """
        try:
            with self._cursor(conn) as cursor:
                cursor.execute(
                    """
                    INSERT INTO playlist_songs (playlist_id, song_id, position)
                    SELECT ?, ?, COALESCE(MAX(position), 0) + 1
                    FROM playlist_songs WHERE playlist_id = ?
                    """,
                    (playlist_id, song_id, playlist_id),
                )
        except sqlite3.IntegrityError as e:
            raise Conflict("Song already in playlist") from e

    def remove_song(
        self, playlist_id: str, song_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> bool:
        with self._cursor(conn) as cursor:
            cursor.execute(
                "DELETE FROM playlist_songs WHERE playlist_id = ? AND song_id = ?",
                (playlist_id, song_id),
            )
            return cursor.rowcount > 0

    def pull_song_from_all(self, song_id: str, conn: Optional[sqlite3.Connection] = None) -> int:
        """Remove a song from every playlist that references it, regardless of owner."""
        with self._cursor(conn) as cursor:
            cursor.execute("DELETE FROM playlist_songs WHERE song_id = ?", (song_id,))
            return cursor.rowcount

    def delete(self, playlist_id: str, conn: Optional[sqlite3.Connection] = None) -> bool:
        with self._cursor(conn) as cursor:
            cursor.execute("DELETE FROM playlist_songs WHERE playlist_id = ?", (playlist_id,))
            cursor.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))
            return cursor.rowcount > 0


class FavoriteRepository(BaseRepository):
    """Persistence for favorites."""

    @staticmethod
    def _row_to_favorite(row) -> Favorite:
        return Favorite(
            id=row["id"],
            user_id=row["user_id"],
            song_id=row["song_id"],
            status=row["status"],
            created_at=_parse_timestamp(row["created_at"]),
        )

    def add(self, user_id: str, song_id: str) -> Favorite:
        """
        Create an active favorite.

        Raises Conflict if an active favorite for (user, song) already exists.
        """
        if user_id is None or song_id is None:
            raise InvalidArgument("Favorite requires: user_id, song_id")

        favorite_id = new_id()
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    "INSERT INTO favorites (id, user_id, song_id, status) VALUES (?, ?, ?, ?)",
                    (favorite_id, user_id, song_id, FAVORITE_ACTIVE),
                )
                cursor.execute("SELECT * FROM favorites WHERE id = ?", (favorite_id,))
                return self._row_to_favorite(cursor.fetchone())
        except sqlite3.IntegrityError as e:
            raise Conflict("Song already in favorites") from e

    def mark_removed(self, user_id: str, song_id: str) -> bool:
        """Soft-delete the active favorite. Returns False if none was active."""
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE favorites SET status = ? WHERE user_id = ? AND song_id = ? AND status = ?",
                (FAVORITE_REMOVED, user_id, song_id, FAVORITE_ACTIVE),
            )
            return cursor.rowcount > 0

    def delete_by_song(self, song_id: str, conn: Optional[sqlite3.Connection] = None) -> int:
        """Hard-delete every favorite referencing a song, for all users."""
        with self._cursor(conn) as cursor:
            cursor.execute("DELETE FROM favorites WHERE song_id = ?", (song_id,))
            return cursor.rowcount

    def list_active_song_ids(self, user_id: str) -> List[str]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT song_id FROM favorites WHERE user_id = ? AND status = ? ORDER BY rowid",
                (user_id, FAVORITE_ACTIVE),
            )
            return [row["song_id"] for row in cursor.fetchall()]

    def list_active_songs(self, user_id: str) -> List[Song]:
        """Songs the user has favorited, skipping favorites whose song is gone."""
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT s.* FROM favorites f
                JOIN songs s ON s.id = f.song_id
                WHERE f.user_id = ? AND f.status = ?
                ORDER BY f.rowid
                """,
                (user_id, FAVORITE_ACTIVE),
            )
            return [SongRepository._row_to_song(row) for row in cursor.fetchall()]
