"""
Data models for tunebox.

Defines typed dataclasses for all entities used throughout the application.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class User:
    """User entity with UUID-based identity."""

    id: str
    display_name: str
    created_at: Optional[datetime] = None


@dataclass
class Song:
    """Uploaded audio track owned by a single user."""

    id: str
    title: str
    artist: str
    file_path: str  # Reference returned by FileStorage, stored verbatim
    user_id: str
    album: Optional[str] = None
    duration_seconds: Optional[float] = None
    album_art: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Playlist:
    """Named, owner-scoped list of song IDs."""

    id: str
    name: str
    user_id: str
    song_ids: List[str] = field(default_factory=list)  # Insertion order, no duplicates
    created_at: Optional[datetime] = None


@dataclass
class Favorite:
    """Relation between a user and a song they marked."""

    id: str
    user_id: str
    song_id: str
    status: str = "active"
    created_at: Optional[datetime] = None


@dataclass
class ConfigEntry:
    """Configuration entry."""

    key: str
    value: str
    updated_at: Optional[datetime] = None
