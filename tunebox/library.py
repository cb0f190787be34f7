"""
Library management for tunebox.

LibraryManager is the only layer that applies ownership rules and the only
place multi-record mutations (song deletion, favorites, playlist membership)
are sequenced. Every mutating operation takes the caller's user ID first.
"""

import logging
from typing import List, Optional

from .database import (
    Database,
    FavoriteRepository,
    PlaylistRepository,
    SongRepository,
    is_valid_id,
)
from .errors import InvalidArgument, NotFound, Unauthorized
from .models import Favorite, Playlist, Song
from .storage import FileStorage

DEFAULT_ARTIST = "Unknown Artist"


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


class LibraryManager:
    """Manages songs, playlists and favorites on behalf of their owners."""

    def __init__(
        self,
        database: Database,
        storage: FileStorage,
        unknown_artist: str = DEFAULT_ARTIST,
    ):
        """
        Initialize LibraryManager.

        Args:
            database: Database instance for persistence
            storage: FileStorage holding the uploaded audio files
            unknown_artist: Artist recorded when an upload does not name one
        """
        self.database = database
        self.storage = storage
        self.unknown_artist = unknown_artist
        self.songs = SongRepository(database)
        self.playlists = PlaylistRepository(database)
        self.favorites = FavoriteRepository(database)
        self.logger = logging.getLogger(__name__)

    # =========================================================================
    # Ownership helpers
    # =========================================================================

    def _owned_song(self, caller_id: str, song_id: str) -> Song:
        song = self.songs.get(song_id) if song_id else None
        if not song:
            raise NotFound("Song not found")
        if song.user_id != caller_id:
            raise Unauthorized()
        return song

    def _owned_playlist(self, caller_id: str, playlist_id: str) -> Playlist:
        playlist = self.playlists.get(playlist_id) if playlist_id else None
        if not playlist:
            raise NotFound("Playlist not found")
        if playlist.user_id != caller_id:
            raise Unauthorized()
        return playlist

    # =========================================================================
    # Songs
    # =========================================================================

    def upload_song(
        self,
        caller_id: str,
        file_path: str,
        original_filename: str,
        title: Optional[str] = None,
        artist: Optional[str] = None,
        album: Optional[str] = None,
        duration_seconds: Optional[float] = None,
    ) -> Song:
        """
        Record an uploaded file as a new song owned by the caller.

        Args:
            caller_id: Uploading user
            file_path: Reference returned by FileStorage.save
            original_filename: Name the file was uploaded as
            title: Song title (defaults to original_filename when blank)
            artist: Artist (defaults to "Unknown Artist" when blank)
            album: Album name (optional)
            duration_seconds: Duration (optional)

        Returns:
            The created Song
        """
        song = self.songs.create(
            title=original_filename if _blank(title) else title,
            artist=self.unknown_artist if _blank(artist) else artist,
            file_path=file_path,
            user_id=caller_id,
            album=album,
            duration_seconds=duration_seconds,
        )
        self.logger.info(
            "Uploaded song: %s by %s (ID: %s, owner: %s)",
            song.title,
            song.artist,
            song.id,
            caller_id,
        )
        return song

    def update_song(
        self,
        caller_id: str,
        song_id: str,
        title: Optional[str] = None,
        artist: Optional[str] = None,
    ) -> Song:
        """
        Update title and/or artist of the caller's song.

        None leaves a field unchanged; an empty string is a valid new value.
        Values are stripped of surrounding whitespace.
        """
        self._owned_song(caller_id, song_id)

        fields = {}
        if title is not None:
            fields["title"] = str(title).strip()
        if artist is not None:
            fields["artist"] = str(artist).strip()

        song = self.songs.update(song_id, **fields)
        if not song:
            raise NotFound("Song not found")

        self.logger.info("Updated song %s: %s", song_id, fields)
        return song

    def delete_song(self, caller_id: str, song_id: str) -> Song:
        """
        Delete the caller's song and every reference to it.

        Membership in all playlists (of any owner) and all favorites (of any
        user) are removed together with the song document in one
        transaction. The audio file is deleted afterwards on a best-effort
        basis; failure is logged and does not undo the deletion.

        Returns:
            The deleted Song
        """
        song = self._owned_song(caller_id, song_id)

        with self.database.transaction() as conn:
            pulled = self.playlists.pull_song_from_all(song.id, conn=conn)
            unfavorited = self.favorites.delete_by_song(song.id, conn=conn)
            self.songs.delete(song.id, conn=conn)

        if song.file_path and not self.storage.delete(song.file_path):
            self.logger.warning("Audio file for song %s was not deleted: %s", song.id, song.file_path)

        self.logger.info(
            "Deleted song %s (%s): removed from %s playlist(s), %s favorite(s)",
            song.id,
            song.title,
            pulled,
            unfavorited,
        )
        return song

    def get_song(self, song_id: str) -> Optional[Song]:
        """Get a song by ID."""
        return self.songs.get(song_id)

    def list_songs(self) -> List[Song]:
        """Get every song in upload order, regardless of owner."""
        return self.songs.list_all()

    # =========================================================================
    # Favorites
    # =========================================================================

    def add_favorite(self, caller_id: str, song_id: str) -> Favorite:
        """Mark a song as one of the caller's favorites."""
        if not song_id:
            raise InvalidArgument("Song ID is required")
        if not is_valid_id(song_id):
            raise InvalidArgument("Invalid Song ID format")
        if not self.songs.get(song_id):
            raise NotFound("Song not found")

        # The partial unique index backs this check against concurrent adds
        favorite = self.favorites.add(caller_id, song_id)
        self.logger.info("User %s favorited song %s", caller_id, song_id)
        return favorite

    def remove_favorite(self, caller_id: str, song_id: str) -> None:
        """Remove one of the caller's favorites."""
        if not song_id:
            raise InvalidArgument("Song ID is required")
        if not is_valid_id(song_id):
            raise InvalidArgument("Invalid Song ID format")
        if not self.favorites.mark_removed(caller_id, song_id):
            raise NotFound("Favorite not found or already removed")
        self.logger.info("User %s unfavorited song %s", caller_id, song_id)

    def list_favorite_ids(self, caller_id: str) -> List[str]:
        """IDs of the caller's favorited songs."""
        return self.favorites.list_active_song_ids(caller_id)

    def list_favorite_songs(self, caller_id: str) -> List[Song]:
        """The caller's favorited songs that still exist."""
        return self.favorites.list_active_songs(caller_id)

    # =========================================================================
    # Playlists
    # =========================================================================

    def create_playlist(self, caller_id: str, name: str) -> Playlist:
        """Create an empty playlist owned by the caller."""
        if _blank(name):
            raise InvalidArgument("Playlist name is required")

        playlist = self.playlists.create(name.strip(), caller_id)
        self.logger.info("Created playlist %s (ID: %s, owner: %s)", playlist.name, playlist.id, caller_id)
        return playlist

    def add_song_to_playlist(self, caller_id: str, playlist_id: str, song_id: str) -> Playlist:
        """
        Append a song to the caller's playlist.

        Raises Conflict if the song is already a member. The check and the
        insert are a single statement against the membership primary key.
        """
        self._owned_playlist(caller_id, playlist_id)
        if not song_id:
            raise InvalidArgument("Song ID is required")
        if not self.songs.get(song_id):
            raise NotFound("Song not found")

        self.playlists.add_song(playlist_id, song_id)
        self.logger.info("Added song %s to playlist %s", song_id, playlist_id)
        return self.playlists.get(playlist_id)

    def remove_song_from_playlist(self, caller_id: str, playlist_id: str, song_id: str) -> Playlist:
        """Remove a song from the caller's playlist."""
        self._owned_playlist(caller_id, playlist_id)
        if not self.playlists.remove_song(playlist_id, song_id):
            raise NotFound("Song not in playlist")

        self.logger.info("Removed song %s from playlist %s", song_id, playlist_id)
        return self.playlists.get(playlist_id)

    def delete_playlist(self, caller_id: str, playlist_id: str) -> None:
        """Delete the caller's playlist. Member songs are not touched."""
        playlist = self._owned_playlist(caller_id, playlist_id)
        self.playlists.delete(playlist_id)
        self.logger.info("Deleted playlist %s (ID: %s)", playlist.name, playlist_id)

    def get_playlist(self, playlist_id: str) -> Optional[Playlist]:
        """Get a playlist by ID."""
        return self.playlists.get(playlist_id)

    def get_playlist_songs(self, playlist_id: str) -> List[Song]:
        """Songs in a playlist, skipping members that no longer exist."""
        return self.playlists.get_songs(playlist_id)

    def list_playlists(self, caller_id: str) -> List[Playlist]:
        """The caller's playlists."""
        return self.playlists.list_by_user(caller_id)
