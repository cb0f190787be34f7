"""
Player for tunebox.

Ties together the client-side library projections, the playback session and
the API client. One Player is created per running client and passed to
whatever UI drives it.
"""

import logging
from dataclasses import dataclass, field
from typing import BinaryIO, List, Optional, Set

from .client import ApiResult, LibraryClient
from .models import Playlist, Song
from .playback import MediaElement, PlaybackSession
from .queue import VIEW_ALL, resolve_queue

FALLBACK_VOLUME = 0.7


@dataclass
class LibraryView:
    """Library records materialized on the client plus the current selection."""

    songs: List[Song] = field(default_factory=list)
    playlists: List[Playlist] = field(default_factory=list)
    favorite_ids: Set[str] = field(default_factory=set)
    view: str = VIEW_ALL
    search_term: str = ""

    def queue(self) -> List[Song]:
        return resolve_queue(
            self.songs, self.playlists, self.favorite_ids, self.view, self.search_term
        )

    def find_song(self, song_id: str) -> Optional[Song]:
        return next((song for song in self.songs if song.id == song_id), None)


class Player:
    """Client application state: library view, playback, and server calls."""

    def __init__(
        self,
        client: LibraryClient,
        media: MediaElement,
        volume: Optional[float] = None,
        session: Optional[PlaybackSession] = None,
    ):
        """
        Initialize Player.

        Args:
            client: API client for the signed-in user
            media: Media element used for playback
            volume: Initial volume (the server's default_volume if None)
            session: Pre-built playback session (built from media if None)
        """
        self.client = client
        self.logger = logging.getLogger(__name__)
        self.library = LibraryView()
        if session is None and volume is None:
            volume = self._configured_volume()
        self.session = session or PlaybackSession(
            media,
            queue_provider=self.library.queue,
            source_for=client.media_url,
            volume=volume,
        )

    def _configured_volume(self) -> float:
        """Read default_volume from the server configuration."""
        result = self.client.get_config()
        if not result.ok:
            self.logger.warning(
                "Could not load config, using volume %s: %s", FALLBACK_VOLUME, result.message
            )
            return FALLBACK_VOLUME
        try:
            return float(result.data["values"]["default_volume"])
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning(
                "Invalid default_volume in config, using %s: %s", FALLBACK_VOLUME, e
            )
            return FALLBACK_VOLUME

    # =========================================================================
    # Loading
    # =========================================================================

    def refresh_songs(self) -> ApiResult:
        result = self.client.list_songs()
        if result.ok:
            self.library.songs = result.data
        return result

    def refresh_playlists(self) -> ApiResult:
        result = self.client.list_playlists()
        if result.ok:
            self.library.playlists = result.data
        return result

    def refresh_favorites(self) -> ApiResult:
        result = self.client.list_favorites()
        if result.ok:
            self.library.favorite_ids = {song.id for song in result.data}
        return result

    def refresh(self) -> bool:
        """Reload songs, playlists and favorites. Returns True if all succeeded."""
        results = [self.refresh_songs(), self.refresh_playlists(), self.refresh_favorites()]
        return all(result.ok for result in results)

    # =========================================================================
    # View
    # =========================================================================

    def select_view(self, view: str):
        """Show all songs, favorites, or a playlist ID."""
        self.library.view = view

    def set_search(self, term: str):
        self.library.search_term = term or ""

    def queue(self) -> List[Song]:
        return self.library.queue()

    # =========================================================================
    # Mutations
    # =========================================================================

    def toggle_favorite(self, song_id: str) -> ApiResult:
        """
        Add or remove a favorite.

        The local favorite set changes immediately; if the server call fails
        the previous set is restored.
        """
        previous = set(self.library.favorite_ids)
        was_favorite = song_id in previous

        if was_favorite:
            self.library.favorite_ids = previous - {song_id}
            result = self.client.remove_favorite(song_id)
        else:
            self.library.favorite_ids = previous | {song_id}
            result = self.client.add_favorite(song_id)

        if not result.ok:
            self.library.favorite_ids = previous
            self.logger.warning(
                "Failed to %s favorite %s: %s",
                "remove" if was_favorite else "add",
                song_id,
                result.message,
            )
        return result

    def delete_song(self, song_id: str) -> ApiResult:
        """
        Delete a song on the server.

        If it is the current track, playback is stopped and the track
        cleared before returning. A 404 means the song is already gone, so
        the same cleanup applies.
        """
        result = self.client.delete_song(song_id)
        if not result.ok and result.status_code != 404:
            return result

        if self.session.is_current(song_id):
            self.session.stop(clear=True)

        self.library.songs = [song for song in self.library.songs if song.id != song_id]
        self.library.favorite_ids.discard(song_id)
        for playlist in self.library.playlists:
            if song_id in playlist.song_ids:
                playlist.song_ids.remove(song_id)

        self.refresh_songs()
        self.refresh_playlists()
        return result

    def update_song(
        self, song_id: str, title: Optional[str] = None, artist: Optional[str] = None
    ) -> ApiResult:
        result = self.client.update_song(song_id, title=title, artist=artist)
        if not result.ok:
            return result

        updated = result.data
        self.library.songs = [
            updated if song.id == song_id else song for song in self.library.songs
        ]
        if self.session.is_current(song_id):
            self.session.current_song = updated
        return result

    def upload_song(
        self,
        stream: BinaryIO,
        filename: str,
        title: Optional[str] = None,
        artist: Optional[str] = None,
    ) -> ApiResult:
        result = self.client.upload_song(stream, filename, title=title, artist=artist)
        if result.ok:
            self.refresh_songs()
        return result

    def create_playlist(self, name: str) -> ApiResult:
        if not name or not name.strip():
            return ApiResult(ok=False, message="Playlist name is required")
        result = self.client.create_playlist(name.strip())
        if result.ok:
            self.library.playlists = self.library.playlists + [result.data]
        return result

    def delete_playlist(self, playlist_id: str) -> ApiResult:
        result = self.client.delete_playlist(playlist_id)
        if not result.ok:
            return result

        self.library.playlists = [p for p in self.library.playlists if p.id != playlist_id]
        if self.library.view == playlist_id:
            self.library.view = VIEW_ALL
        return result

    def _replace_playlist(self, updated: Playlist):
        self.library.playlists = [
            updated if p.id == updated.id else p for p in self.library.playlists
        ]

    def add_to_playlist(self, playlist_id: str, song_id: str) -> ApiResult:
        result = self.client.add_to_playlist(playlist_id, song_id)
        if result.ok:
            self._replace_playlist(result.data)
        return result

    def remove_from_playlist(self, playlist_id: str, song_id: str) -> ApiResult:
        result = self.client.remove_from_playlist(playlist_id, song_id)
        if result.ok:
            self._replace_playlist(result.data)
        return result
