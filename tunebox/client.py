"""
HTTP client for the tunebox API.

Used by the player. Every call returns an ApiResult instead of raising, so
callers can branch on failure (and revert optimistic changes) without
exception handling. Requests are never retried.
"""

import logging
from dataclasses import dataclass
from typing import Any, BinaryIO, Dict, Optional

import httpx

from .models import Playlist, Song

USER_HEADER = "X-User-Id"


@dataclass
class ApiResult:
    """Outcome of an API call."""

    ok: bool
    status_code: Optional[int] = None  # None when the request never got a response
    data: Any = None
    message: Optional[str] = None


def song_from_json(data: Dict[str, Any]) -> Song:
    return Song(
        id=data["id"],
        title=data["title"],
        artist=data["artist"],
        file_path=data["file_path"],
        user_id=data["user_id"],
        album=data.get("album"),
        duration_seconds=data.get("duration_seconds"),
        album_art=data.get("album_art"),
    )


def playlist_from_json(data: Dict[str, Any]) -> Playlist:
    return Playlist(
        id=data["id"],
        name=data["name"],
        user_id=data["user_id"],
        song_ids=list(data.get("song_ids", [])),
    )


class LibraryClient:
    """Thin wrapper over the tunebox REST API for one user."""

    def __init__(
        self,
        base_url: str,
        user_id: str,
        http: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize LibraryClient.

        Args:
            base_url: Server root, e.g. "http://localhost:3003"
            user_id: Caller identity sent with every request
            http: Pre-built client (e.g. a FastAPI TestClient); created if None
            timeout: Request timeout in seconds for a created client
        """
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.http = http or httpx.Client(base_url=self.base_url, timeout=timeout)
        self.logger = logging.getLogger(__name__)

    def media_url(self, song: Song) -> str:
        """URL the song's audio bytes are served from."""
        return f"{self.base_url}/{song.file_path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> ApiResult:
        headers = kwargs.pop("headers", {})
        headers[USER_HEADER] = self.user_id
        try:
            response = self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            self.logger.error("%s %s failed: %s", method, path, e)
            return ApiResult(ok=False, message=str(e))

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.is_success:
            return ApiResult(ok=True, status_code=response.status_code, data=data)

        message = data.get("message") if isinstance(data, dict) else response.reason_phrase
        self.logger.warning("%s %s returned %s: %s", method, path, response.status_code, message)
        return ApiResult(ok=False, status_code=response.status_code, data=data, message=message)

    # Configuration

    def get_config(self) -> ApiResult:
        return self._request("GET", "/api/config")

    # Users

    def register(self, display_name: str) -> ApiResult:
        return self._request(
            "POST", "/api/users", json={"user_id": self.user_id, "display_name": display_name}
        )

    # Songs

    def list_songs(self) -> ApiResult:
        result = self._request("GET", "/api/songs")
        if result.ok:
            result.data = [song_from_json(item) for item in result.data]
        return result

    def upload_song(
        self,
        stream: BinaryIO,
        filename: str,
        title: Optional[str] = None,
        artist: Optional[str] = None,
    ) -> ApiResult:
        form = {}
        if title is not None:
            form["title"] = title
        if artist is not None:
            form["artist"] = artist
        result = self._request(
            "POST", "/api/songs/upload", files={"song": (filename, stream)}, data=form
        )
        if result.ok:
            result.data = song_from_json(result.data["song"])
        return result

    def update_song(
        self, song_id: str, title: Optional[str] = None, artist: Optional[str] = None
    ) -> ApiResult:
        body = {}
        if title is not None:
            body["title"] = title
        if artist is not None:
            body["artist"] = artist
        result = self._request("PUT", f"/api/songs/{song_id}", json=body)
        if result.ok:
            result.data = song_from_json(result.data["song"])
        return result

    def delete_song(self, song_id: str) -> ApiResult:
        return self._request("DELETE", f"/api/songs/{song_id}")

    # Playlists

    def list_playlists(self) -> ApiResult:
        result = self._request("GET", "/api/playlists")
        if result.ok:
            result.data = [playlist_from_json(item) for item in result.data]
        return result

    def create_playlist(self, name: str) -> ApiResult:
        result = self._request("POST", "/api/playlists", json={"name": name})
        if result.ok:
            result.data = playlist_from_json(result.data)
        return result

    def delete_playlist(self, playlist_id: str) -> ApiResult:
        return self._request("DELETE", f"/api/playlists/{playlist_id}")

    def add_to_playlist(self, playlist_id: str, song_id: str) -> ApiResult:
        result = self._request(
            "POST", f"/api/playlists/{playlist_id}/songs", json={"songId": song_id}
        )
        if result.ok:
            result.data = playlist_from_json(result.data)
        return result

    def remove_from_playlist(self, playlist_id: str, song_id: str) -> ApiResult:
        result = self._request("DELETE", f"/api/playlists/{playlist_id}/songs/{song_id}")
        if result.ok:
            result.data = playlist_from_json(result.data)
        return result

    # Favorites

    def list_favorites(self) -> ApiResult:
        result = self._request("GET", "/api/favorites")
        if result.ok:
            result.data = [song_from_json(item) for item in result.data]
        return result

    def add_favorite(self, song_id: str) -> ApiResult:
        return self._request("POST", "/api/favorites", json={"songId": song_id})

    def remove_favorite(self, song_id: str) -> ApiResult:
        return self._request("DELETE", "/api/favorites", params={"songId": song_id})