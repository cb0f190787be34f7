"""
FastAPI web server for tunebox.

Provides the REST API for songs, playlists and favorites, and serves the
uploaded audio files.
"""

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field

from ..config_manager import ConfigManager
from ..errors import InvalidArgument, LibraryError, ServerFault
from ..library import LibraryManager
from ..models import Playlist, User
from ..storage import REFERENCE_PREFIX, FileStorage
from ..user import UserManager

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


# Request models
class UserRequest(BaseModel):
    """Request model for user registration/update."""

    user_id: str  # UUID
    display_name: str


class UpdateSongRequest(BaseModel):
    """Fields left as None are not changed."""

    title: Optional[str] = None
    artist: Optional[str] = None


class CreatePlaylistRequest(BaseModel):
    name: Optional[str] = None


class SongRefRequest(BaseModel):
    song_id: Optional[str] = Field(default=None, alias="songId")


# Dependency to get components
def get_library_manager(request: Request) -> LibraryManager:
    """Get LibraryManager from app state."""
    return request.app.state.library_manager


def get_config_manager(request: Request) -> ConfigManager:
    """Get ConfigManager from app state."""
    return request.app.state.config_manager


def get_user_manager(request: Request) -> UserManager:
    """Get UserManager from app state."""
    return request.app.state.user_manager


def get_file_storage(request: Request) -> FileStorage:
    """Get FileStorage from app state."""
    return request.app.state.file_storage


def get_caller(request: Request) -> User:
    """
    Resolve the calling user from the X-User-Id header.

    Rejects requests without a registered identity.
    """
    user_id = request.headers.get(USER_HEADER)
    if not user_id:
        raise HTTPException(status_code=401, detail="Authentication required")

    user = request.app.state.user_manager.get_user(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def playlist_payload(playlist: Playlist, library: Optional[LibraryManager] = None) -> dict:
    """Playlist as JSON; with a library, member songs are expanded under "songs"."""
    payload = asdict(playlist)
    if library is not None:
        payload["songs"] = [asdict(song) for song in library.get_playlist_songs(playlist.id)]
    return payload


def validation_message(exc: RequestValidationError) -> str:
    """Summarize the first validation error, e.g. "Invalid songId: Input should be a valid string"."""
    errors = exc.errors()
    if not errors:
        return InvalidArgument().message
    first = errors[0]
    fields = [
        part
        for part in first.get("loc", ())
        if isinstance(part, str) and part not in ("body", "query", "path")
    ]
    field = ".".join(fields) or "request"
    return f"Invalid {field}: {first.get('msg', 'invalid value')}"


def create_app(
    library_manager: LibraryManager,
    config_manager: ConfigManager,
    user_manager: UserManager,
    file_storage: FileStorage,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        library_manager: LibraryManager instance
        config_manager: ConfigManager instance
        user_manager: UserManager instance
        file_storage: FileStorage instance holding uploaded audio

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(title="tunebox", version="1.0.0")

    # Store components in app state
    app.state.library_manager = library_manager
    app.state.config_manager = config_manager
    app.state.user_manager = user_manager
    app.state.file_storage = file_storage

    @app.exception_handler(LibraryError)
    async def library_error_handler(request: Request, exc: LibraryError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        invalid = InvalidArgument(validation_message(exc))
        return JSONResponse(status_code=invalid.status_code, content={"message": invalid.message})

    # Uploaded audio, served with range support by StaticFiles
    app.mount(
        f"/{REFERENCE_PREFIX}",
        StaticFiles(directory=str(file_storage.base_directory)),
        name=REFERENCE_PREFIX,
    )

    # User endpoints
    @app.post("/api/users")
    async def register_user(
        request_data: UserRequest,
        user_mgr: UserManager = Depends(get_user_manager),
    ):
        """Register or update a user."""
        return user_mgr.get_or_create_user(
            user_id=request_data.user_id, display_name=request_data.display_name
        )

    # Song endpoints
    @app.get("/api/songs")
    async def list_songs(
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Get every song (not scoped to the caller)."""
        return library.list_songs()

    @app.post("/api/songs/upload", status_code=201)
    async def upload_song(
        song: UploadFile = File(...),
        title: Optional[str] = Form(None),
        artist: Optional[str] = Form(None),
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
        storage: FileStorage = Depends(get_file_storage),
    ):
        """Store an uploaded audio file and create its song record."""
        try:
            file_path = storage.save(song.file, song.filename)
        finally:
            await song.close()

        try:
            created = library.upload_song(
                caller.id,
                file_path=file_path,
                original_filename=song.filename,
                title=title,
                artist=artist,
            )
        except Exception:
            # Don't leave an orphaned file behind a failed insert
            storage.delete(file_path)
            raise

        return {"message": "Song uploaded successfully", "song": created}

    @app.put("/api/songs/{song_id}")
    async def update_song(
        song_id: str,
        request_data: UpdateSongRequest,
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Update title/artist of the caller's song."""
        song = library.update_song(
            caller.id, song_id, title=request_data.title, artist=request_data.artist
        )
        return {"message": "Song updated successfully", "song": song}

    @app.delete("/api/songs/{song_id}")
    async def delete_song(
        song_id: str,
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Delete the caller's song, its playlist memberships, favorites and file."""
        library.delete_song(caller.id, song_id)
        return {"message": "Song deleted successfully"}

    # Playlist endpoints
    @app.get("/api/playlists")
    async def list_playlists(
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Get the caller's playlists with member songs expanded."""
        return [playlist_payload(p, library) for p in library.list_playlists(caller.id)]

    @app.post("/api/playlists", status_code=201)
    async def create_playlist(
        request_data: CreatePlaylistRequest,
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Create an empty playlist."""
        return playlist_payload(library.create_playlist(caller.id, request_data.name))

    @app.delete("/api/playlists/{playlist_id}")
    async def delete_playlist(
        playlist_id: str,
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Delete the caller's playlist (songs are kept)."""
        library.delete_playlist(caller.id, playlist_id)
        return {"message": "Playlist deleted successfully"}

    @app.post("/api/playlists/{playlist_id}/songs")
    async def add_song_to_playlist(
        playlist_id: str,
        request_data: SongRefRequest,
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Add a song to the caller's playlist."""
        playlist = library.add_song_to_playlist(caller.id, playlist_id, request_data.song_id)
        return playlist_payload(playlist)

    @app.delete("/api/playlists/{playlist_id}/songs/{song_id}")
    async def remove_song_from_playlist(
        playlist_id: str,
        song_id: str,
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Remove a song from the caller's playlist."""
        playlist = library.remove_song_from_playlist(caller.id, playlist_id, song_id)
        return playlist_payload(playlist)

    # Favorite endpoints
    @app.get("/api/favorites")
    async def list_favorites(
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Get the caller's favorite songs."""
        return library.list_favorite_songs(caller.id)

    @app.post("/api/favorites", status_code=201)
    async def add_favorite(
        request_data: SongRefRequest,
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Add a song to the caller's favorites."""
        return library.add_favorite(caller.id, request_data.song_id)

    @app.delete("/api/favorites")
    async def remove_favorite(
        request: Request,
        song_id: Optional[str] = Query(None, alias="songId"),
        caller: User = Depends(get_caller),
        library: LibraryManager = Depends(get_library_manager),
    ):
        """Remove a song from the caller's favorites (songId in query or JSON body)."""
        if song_id is None:
            try:
                body = await request.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                song_id = body.get("songId")

        library.remove_favorite(caller.id, song_id)
        return {"message": "Favorite removed"}

    # Configuration endpoints
    @app.get("/api/config")
    async def get_config(config: ConfigManager = Depends(get_config_manager)):
        """
        Get all configuration with schema metadata.

        Returns:
            - values: Current configuration values
            - schema: Metadata for each editable key
            - groups: Group definitions for organizing the config UI
        """
        return config.get_full_config()

    @app.middleware("http")
    async def unexpected_error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, e, exc_info=True)
            fault = ServerFault("Server error")
            return JSONResponse(status_code=fault.status_code, content={"message": fault.message})

    return app
