"""
Playback queue resolution for tunebox.

The queue is never stored: it is recomputed from the client's library
projections whenever the view, the search term or the library changes.
"""

from typing import Iterable, List, Optional, Sequence

from .models import Playlist, Song

VIEW_ALL = "all"
VIEW_FAVORITES = "favorites"


def matches_search(song: Song, term: Optional[str]) -> bool:
    """Case-insensitive substring match against title or artist."""
    if not term:
        return True
    needle = term.lower()
    return needle in (song.title or "").lower() or needle in (song.artist or "").lower()


def resolve_queue(
    songs: Sequence[Song],
    playlists: Iterable[Playlist],
    favorite_ids: Iterable[str],
    view: str = VIEW_ALL,
    search_term: Optional[str] = None,
) -> List[Song]:
    """
    Compute the ordered list of playable songs.

    Args:
        songs: All songs, in display order
        playlists: The user's playlists
        favorite_ids: IDs of the user's favorite songs
        view: "all", "favorites", or a playlist ID
        search_term: Optional filter on title/artist

    Returns:
        Songs in the order of ``songs``. Favorites and playlist membership
        only select songs, they never reorder them. An unknown playlist ID
        yields an empty list.
    """
    if view == VIEW_ALL:
        selected = list(songs)
    elif view == VIEW_FAVORITES:
        wanted = set(favorite_ids)
        selected = [song for song in songs if song.id in wanted]
    else:
        playlist = next((p for p in playlists if p.id == view), None)
        if playlist is None:
            return []
        members = set(playlist.song_ids)
        selected = [song for song in songs if song.id in members]

    return [song for song in selected if matches_search(song, search_term)]


def index_of(queue: Sequence[Song], song_id: Optional[str]) -> int:
    """Position of a song in the queue, or -1."""
    if song_id is None:
        return -1
    for index, song in enumerate(queue):
        if song.id == song_id:
            return index
    return -1
