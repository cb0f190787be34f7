"""
Playback session for tunebox.

Client-side transport state machine built on a media element (an audio
output with asynchronous load/play). All transitions run on one asyncio
event loop; the only suspension points are waiting for the element to have
data and waiting for its play() to settle.

Each select_track() bumps a generation counter. A readiness signal or play
result that arrives for an older generation is discarded, so a quick
succession of skips never lets an earlier track start playing.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .models import Song
from .queue import index_of


class PlaybackState(Enum):
    """Playback state enumeration."""

    STOPPED = "stopped"
    LOADING = "loading"  # Source assigned, waiting for data / play() to settle
    PLAYING = "playing"
    PAUSED = "paused"


class PlaybackInterrupted(Exception):
    """A play() attempt was aborted because a new source was loaded."""


class MediaElement(ABC):
    """Abstract audio output the playback session drives."""

    @abstractmethod
    def set_callbacks(
        self,
        on_data_ready: Callable[[], None],
        on_ended: Callable[[], Awaitable[Any]],
        on_time_update: Callable[[float], None],
        on_duration: Callable[[float], None],
    ) -> None:
        """Register the session's handlers for element events."""
        ...

    @abstractmethod
    def load(self, source: str) -> None:
        """Assign a new source and start loading it from position 0."""
        ...

    @abstractmethod
    def unload(self) -> None:
        """Drop the current source."""
        ...

    @property
    @abstractmethod
    def has_data(self) -> bool:
        """True if enough data is buffered to start playing immediately."""
        ...

    @abstractmethod
    async def play(self) -> None:
        """
        Start playback.

        Raises:
            PlaybackInterrupted: A later load() or pause() superseded this attempt
            Exception: Any other reason playback could not start
        """
        ...

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def seek(self, seconds: float) -> None:
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        ...

    @abstractmethod
    def set_muted(self, muted: bool) -> None:
        ...

    @abstractmethod
    def set_loop(self, loop: bool) -> None:
        """Loop the current source at its end instead of signalling ended."""
        ...


class PlaybackSession:
    """Transport state and track navigation for one running player."""

    def __init__(
        self,
        media: MediaElement,
        queue_provider: Callable[[], List[Song]],
        source_for: Optional[Callable[[Song], str]] = None,
        volume: float = 0.7,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize PlaybackSession.

        Args:
            media: Media element to drive
            queue_provider: Returns the current queue; called on every navigation
            source_for: Maps a song to the source handed to the media element
                (defaults to the song's file_path)
            volume: Initial volume, 0.0 to 1.0
            rng: Random generator used for shuffle
        """
        self.media = media
        self.queue_provider = queue_provider
        self.source_for = source_for or (lambda song: song.file_path)
        self.logger = logging.getLogger(__name__)
        self._rng = rng or random.Random()

        self.state = PlaybackState.STOPPED
        self.current_song: Optional[Song] = None
        self.position = 0.0
        self.duration: Optional[float] = None
        self.shuffle = False
        self.repeat = False
        self.muted = False
        self.volume = min(1.0, max(0.0, volume))

        self._generation = 0
        self._pending_ready: Optional[asyncio.Future] = None
        self._resume_generation: Optional[int] = None  # Set while a resume play() is in flight

        self.media.set_callbacks(
            on_data_ready=self.on_data_ready,
            on_ended=self.on_ended,
            on_time_update=self.on_time_update,
            on_duration=self.on_duration,
        )
        self.media.set_volume(self.volume)
        self.media.set_muted(self.muted)
        self.media.set_loop(self.repeat)

    # =========================================================================
    # Track selection
    # =========================================================================

    def _release_pending_ready(self, ready: bool = False):
        """Resolve the outstanding readiness wait, if any."""
        pending = self._pending_ready
        self._pending_ready = None
        if pending is not None and not pending.done():
            pending.set_result(ready)

    async def select_track(self, song: Song) -> bool:
        """
        Load a song and start playing it once the element is ready.

        Any earlier load that has not started playing yet is superseded.

        Returns:
            True if this selection ended up playing, False if it failed or
            was superseded by a later call
        """
        self._generation += 1
        generation = self._generation
        self._release_pending_ready()

        self.media.pause()
        self.current_song = song
        self.position = 0.0
        self.duration = None
        self.state = PlaybackState.LOADING

        self.logger.info("Loading track: %s by %s", song.title, song.artist)
        self.media.load(self.source_for(song))

        if not self.media.has_data:
            ready = asyncio.get_running_loop().create_future()
            self._pending_ready = ready
            if not await ready:
                self.logger.debug("Load of %s superseded before data was ready", song.id)
                return False

        if generation != self._generation:
            return False

        return await self._attempt_play(generation)

    async def _attempt_play(self, generation: int) -> bool:
        """Issue play() on the element and apply its outcome if still current."""
        try:
            await self.media.play()
        except PlaybackInterrupted:
            # Expected when the user skips again before the load finished
            self.logger.debug("Play attempt interrupted (generation %s)", generation)
            if generation == self._generation:
                self.state = PlaybackState.PAUSED
            return False
        except Exception as e:
            self.logger.warning("Playback did not start: %s", e)
            if generation == self._generation:
                self.state = PlaybackState.PAUSED
            return False

        if generation != self._generation:
            self.logger.debug("Ignoring play result for stale generation %s", generation)
            if self.state == PlaybackState.PAUSED:
                self.media.pause()
            return False

        self.state = PlaybackState.PLAYING
        self.logger.info("Playback started: %s", self.current_song.title)
        return True

    # =========================================================================
    # Transport
    # =========================================================================

    async def toggle_play(self) -> bool:
        """
        Switch between playing and paused.

        No-op while stopped or loading. A second call while a resume is
        still waiting on the element cancels that resume.

        Returns:
            True if the state changed
        """
        if self.state == PlaybackState.PLAYING:
            self.media.pause()
            self.state = PlaybackState.PAUSED
            self.logger.info("Pausing playback")
            return True

        if self.state == PlaybackState.PAUSED:
            if self._resume_generation == self._generation:
                # Pressed again before the resume settled: cancel it
                self._generation += 1
                self.media.pause()
                self.logger.info("Resume cancelled")
                return True

            self.logger.info("Resuming playback")
            self._generation += 1
            generation = self._generation
            self._resume_generation = generation
            started = await self._attempt_play(generation)
            if self._resume_generation == generation:
                self._resume_generation = None
            return started

        self.logger.debug("toggle_play ignored in state %s", self.state.value)
        return False

    def stop(self, clear: bool = True):
        """
        Stop playback and supersede any pending load.

        Args:
            clear: Also drop the current track (used when it was deleted)
        """
        self._generation += 1
        self._release_pending_ready()
        self.media.pause()
        self.state = PlaybackState.STOPPED
        if clear:
            self.media.unload()
            self.current_song = None
            self.position = 0.0
            self.duration = None
        self.logger.info("Playback stopped%s", " and track cleared" if clear else "")

    def _random_index(self, total: int, current: int) -> int:
        """Uniformly pick an index other than ``current`` when there is a choice."""
        if total <= 1:
            return 0
        if current < 0:
            return self._rng.randrange(total)
        candidate = self._rng.randrange(total - 1)
        return candidate + 1 if candidate >= current else candidate

    async def play_next(self) -> bool:
        """
        Advance to the next track of the current queue.

        At the end of an unshuffled queue playback stops without wrapping
        and the current track stays selected.
        """
        queue = self.queue_provider()
        if not queue or self.current_song is None:
            return False

        current = index_of(queue, self.current_song.id)

        if self.shuffle:
            target = self._random_index(len(queue), current)
        elif current < len(queue) - 1:
            target = current + 1
        else:
            self.logger.info("End of queue reached")
            self._generation += 1
            self._release_pending_ready()
            self.media.pause()
            self.state = PlaybackState.STOPPED
            return False

        return await self.select_track(queue[target])

    async def play_prev(self) -> bool:
        """Go back to the previous track of the current queue. No wrap at the start."""
        queue = self.queue_provider()
        if not queue or self.current_song is None:
            return False

        current = index_of(queue, self.current_song.id)

        if self.shuffle:
            target = self._random_index(len(queue), current)
        elif current > 0:
            target = current - 1
        else:
            self.logger.debug("No previous track")
            return False

        return await self.select_track(queue[target])

    def seek(self, target_seconds: float) -> bool:
        """
        Jump to a position in the current track.

        Rejected until the element has reported a duration.
        """
        if self.current_song is None or not self.duration:
            self.logger.debug("Cannot seek: duration unknown")
            return False

        position = min(self.duration, max(0.0, float(target_seconds)))
        self.position = position
        self.media.seek(position)
        return True

    def set_volume(self, volume: float) -> float:
        self.volume = min(1.0, max(0.0, float(volume)))
        self.media.set_volume(self.volume)
        return self.volume

    def toggle_mute(self) -> bool:
        self.muted = not self.muted
        self.media.set_muted(self.muted)
        return self.muted

    def toggle_repeat(self) -> bool:
        self.repeat = not self.repeat
        self.media.set_loop(self.repeat)
        return self.repeat

    def toggle_shuffle(self) -> bool:
        self.shuffle = not self.shuffle
        return self.shuffle

    # =========================================================================
    # Media element events
    # =========================================================================

    def on_data_ready(self):
        """Element has enough data buffered to play."""
        self._release_pending_ready(ready=True)

    async def on_ended(self) -> bool:
        """Current track reached its end."""
        if self.repeat:
            # Element loops on its own
            return False
        return await self.play_next()

    def on_time_update(self, seconds: float):
        self.position = seconds

    def on_duration(self, seconds: float):
        self.duration = seconds

    # =========================================================================
    # Status
    # =========================================================================

    def is_current(self, song_id: str) -> bool:
        return self.current_song is not None and self.current_song.id == song_id

    def get_status(self) -> Dict[str, Any]:
        """
        Get current playback status.

        Returns:
            Dictionary with transport state, current song and modes
        """
        return {
            "state": self.state.value,
            "current_song": self.current_song,
            "position_seconds": self.position,
            "duration_seconds": self.duration,
            "shuffle": self.shuffle,
            "repeat": self.repeat,
            "volume": self.volume,
            "muted": self.muted,
        }
