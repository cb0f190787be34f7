"""
Pytest configuration for tunebox tests.

Provides:
- temp_db / upload_dir fixtures backed by temporary files
- FakeMedia, a scriptable in-memory MediaElement for playback tests
"""

import os
import shutil
import tempfile

import pytest

from tunebox.database import Database
from tunebox.playback import MediaElement, PlaybackInterrupted


class FakeMedia(MediaElement):
    """
    MediaElement double.

    - buffered: whether has_data is True right after load()
    - play_gate: if set, play() waits on this event before settling
    - play_error: if set, play() raises it
    A play() whose source was replaced, or that saw a pause(), while it waited
    raises PlaybackInterrupted.
    """

    def __init__(self, buffered: bool = True):
        self.buffered = buffered
        self.source = None
        self.loaded = []
        self.play_calls = 0
        self.pauses = 0
        self.playing = False
        self.seeked_to = None
        self.volume = None
        self.muted = None
        self.loop = None
        self.play_gate = None
        self.play_error = None
        self.handlers = {}

    def set_callbacks(self, on_data_ready, on_ended, on_time_update, on_duration):
        self.handlers = {
            "data_ready": on_data_ready,
            "ended": on_ended,
            "time_update": on_time_update,
            "duration": on_duration,
        }

    def load(self, source):
        self.source = source
        self.loaded.append(source)
        self.playing = False

    def unload(self):
        self.source = None
        self.playing = False

    @property
    def has_data(self):
        return self.buffered

    async def play(self):
        self.play_calls += 1
        source = self.source
        pauses = self.pauses
        if self.play_gate is not None:
            await self.play_gate.wait()
        if self.source != source:
            raise PlaybackInterrupted("The play() request was interrupted by a new load request")
        if self.pauses != pauses:
            raise PlaybackInterrupted("The play() request was interrupted by a call to pause()")
        if self.play_error is not None:
            raise self.play_error
        self.playing = True

    def pause(self):
        self.pauses += 1
        self.playing = False

    def seek(self, seconds):
        self.seeked_to = seconds

    def set_volume(self, volume):
        self.volume = volume

    def set_muted(self, muted):
        self.muted = muted

    def set_loop(self, loop):
        self.loop = loop


@pytest.fixture
def media():
    """A FakeMedia that always has data buffered."""
    return FakeMedia()


@pytest.fixture
def slow_media():
    """A FakeMedia that needs an explicit data-ready signal after each load."""
    return FakeMedia(buffered=False)


@pytest.fixture
def temp_db():
    """Create a temporary database."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    db = Database(db_path=path)
    yield db
    db.close()
    os.unlink(path)


@pytest.fixture
def upload_dir():
    """Create a temporary upload directory."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)

