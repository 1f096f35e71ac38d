"""Fake backend sessions for deterministic testing and offline demos."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from .playback_backend import (
    BackendError,
    PlaybackStatus,
    SessionNotFound,
    TrackMetadata,
)

# Most recent calls kept for inspection; older entries are dropped.
CALL_HISTORY_LIMIT = 256

DEFAULT_TRACKS = (
    TrackMetadata(
        title="Fake Track One",
        artists=("Fake Artist",),
        length_s=180.0,
        url="file:///tmp/fake-track-one.mp3",
    ),
    TrackMetadata(
        title="Fake Track Two",
        artists=("Fake Artist", "Guest"),
        length_s=95.5,
        art_url="file:///tmp/fake-track-two.png",
        url="file:///tmp/fake-track-two.mp3",
    ),
)


@dataclass
class _PlaybackState:
    status: PlaybackStatus = PlaybackStatus.STOPPED
    track_index: int = 0
    position_s: float = 0.0
    started_at: float | None = None
    calls: deque[str] = field(
        default_factory=lambda: deque(maxlen=CALL_HISTORY_LIMIT)
    )


class FakeSession:
    """In-memory session that simulates transport and track progress.

    `rejected` names calls that raise `BackendError`; `vanished` makes every
    call fail as if the player had exited.
    """

    def __init__(
        self,
        name: str = "fake",
        *,
        tracks: tuple[TrackMetadata, ...] = DEFAULT_TRACKS,
        status: PlaybackStatus = PlaybackStatus.STOPPED,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not tracks:
            raise ValueError("tracks must not be empty")
        self.name = name
        self.rejected: set[str] = set()
        self.vanished = False
        self._tracks = tracks
        self._clock = clock
        self._lock = threading.Lock()
        self._state = _PlaybackState(status=status)
        if status is PlaybackStatus.PLAYING:
            self._state.started_at = clock()

    @property
    def calls(self) -> list[str]:
        with self._lock:
            return list(self._state.calls)

    @property
    def status(self) -> PlaybackStatus:
        with self._lock:
            return self._state.status

    def identity(self) -> str:
        return self.name

    def play(self) -> None:
        self._call("play")
        with self._lock:
            if self._state.status is not PlaybackStatus.PLAYING:
                self._state.status = PlaybackStatus.PLAYING
                self._state.started_at = self._clock()

    def pause(self) -> None:
        self._call("pause")
        with self._lock:
            if self._state.status is PlaybackStatus.PLAYING:
                self._state.position_s = self._position_locked()
                self._state.started_at = None
                self._state.status = PlaybackStatus.PAUSED

    def stop(self) -> None:
        self._call("stop")
        with self._lock:
            self._state.status = PlaybackStatus.STOPPED
            self._state.position_s = 0.0
            self._state.started_at = None

    def next(self) -> None:
        self._call("next")
        self._skip(1)

    def previous(self) -> None:
        self._call("previous")
        self._skip(-1)

    def get_playback_status(self) -> PlaybackStatus:
        self._call("get_playback_status")
        with self._lock:
            return self._state.status

    def get_metadata(self) -> TrackMetadata:
        self._call("get_metadata")
        with self._lock:
            return self._tracks[self._state.track_index]

    def get_position(self) -> float | None:
        self._call("get_position")
        with self._lock:
            return self._position_locked()

    def set_status(self, status: PlaybackStatus) -> None:
        """Change transport state from outside, as a user would in the player."""
        with self._lock:
            if status is PlaybackStatus.PLAYING:
                self._state.started_at = self._clock()
            else:
                self._state.position_s = self._position_locked()
                self._state.started_at = None
            self._state.status = status

    def _skip(self, step: int) -> None:
        with self._lock:
            self._state.track_index = (self._state.track_index + step) % len(
                self._tracks
            )
            self._state.position_s = 0.0
            if self._state.started_at is not None:
                self._state.started_at = self._clock()

    def _position_locked(self) -> float:
        position = self._state.position_s
        if self._state.started_at is not None:
            position += self._clock() - self._state.started_at
        length = self._tracks[self._state.track_index].length_s
        if length is not None:
            position = min(position, length)
        return position

    def _call(self, name: str) -> None:
        if self.vanished:
            raise BackendError(f"{self.name}: player has exited")
        if name in self.rejected:
            raise BackendError(f"{self.name}: {name} not supported")
        with self._lock:
            self._state.calls.append(name)


class FakeSessionFinder:
    """Resolves the active session among a mutable list of fake sessions.

    Mirrors MPRIS discovery: a playing session wins, then a paused one, then
    the first registered session.
    """

    def __init__(self, sessions: list[FakeSession] | None = None) -> None:
        self.sessions: list[FakeSession] = list(sessions or [])
        self.lookups = 0

    def find_active_session(self) -> FakeSession:
        self.lookups += 1
        alive = [session for session in self.sessions if not session.vanished]
        if not alive:
            raise SessionNotFound("no fake player registered")
        for wanted in (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED):
            for session in alive:
                if session.status is wanted:
                    return session
        return alive[0]
