"""Backend session contracts and player snapshot models.

`BackendController` depends on these protocols to stay backend-agnostic.
Concrete implementations (MPRIS/fake) translate player-specific behavior into
the shared calls below and raise `BackendError` subclasses on any failure.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class PlaybackStatus(Enum):
    """Transport state reported by a backend session."""

    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"


class BackendError(Exception):
    """A backend call failed or was rejected by the player."""


class SessionNotFound(BackendError):
    """No active media player session could be resolved."""


@dataclass(frozen=True)
class TrackMetadata:
    """Track metadata as reported by a session; every field is optional."""

    title: str | None = None
    artists: tuple[str, ...] = ()
    length_s: float | None = None
    art_url: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class PlayerState:
    """Backend-observable facts published by the controller.

    `elapsed_s` is only valid at the time the controller sampled it.
    """

    status: PlaybackStatus = PlaybackStatus.STOPPED
    title: str | None = None
    artist: str | None = None
    duration_s: float | None = None
    elapsed_s: float | None = None
    art_url: str | None = None
    url: str | None = None


class Session(Protocol):
    """One live media player session. Any call may raise `BackendError`."""

    def identity(self) -> Hashable: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...

    def next(self) -> None: ...

    def previous(self) -> None: ...

    def get_playback_status(self) -> PlaybackStatus: ...

    def get_metadata(self) -> TrackMetadata: ...

    def get_position(self) -> float | None: ...


class SessionFinder(Protocol):
    """Resolves whichever session is currently active on the host."""

    def find_active_session(self) -> Session: ...


def build_player_state(
    status: PlaybackStatus,
    metadata: TrackMetadata,
    position_s: float | None,
) -> PlayerState:
    """Assemble a `PlayerState` from one round of session reads."""
    artist = ", ".join(metadata.artists) if metadata.artists else None
    return PlayerState(
        status=status,
        title=metadata.title or None,
        artist=artist,
        duration_s=metadata.length_s,
        elapsed_s=position_s,
        art_url=metadata.art_url or None,
        url=metadata.url or None,
    )
