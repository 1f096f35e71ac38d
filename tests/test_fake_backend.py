"""Tests for the fake session backend."""

from __future__ import annotations

import pytest

from mpd_mpris_bridge.services.fake_backend import (
    CALL_HISTORY_LIMIT,
    FakeSession,
    FakeSessionFinder,
)
from mpd_mpris_bridge.services.playback_backend import (
    BackendError,
    PlaybackStatus,
    SessionNotFound,
    TrackMetadata,
    build_player_state,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_position_advances_only_while_playing() -> None:
    clock = _Clock()
    session = FakeSession(clock=clock)
    session.play()
    clock.now = 10.0
    assert session.get_position() == pytest.approx(10.0)
    session.pause()
    clock.now = 50.0
    assert session.get_position() == pytest.approx(10.0)
    assert session.get_playback_status() is PlaybackStatus.PAUSED
    session.stop()
    assert session.get_position() == 0.0


def test_position_is_capped_at_track_length() -> None:
    clock = _Clock()
    session = FakeSession(clock=clock, status=PlaybackStatus.PLAYING)
    clock.now = 10_000.0
    assert session.get_position() == 180.0


def test_next_and_previous_wrap_tracks() -> None:
    session = FakeSession(clock=_Clock())
    session.next()
    assert session.get_metadata().title == "Fake Track Two"
    session.next()
    assert session.get_metadata().title == "Fake Track One"
    session.previous()
    assert session.get_metadata().title == "Fake Track Two"


def test_rejected_and_vanished_calls_raise_backend_error() -> None:
    session = FakeSession()
    session.rejected.add("stop")
    with pytest.raises(BackendError):
        session.stop()
    session.play()
    session.vanished = True
    with pytest.raises(BackendError):
        session.get_playback_status()


def test_finder_prefers_playing_then_paused_then_first() -> None:
    first = FakeSession("first")
    paused = FakeSession("paused", status=PlaybackStatus.PAUSED)
    playing = FakeSession("playing", status=PlaybackStatus.PLAYING)
    finder = FakeSessionFinder([first, paused, playing])
    assert finder.find_active_session() is playing
    playing.vanished = True
    assert finder.find_active_session() is paused
    paused.set_status(PlaybackStatus.STOPPED)
    assert finder.find_active_session() is first


def test_finder_without_sessions_raises_not_found() -> None:
    with pytest.raises(SessionNotFound):
        FakeSessionFinder().find_active_session()


def test_build_player_state_joins_artists_and_drops_empty_strings() -> None:
    state = build_player_state(
        PlaybackStatus.PLAYING,
        TrackMetadata(title="", artists=("A", "B"), length_s=3.5, art_url=""),
        1.25,
    )
    assert state.title is None
    assert state.artist == "A, B"
    assert state.duration_s == 3.5
    assert state.elapsed_s == 1.25
    assert state.art_url is None


def test_call_history_is_bounded_for_long_running_servers() -> None:
    session = FakeSession(clock=_Clock())
    for _ in range(CALL_HISTORY_LIMIT):
        session.get_playback_status()
        session.get_metadata()
    session.next()
    calls = session.calls
    assert len(calls) == CALL_HISTORY_LIMIT
    assert calls[-1] == "next"
