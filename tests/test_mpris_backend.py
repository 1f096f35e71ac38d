"""Unit tests for the MPRIS backend using a stand-in dbus module."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

import mpd_mpris_bridge.services.mpris_backend as mpris_module
from mpd_mpris_bridge.services.playback_backend import (
    BackendError,
    PlaybackStatus,
    SessionNotFound,
)

PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"


class FakeDBusException(Exception):
    def get_dbus_message(self) -> str:
        return str(self)


class FakePlayer:
    """Bus object for one player; stands in for both dbus interfaces."""

    def __init__(self, status: str, metadata: dict | None = None) -> None:
        self.properties = {
            (PLAYER_IFACE, "PlaybackStatus"): status,
            (PLAYER_IFACE, "Metadata"): metadata or {},
            (PLAYER_IFACE, "Position"): 2_500_000,
            ("org.mpris.MediaPlayer2", "Identity"): "Fake Player",
        }
        self.calls: list[str] = []
        self.failing: set[str] = set()

    def Get(self, interface: str, prop: str):
        try:
            return self.properties[(interface, prop)]
        except KeyError as exc:
            raise FakeDBusException(f"no property {prop}") from exc

    def __getattr__(self, method: str):
        def call() -> None:
            if method in self.failing:
                raise FakeDBusException("NotSupported")
            self.calls.append(method)

        return call


class FakeBus:
    def __init__(self, players: dict[str, FakePlayer]) -> None:
        self.players = players

    def list_names(self) -> list[str]:
        return ["org.freedesktop.DBus", *self.players]

    def get_name_owner(self, name: str) -> str:
        if name not in self.players:
            raise FakeDBusException("name has no owner")
        return f":1.{sorted(self.players).index(name)}"

    def get_object(self, name: str, path: str) -> FakePlayer:
        assert path == "/org/mpris/MediaPlayer2"
        return self.players[name]


def _install_fake_dbus(monkeypatch, bus: FakeBus) -> None:
    fake_dbus = SimpleNamespace(
        exceptions=SimpleNamespace(DBusException=FakeDBusException),
        Interface=lambda proxy, _iface: proxy,
        SessionBus=lambda: bus,
    )
    monkeypatch.setattr(mpris_module, "_import_dbus", lambda: fake_dbus)


def test_parse_metadata_converts_units_and_lists() -> None:
    metadata = mpris_module.parse_metadata(
        {
            "xesam:title": "Song",
            "xesam:artist": ["A", "", "B"],
            "mpris:length": 183_500_000,
            "mpris:artUrl": "https://example.invalid/cover.jpg",
            "xesam:url": "file:///music/song.ogg",
        }
    )
    assert metadata.title == "Song"
    assert metadata.artists == ("A", "B")
    assert metadata.length_s == pytest.approx(183.5)
    assert metadata.art_url == "https://example.invalid/cover.jpg"
    assert metadata.url == "file:///music/song.ogg"


def test_parse_metadata_tolerates_missing_fields() -> None:
    metadata = mpris_module.parse_metadata({})
    assert metadata.title is None
    assert metadata.artists == ()
    assert metadata.length_s is None
    single = mpris_module.parse_metadata({"xesam:artist": "Solo"})
    assert single.artists == ("Solo",)


def test_session_reads_and_transport(monkeypatch) -> None:
    player = FakePlayer("Paused", {"xesam:title": "Song"})
    bus = FakeBus({"org.mpris.MediaPlayer2.fake": player})
    _install_fake_dbus(monkeypatch, bus)

    session = mpris_module.MprisSession(bus, "org.mpris.MediaPlayer2.fake")
    assert session.identity() == ("org.mpris.MediaPlayer2.fake", ":1.0")
    assert session.display_name() == "Fake Player"
    assert session.get_playback_status() is PlaybackStatus.PAUSED
    assert session.get_metadata().title == "Song"
    assert session.get_position() == pytest.approx(2.5)
    session.play()
    session.next()
    assert player.calls == ["Play", "Next"]


def test_session_translates_dbus_errors(monkeypatch) -> None:
    player = FakePlayer("Bogus")
    player.failing.add("Stop")
    del player.properties[(PLAYER_IFACE, "Position")]
    bus = FakeBus({"org.mpris.MediaPlayer2.fake": player})
    _install_fake_dbus(monkeypatch, bus)

    session = mpris_module.MprisSession(bus, "org.mpris.MediaPlayer2.fake")
    with pytest.raises(BackendError):
        session.stop()
    with pytest.raises(BackendError):
        session.get_playback_status()
    assert session.get_position() is None


def test_finder_prefers_playing_player(monkeypatch) -> None:
    bus = FakeBus(
        {
            "org.mpris.MediaPlayer2.alpha": FakePlayer("Stopped"),
            "org.mpris.MediaPlayer2.beta": FakePlayer("Paused"),
            "org.mpris.MediaPlayer2.gamma": FakePlayer("Playing"),
        }
    )
    _install_fake_dbus(monkeypatch, bus)

    finder = mpris_module.MprisSessionFinder()
    assert finder.list_player_names() == [
        "org.mpris.MediaPlayer2.alpha",
        "org.mpris.MediaPlayer2.beta",
        "org.mpris.MediaPlayer2.gamma",
    ]
    assert finder.find_active_session().bus_name == "org.mpris.MediaPlayer2.gamma"
    bus.players["org.mpris.MediaPlayer2.gamma"].properties[
        (PLAYER_IFACE, "PlaybackStatus")
    ] = "Stopped"
    assert finder.find_active_session().bus_name == "org.mpris.MediaPlayer2.beta"


def test_finder_without_players_raises_not_found(monkeypatch) -> None:
    _install_fake_dbus(monkeypatch, FakeBus({}))
    with pytest.raises(SessionNotFound):
        mpris_module.MprisSessionFinder().find_active_session()


def test_malformed_time_values_read_as_unknown(monkeypatch) -> None:
    metadata = mpris_module.parse_metadata(
        {"xesam:title": "Song", "mpris:length": "unknown"}
    )
    assert metadata.title == "Song"
    assert metadata.length_s is None

    player = FakePlayer("Playing")
    player.properties[(PLAYER_IFACE, "Position")] = "soon"
    bus = FakeBus({"org.mpris.MediaPlayer2.fake": player})
    _install_fake_dbus(monkeypatch, bus)
    session = mpris_module.MprisSession(bus, "org.mpris.MediaPlayer2.fake")
    assert session.get_position() is None


def test_unparseable_metadata_is_backend_error(monkeypatch) -> None:
    player = FakePlayer("Playing", {"xesam:artist": 5})
    bus = FakeBus({"org.mpris.MediaPlayer2.fake": player})
    _install_fake_dbus(monkeypatch, bus)
    session = mpris_module.MprisSession(bus, "org.mpris.MediaPlayer2.fake")
    with pytest.raises(BackendError):
        session.get_metadata()
