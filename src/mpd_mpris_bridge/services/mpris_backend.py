"""MPRIS session backend using dbus-python on the D-Bus session bus.

Every call here is a blocking D-Bus round trip; `BackendController` runs them
through `run_blocking`. D-Bus failures are translated into `BackendError` so
the controller never has to know about `dbus.exceptions`.
"""

from __future__ import annotations

import logging
from typing import Any

from .playback_backend import (
    BackendError,
    PlaybackStatus,
    SessionNotFound,
    TrackMetadata,
)

logger = logging.getLogger(__name__)

MPRIS_PREFIX = "org.mpris.MediaPlayer2."
MPRIS_PATH = "/org/mpris/MediaPlayer2"
ROOT_IFACE = "org.mpris.MediaPlayer2"
PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"
PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"

_STATUS_MAP = {
    "Playing": PlaybackStatus.PLAYING,
    "Paused": PlaybackStatus.PAUSED,
    "Stopped": PlaybackStatus.STOPPED,
}


def _import_dbus() -> Any:
    try:
        import dbus
    except ImportError as exc:  # pragma: no cover - depends on system packages
        raise BackendError(
            "dbus-python unavailable. Install dbus-python and libdbus."
        ) from exc
    return dbus


class MprisSession:
    """One MPRIS player, addressed by its well-known bus name."""

    def __init__(self, bus: Any, bus_name: str) -> None:
        dbus = _import_dbus()
        self.bus_name = bus_name
        try:
            self._owner = str(bus.get_name_owner(bus_name))
            proxy = bus.get_object(bus_name, MPRIS_PATH)
        except dbus.exceptions.DBusException as exc:
            raise BackendError(f"{bus_name}: {exc.get_dbus_message()}") from exc
        self._player = dbus.Interface(proxy, PLAYER_IFACE)
        self._properties = dbus.Interface(proxy, PROPERTIES_IFACE)
        self._display_name: str | None = None

    def identity(self) -> tuple[str, str]:
        return (self.bus_name, self._owner)

    def display_name(self) -> str:
        """Human-readable player name, falling back to the bus name."""
        if self._display_name is None:
            try:
                self._display_name = str(self._get(ROOT_IFACE, "Identity"))
            except BackendError:
                self._display_name = self.bus_name[len(MPRIS_PREFIX) :]
        return self._display_name

    def play(self) -> None:
        self._invoke("Play")

    def pause(self) -> None:
        self._invoke("Pause")

    def stop(self) -> None:
        self._invoke("Stop")

    def next(self) -> None:
        self._invoke("Next")

    def previous(self) -> None:
        self._invoke("Previous")

    def get_playback_status(self) -> PlaybackStatus:
        raw = str(self._get(PLAYER_IFACE, "PlaybackStatus"))
        try:
            return _STATUS_MAP[raw]
        except KeyError as exc:
            raise BackendError(f"{self.bus_name}: unknown status {raw!r}") from exc

    def get_metadata(self) -> TrackMetadata:
        raw = self._get(PLAYER_IFACE, "Metadata")
        try:
            return parse_metadata(raw)
        except (AttributeError, TypeError, ValueError) as exc:
            raise BackendError(f"{self.bus_name}: malformed metadata: {exc}") from exc

    def get_position(self) -> float | None:
        try:
            position_us = self._get(PLAYER_IFACE, "Position")
        except BackendError:
            return None
        return _microseconds_to_seconds(position_us)

    def _invoke(self, method: str) -> None:
        dbus = _import_dbus()
        try:
            getattr(self._player, method)()
        except dbus.exceptions.DBusException as exc:
            raise BackendError(
                f"{self.bus_name}: {method} failed: {exc.get_dbus_message()}"
            ) from exc

    def _get(self, interface: str, prop: str) -> Any:
        dbus = _import_dbus()
        try:
            return self._properties.Get(interface, prop)
        except dbus.exceptions.DBusException as exc:
            raise BackendError(
                f"{self.bus_name}: reading {prop} failed: {exc.get_dbus_message()}"
            ) from exc


def _microseconds_to_seconds(value: Any) -> float | None:
    """Convert an MPRIS microsecond value; malformed values read as unknown."""
    if value is None:
        return None
    try:
        return int(value) / 1_000_000
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed MPRIS time value %r", value)
        return None


def parse_metadata(raw: Any) -> TrackMetadata:
    """Convert an MPRIS metadata dict (D-Bus types) into `TrackMetadata`."""
    if not raw:
        return TrackMetadata()
    title = raw.get("xesam:title")
    artists = raw.get("xesam:artist") or ()
    if isinstance(artists, str):
        artists = (artists,)
    length_us = raw.get("mpris:length")
    art_url = raw.get("mpris:artUrl")
    url = raw.get("xesam:url")
    return TrackMetadata(
        title=str(title) if title else None,
        artists=tuple(str(artist) for artist in artists if artist),
        length_s=_microseconds_to_seconds(length_us),
        art_url=str(art_url) if art_url else None,
        url=str(url) if url else None,
    )


class MprisSessionFinder:
    """Picks the active MPRIS player: playing first, then paused, then any."""

    def __init__(self) -> None:
        self._bus: Any = None

    def list_player_names(self) -> list[str]:
        dbus = _import_dbus()
        try:
            bus = self._session_bus()
            names = [str(name) for name in bus.list_names()]
        except dbus.exceptions.DBusException as exc:
            self._bus = None
            raise BackendError(
                f"session bus unavailable: {exc.get_dbus_message()}"
            ) from exc
        return sorted(name for name in names if name.startswith(MPRIS_PREFIX))

    def find_active_session(self) -> MprisSession:
        names = self.list_player_names()
        if not names:
            raise SessionNotFound("no MPRIS player found on the session bus")
        sessions: list[tuple[MprisSession, PlaybackStatus | None]] = []
        for name in names:
            try:
                session = MprisSession(self._session_bus(), name)
            except BackendError as exc:
                logger.debug("Skipping player %s: %s", name, exc)
                continue
            try:
                status: PlaybackStatus | None = session.get_playback_status()
            except BackendError:
                status = None
            if status is PlaybackStatus.PLAYING:
                return session
            sessions.append((session, status))
        for session, status in sessions:
            if status is PlaybackStatus.PAUSED:
                return session
        if sessions:
            return sessions[0][0]
        raise SessionNotFound("no reachable MPRIS player found")

    def _session_bus(self) -> Any:
        if self._bus is None:
            dbus = _import_dbus()
            self._bus = dbus.SessionBus()
        return self._bus
