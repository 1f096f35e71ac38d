"""Process-wide shared state plus JSON persistence of the emulated volume.

`SharedState` is built once at startup and handed to the controller and every
connection handler. The controller is the only writer of the player snapshot;
handlers read it and read/write the volume.

The persisted-state loader falls back to defaults for missing or invalid
values, so a partial or corrupt write never aborts startup.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from contextlib import suppress
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from mpd_mpris_bridge.runtime_config import DEFAULT_VOLUME
from mpd_mpris_bridge.services.playback_backend import PlayerState

logger = logging.getLogger(__name__)

VOLUME_MIN = 0
VOLUME_MAX = 100


def clamp_volume(value: int) -> int:
    return max(VOLUME_MIN, min(VOLUME_MAX, value))


class AtomicVolume:
    """Emulated 0-100 mixer volume; every update is one locked operation."""

    def __init__(self, initial: int = DEFAULT_VOLUME) -> None:
        self._lock = threading.Lock()
        self._value = clamp_volume(initial)

    def get(self) -> int:
        with self._lock:
            return self._value

    def set(self, value: int) -> int:
        with self._lock:
            self._value = clamp_volume(value)
            return self._value

    def add(self, delta: int) -> int:
        with self._lock:
            self._value = clamp_volume(self._value + delta)
            return self._value


class SharedState:
    """Last published player snapshot and emulated volume."""

    def __init__(self, *, volume: int = DEFAULT_VOLUME) -> None:
        self.volume = AtomicVolume(volume)
        self._player_lock = threading.Lock()
        self._player: PlayerState | None = None

    @property
    def player(self) -> PlayerState | None:
        with self._player_lock:
            return self._player

    def publish_player(self, state: PlayerState | None) -> None:
        """Replace the whole snapshot; readers see either old or new."""
        with self._player_lock:
            self._player = state


@dataclass(frozen=True)
class PersistedState:
    """State restored at startup and saved at shutdown."""

    volume: int = DEFAULT_VOLUME


def _coerce_state(data: dict[str, Any]) -> PersistedState:
    volume = data.get("volume")
    if isinstance(volume, bool) or not isinstance(volume, int):
        return PersistedState()
    return PersistedState(volume=clamp_volume(volume))


def load_state(path: Path) -> PersistedState:
    """Load persisted state from disk, falling back to defaults."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info("State file missing at %s; using defaults.", path)
        return PersistedState()
    except OSError as exc:
        logger.warning("Failed to read state file %s: %s; using defaults.", path, exc)
        return PersistedState()

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("State file at %s is invalid JSON; using defaults.", path)
        return PersistedState()

    if not isinstance(data, dict):
        logger.warning("State file at %s is not a JSON object; using defaults.", path)
        return PersistedState()

    return _coerce_state(data)


def save_state(path: Path, state: PersistedState) -> None:
    """Persist state atomically to disk via write-then-replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    payload = json.dumps(asdict(state), indent=2, sort_keys=True)
    delay_s = 0.02
    try:
        for attempt in range(4):
            tmp_path.write_text(payload, encoding="utf-8")
            try:
                tmp_path.replace(path)
                return
            except OSError as exc:
                if not _is_retryable_windows_replace_error(exc) or attempt >= 3:
                    raise
                time.sleep(delay_s)
                delay_s = min(0.25, delay_s * 2.0)
    finally:
        with suppress(OSError):
            tmp_path.unlink()


def _is_retryable_windows_replace_error(exc: OSError) -> bool:
    """Return whether an atomic replace failure is likely transient on Windows."""
    winerror = getattr(exc, "winerror", None)
    if winerror in {32, 5, 2}:
        return True
    errno = getattr(exc, "errno", None)
    if errno in {13, 16}:
        return True
    text = str(exc).lower()
    return "used by another process" in text or "permission denied" in text
