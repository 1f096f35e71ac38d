"""Runtime configuration normalization helpers.

These helpers keep CLI flag interpretation deterministic and clamp timing
settings into ranges the controller and idle loop can live with.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

BACKEND_CHOICES = ("mpris", "fake")

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 6602
DEFAULT_POLL_INTERVAL_S = 0.5
DEFAULT_FAILURE_BACKOFF_S = 1.0
DEFAULT_IDLE_WAIT_S = 0.3
DEFAULT_CHANNEL_CAPACITY = 8
DEFAULT_SEND_TIMEOUT_S = 1.0
DEFAULT_VOLUME = 50


@dataclass(frozen=True)
class BridgeConfig:
    """Effective settings for one bridge process."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backend: str = "mpris"
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    failure_backoff_s: float = DEFAULT_FAILURE_BACKOFF_S
    idle_wait_s: float = DEFAULT_IDLE_WAIT_S
    channel_capacity: int = DEFAULT_CHANNEL_CAPACITY
    send_timeout_s: float = DEFAULT_SEND_TIMEOUT_S
    state_file: Path | None = None


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def normalize_backend(value: str | None) -> str:
    """Normalize a CLI/persisted backend name; unknown values map to MPRIS."""
    if value is None:
        return "mpris"
    normalized = value.strip().lower()
    if normalized in BACKEND_CHOICES:
        return normalized
    return "mpris"


def normalize_port(value: int) -> int:
    """Return a TCP port in [0, 65535]; 0 asks the OS for a free port."""
    if value < 0 or value > 65535:
        raise ValueError(f"port out of range: {value}")
    return value


def normalize_poll_interval(value: float) -> float:
    """Clamp the controller poll interval to [0.05, 5.0] seconds."""
    return max(0.05, min(5.0, float(value)))


def build_config(
    *,
    host: str | None = None,
    port: int | None = None,
    backend: str | None = None,
    poll_interval_s: float | None = None,
    state_file: Path | None = None,
) -> BridgeConfig:
    """Build a `BridgeConfig` from optional CLI overrides."""
    return BridgeConfig(
        host=host or DEFAULT_HOST,
        port=normalize_port(DEFAULT_PORT if port is None else port),
        backend=normalize_backend(backend),
        poll_interval_s=normalize_poll_interval(
            DEFAULT_POLL_INTERVAL_S if poll_interval_s is None else poll_interval_s
        ),
        state_file=state_file,
    )
