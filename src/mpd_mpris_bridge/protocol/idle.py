"""Idle long-poll: subsystem projections and the bounded wait loop.

There is no push channel from the controller to idling connections. Instead
each idle call compares small projections of the shared state with what this
connection saw last time, and otherwise waits a short interval while watching
its own socket for `noidle`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from mpd_mpris_bridge.state_store import SharedState

from .errors import AckCode, MPDError

# Checked in this order; the first changed subsystem wins.
SUBSYSTEMS = ("player", "playlist", "mixer")


def project(subsystem: str, shared: SharedState) -> object:
    """Reduced view of the shared state that defines "changed" per subsystem.

    Player omits duration/elapsed since they move continuously; playlist only
    tracks track identity so transport changes do not count.
    """
    if subsystem == "mixer":
        return shared.volume.get()
    state = shared.player
    if state is None:
        return None
    if subsystem == "player":
        return (state.status, state.title, state.artist, state.art_url)
    if subsystem == "playlist":
        return (state.title, state.artist)
    raise ValueError(f"unknown subsystem {subsystem!r}")


def parse_subsystems(arguments: Iterable[str]) -> tuple[str, ...]:
    """Return watched subsystems in check order; no arguments means all."""
    requested = {arg.lower() for arg in arguments}
    if not requested:
        return SUBSYSTEMS
    watched = tuple(name for name in SUBSYSTEMS if name in requested)
    if not watched:
        raise MPDError(
            AckCode.ARG, f"Unrecognised idle event: {' '.join(sorted(requested))}"
        )
    return watched


def detect_change(
    watched: Iterable[str], shared: SharedState, snapshots: dict[str, object]
) -> str | None:
    """Return the first watched subsystem whose projection moved, recording it."""
    watched_set = set(watched)
    for subsystem in SUBSYSTEMS:
        if subsystem not in watched_set:
            continue
        current = project(subsystem, shared)
        if current != snapshots.get(subsystem):
            snapshots[subsystem] = current
            return subsystem
    return None


async def wait_for_change(
    watched: tuple[str, ...],
    shared: SharedState,
    snapshots: dict[str, object],
    wait_for_cancel: Callable[[float], Awaitable[bool]],
    *,
    wait_s: float = 0.3,
) -> bytes:
    """Block until a watched subsystem changes or the client cancels.

    `wait_for_cancel` waits up to the given seconds and returns True once the
    client asked to leave idle; connection errors propagate from it.
    """
    while True:
        changed = detect_change(watched, shared, snapshots)
        if changed is not None:
            return f"changed: {changed}\n".encode("utf-8")
        if await wait_for_cancel(wait_s):
            return b""
