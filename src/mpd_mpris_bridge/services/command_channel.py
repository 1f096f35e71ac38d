"""Bounded, closable queue carrying playback commands to the controller."""

from __future__ import annotations

import asyncio

from mpd_mpris_bridge.events import PlaybackCommand


class ChannelClosed(Exception):
    """The receiving side is gone; no command can be delivered any more."""


class ChannelFull(Exception):
    """The channel stayed full for longer than the send timeout."""


class CommandChannel:
    """Many-sender, single-receiver command queue with back-pressure.

    Senders block while the queue is full, up to `send_timeout_s`.
    """

    def __init__(self, *, capacity: int = 8, send_timeout_s: float = 1.0) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._queue: asyncio.Queue[PlaybackCommand] = asyncio.Queue(maxsize=capacity)
        self._send_timeout_s = send_timeout_s
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def qsize(self) -> int:
        return self._queue.qsize()

    async def send(self, command: PlaybackCommand) -> None:
        if self._closed:
            raise ChannelClosed("command channel is closed")
        try:
            await asyncio.wait_for(
                self._queue.put(command), timeout=self._send_timeout_s
            )
        except asyncio.TimeoutError as exc:
            raise ChannelFull("command channel is full") from exc

    async def receive(self, timeout_s: float) -> PlaybackCommand | None:
        """Return the next command, or None when `timeout_s` elapses first."""
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout_s)
        except asyncio.TimeoutError:
            return None

    def drain(self) -> list[PlaybackCommand]:
        """Remove and return every queued command without waiting."""
        drained: list[PlaybackCommand] = []
        while True:
            try:
                drained.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return drained
