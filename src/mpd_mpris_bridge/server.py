"""TCP listener and per-connection MPD protocol handler.

`BridgeServer` accepts clients and runs one `ClientConnection` task per
socket. A connection frames incoming bytes into command lines, feeds them
through the command-list state machine and the dispatch table, and writes
framed responses. The backend controller is started once per server.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from contextlib import suppress

from mpd_mpris_bridge.logging_utils import bridge_extra
from mpd_mpris_bridge.protocol.command_list import (
    CLIST_BEGIN,
    CLIST_END,
    CLIST_VERBOSE_BEGIN,
)
from mpd_mpris_bridge.protocol.commands import (
    CommandContext,
    ConnectionState,
    decode_name,
    dispatch,
)
from mpd_mpris_bridge.protocol.errors import MPDError
from mpd_mpris_bridge.runtime_config import BridgeConfig
from mpd_mpris_bridge.services.command_channel import CommandChannel
from mpd_mpris_bridge.services.controller import BackendController
from mpd_mpris_bridge.services.fake_backend import FakeSession, FakeSessionFinder
from mpd_mpris_bridge.services.mpris_backend import MprisSessionFinder
from mpd_mpris_bridge.services.playback_backend import PlaybackStatus, SessionFinder
from mpd_mpris_bridge.state_store import (
    PersistedState,
    SharedState,
    load_state,
    save_state,
)
from mpd_mpris_bridge.version import MPD_PROTOCOL_VERSION

logger = logging.getLogger(__name__)

BUFSIZE = 1024
GREETING = f"OK MPD {MPD_PROTOCOL_VERSION}\n".encode("ascii")
NOIDLE = b"noidle"


class ConnectionClosed(Exception):
    """The peer went away while a command was still running."""


def _line_end(buffer: bytearray) -> int | None:
    """Index of the first line terminator (`\\n` or `\\r`), if any."""
    ends = [index for index in (buffer.find(b"\n"), buffer.find(b"\r")) if index >= 0]
    return min(ends) if ends else None


class ClientConnection:
    """Owns one client socket for its whole lifetime."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        shared: SharedState,
        channel: CommandChannel,
        idle_wait_s: float = 0.3,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._buffer = bytearray()
        self.peer = writer.get_extra_info("peername")
        self.log_extra = bridge_extra(peer=self.peer)
        self.state = ConnectionState()
        self._ctx = CommandContext(
            shared=shared,
            channel=channel,
            state=self.state,
            wait_for_cancel=self.wait_for_noidle,
            idle_wait_s=idle_wait_s,
        )

    async def run(self) -> None:
        self._set_nodelay()
        try:
            await self._write(GREETING)
            while not self.state.should_close:
                logger.debug("Reading from %s...", self.peer)
                data = await self._reader.read(BUFSIZE)
                if not data:
                    logger.debug("Socket closed: %s", self.peer, extra=self.log_extra)
                    return
                self._buffer += data
                await self._process_buffer()
        except (OSError, ConnectionClosed) as exc:
            logger.warning(
                "Connection %s failed: %s", self.peer, exc, extra=self.log_extra
            )
        finally:
            await self.close()

    async def close(self) -> None:
        if self._writer.is_closing():
            return
        self._writer.close()
        with suppress(OSError):
            await self._writer.wait_closed()
        logger.info("Disconnected client %s", self.peer, extra=self.log_extra)

    async def wait_for_noidle(self, timeout_s: float) -> bool:
        """Wait up to `timeout_s` for a line that ends the current idle.

        `noidle` is consumed. Any other command also ends idle but stays
        buffered so it runs right after the idle response.
        """
        if self._pending_idle_exit():
            return True
        try:
            data = await asyncio.wait_for(self._reader.read(BUFSIZE), timeout_s)
        except asyncio.TimeoutError:
            return False
        if not data:
            raise ConnectionClosed("peer closed the connection while idle")
        self._buffer += data
        return self._pending_idle_exit()

    def _pending_idle_exit(self) -> bool:
        while True:
            end = _line_end(self._buffer)
            if end is None:
                return False
            line = bytes(self._buffer[:end]).strip()
            if not line:
                del self._buffer[: end + 1]
                continue
            if line == NOIDLE:
                del self._buffer[: end + 1]
            return True

    def _take_line(self) -> bytes | None:
        end = _line_end(self._buffer)
        if end is None:
            return None
        line = bytes(self._buffer[:end])
        del self._buffer[: end + 1]
        return line

    async def _process_buffer(self) -> None:
        """Run every complete buffered line; stop early after an error."""
        while not self.state.should_close:
            line = self._take_line()
            if line is None:
                return
            if not line.strip():
                continue
            if not await self._handle_line(line):
                return

    async def _handle_line(self, line: bytes) -> bool:
        raw_name, _, raw_args = line.partition(b" ")
        name = decode_name(raw_name.strip())
        machine = self.state.command_list
        try:
            if name == CLIST_END:
                trailer = machine.end()
                machine.finish_cycle()
                await self._write(trailer)
                return True
            if machine.swallowing:
                logger.debug("Skipping %s in failed command list", name)
                machine.item_succeeded()
                return True
            if name in {CLIST_BEGIN, CLIST_VERBOSE_BEGIN}:
                machine.begin(verbose=name == CLIST_VERBOSE_BEGIN)
                return True
            payload = await dispatch(self._ctx, name, raw_args.strip())
        except MPDError as exc:
            exc.command = name
            exc.index = machine.index
            machine.item_failed()
            logger.debug(
                "Command %s from %s failed: %s",
                name,
                self.peer,
                exc,
                extra={**self.log_extra, "command": name},
            )
            await self._write(exc.response())
            return False
        if self.state.should_close:
            return False
        await self._write(payload + machine.item_succeeded())
        return True

    async def _write(self, data: bytes) -> None:
        if not data:
            return
        self._writer.write(data)
        await self._writer.drain()

    def _set_nodelay(self) -> None:
        sock = self._writer.get_extra_info("socket")
        if sock is None:
            return
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as exc:
            logger.warning("Failed to set nodelay: %s", exc)


def build_session_finder(backend: str) -> SessionFinder:
    """Return the session finder for a normalized backend name."""
    if backend == "fake":
        return FakeSessionFinder([FakeSession("fake", status=PlaybackStatus.PLAYING)])
    return MprisSessionFinder()


class BridgeServer:
    """Listener plus the single backend controller it feeds."""

    def __init__(
        self,
        config: BridgeConfig,
        *,
        finder: SessionFinder,
        shared: SharedState | None = None,
    ) -> None:
        self._config = config
        self.shared = shared or SharedState()
        self.channel = CommandChannel(
            capacity=config.channel_capacity, send_timeout_s=config.send_timeout_s
        )
        self.controller = BackendController(
            finder=finder,
            shared=self.shared,
            channel=self.channel,
            poll_interval_s=config.poll_interval_s,
            failure_backoff_s=config.failure_backoff_s,
        )
        self._server: asyncio.Server | None = None
        self._connections: set[ClientConnection] = set()

    @property
    def port(self) -> int:
        if self._server is None or not self._server.sockets:
            raise RuntimeError("server is not listening")
        return int(self._server.sockets[0].getsockname()[1])

    async def start(self) -> None:
        if self._server is not None:
            return
        self.controller.start()
        logger.info("Binding to %s:%d...", self._config.host, self._config.port)
        self._server = await asyncio.start_server(
            self._handle_client, self._config.host, self._config.port
        )
        logger.info("Bound to port %d, listening...", self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        assert self._server is not None
        await self._server.serve_forever()

    async def shutdown(self) -> None:
        if self._server is not None:
            self._server.close()
            for connection in list(self._connections):
                await connection.close()
            await self._server.wait_closed()
            self._server = None
        await self.controller.shutdown()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        connection = ClientConnection(
            reader,
            writer,
            shared=self.shared,
            channel=self.channel,
            idle_wait_s=self._config.idle_wait_s,
        )
        logger.info(
            "Connected client %s", connection.peer, extra=connection.log_extra
        )
        self._connections.add(connection)
        try:
            await connection.run()
        finally:
            self._connections.discard(connection)


async def serve(config: BridgeConfig, *, finder: SessionFinder | None = None) -> None:
    """Run the bridge until cancelled, restoring and saving the volume."""
    persisted = (
        load_state(config.state_file) if config.state_file else PersistedState()
    )
    shared = SharedState(volume=persisted.volume)
    server = BridgeServer(
        config,
        finder=finder or build_session_finder(config.backend),
        shared=shared,
    )
    await server.start()
    try:
        await server.serve_forever()
    finally:
        await server.shutdown()
        if config.state_file:
            save_state(config.state_file, PersistedState(volume=shared.volume.get()))
