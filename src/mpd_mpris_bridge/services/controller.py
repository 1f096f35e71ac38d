"""Backend controller: the single owner of the live player session.

`BackendController` discovers the active session, executes queued playback
commands against it, polls transport/metadata on a fixed interval and
publishes changed snapshots to `SharedState`. Connection handlers never call a
session directly; they only enqueue commands on the `CommandChannel`.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from mpd_mpris_bridge.events import PlaybackCommand
from mpd_mpris_bridge.logging_utils import bridge_extra
from mpd_mpris_bridge.services.command_channel import CommandChannel
from mpd_mpris_bridge.services.playback_backend import (
    BackendError,
    PlaybackStatus,
    PlayerState,
    Session,
    SessionFinder,
    build_player_state,
)
from mpd_mpris_bridge.state_store import SharedState
from mpd_mpris_bridge.utils.async_utils import run_blocking

logger = logging.getLogger(__name__)


def describe_session(session: Session) -> str:
    display_name = getattr(session, "display_name", None)
    if callable(display_name):
        return f"{display_name()} ({session.identity()})"
    return str(session.identity())


class BackendController:
    """Reconnecting poll loop around one backend session at a time."""

    def __init__(
        self,
        *,
        finder: SessionFinder,
        shared: SharedState,
        channel: CommandChannel,
        poll_interval_s: float = 0.5,
        failure_backoff_s: float = 1.0,
    ) -> None:
        self._finder = finder
        self._shared = shared
        self._channel = channel
        self._poll_interval_s = poll_interval_s
        self._failure_backoff_s = failure_backoff_s
        self._session: Session | None = None
        self._last_published: PlayerState | None = None
        self._last_failure: str | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def session(self) -> Session | None:
        return self._session

    def start(self) -> None:
        """Start the controller task; calling it twice is a no-op."""
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="backend-controller")

    async def shutdown(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    async def run(self) -> None:
        try:
            while True:
                session = await self._connect()
                await self._drive(session)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.critical("Backend controller crashed", exc_info=True)
            raise
        finally:
            self._session = None
            self._channel.close()

    async def _connect(self) -> Session:
        """Stay disconnected until a session can be resolved."""
        while True:
            self._publish(None)
            try:
                session = await run_blocking(self._finder.find_active_session)
            except Exception as exc:
                message = str(exc)
                if message != self._last_failure:
                    if isinstance(exc, BackendError):
                        logger.warning("No active player: %s", message)
                    else:
                        logger.exception("Player discovery failed unexpectedly")
                    self._last_failure = message
                dropped = self._channel.drain()
                if dropped:
                    logger.warning(
                        "Dropped %d playback command(s) with no active player",
                        len(dropped),
                    )
                await asyncio.sleep(self._failure_backoff_s)
                continue
            self._last_failure = None
            name = describe_session(session)
            logger.info(
                "Connected to player %s", name, extra=bridge_extra(session=name)
            )
            return session

    async def _drive(self, session: Session) -> None:
        """Execute commands and poll `session` until it stops answering."""
        self._session = session
        while True:
            command = await self._channel.receive(self._poll_interval_s)
            if command is not None:
                await self._execute(session, command)
            try:
                status = await run_blocking(session.get_playback_status)
                metadata = await run_blocking(session.get_metadata)
            except BackendError as exc:
                name = describe_session(session)
                logger.info(
                    "Lost player %s: %s", name, exc, extra=bridge_extra(session=name)
                )
                self._session = None
                return
            except Exception:
                name = describe_session(session)
                logger.exception(
                    "Unexpected error polling %s; reconnecting",
                    name,
                    extra=bridge_extra(session=name),
                )
                self._session = None
                return
            try:
                position = await run_blocking(session.get_position)
            except Exception as exc:
                logger.debug("Position unavailable: %s", exc)
                position = None
            self._publish(build_player_state(status, metadata, position))
            if status is not PlaybackStatus.PLAYING:
                session = await self._follow_active(session)
                self._session = session

    async def _execute(self, session: Session, command: PlaybackCommand) -> None:
        try:
            await run_blocking(getattr(session, command.value))
        except Exception as exc:
            if not isinstance(exc, BackendError):
                logger.exception("Playback command %s crashed", command.value)
                return
            if command is not PlaybackCommand.STOP:
                logger.warning("Playback command %s failed: %s", command.value, exc)
                return
            logger.info("Stop rejected (%s); falling back to pause", exc)
            try:
                await run_blocking(session.pause)
            except Exception as pause_exc:
                logger.warning("Pause fallback for stop failed: %s", pause_exc)
                return
        logger.debug("Handled %s action", command.value)

    async def _follow_active(self, session: Session) -> Session:
        """Switch to another session if one became active meanwhile."""
        try:
            candidate = await run_blocking(self._finder.find_active_session)
        except BackendError:
            return session
        except Exception:
            logger.exception("Player discovery failed unexpectedly")
            return session
        if candidate.identity() == session.identity():
            return session
        name = describe_session(candidate)
        logger.info("Switching to player %s", name, extra=bridge_extra(session=name))
        return candidate

    def _publish(self, state: PlayerState | None) -> None:
        if state == self._last_published:
            return
        self._last_published = state
        self._shared.publish_player(state)
