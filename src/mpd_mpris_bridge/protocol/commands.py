"""MPD command implementations and the dispatch table.

Every command maps `(arguments, context)` to a response payload or raises
`MPDError`. Commands never touch a backend session: playback intents go to the
controller over the command channel ("fire and acknowledge"), while `status`,
`currentsong` and `idle` only read `SharedState`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from mpd_mpris_bridge.events import PlaybackCommand
from mpd_mpris_bridge.services.command_channel import (
    ChannelClosed,
    ChannelFull,
    CommandChannel,
)
from mpd_mpris_bridge.services.playback_backend import PlaybackStatus, PlayerState
from mpd_mpris_bridge.state_store import SharedState

from . import idle
from .command_list import (
    CLIST_BEGIN,
    CLIST_END,
    CLIST_VERBOSE_BEGIN,
    CommandListMachine,
)
from .errors import AckCode, MPDError

logger = logging.getLogger(__name__)

NON_UTF8_PLACEHOLDER = "<non-utf8>"
VOLUME_DELTA_LIMIT = 127
TAG_TYPES = ("Artist", "Title")

_ARG_RE = re.compile(r'"((?:\\.|[^"\\])*)"|([^ \t"]+)')

_STATE_TOKENS = {
    PlaybackStatus.PLAYING: "play",
    PlaybackStatus.PAUSED: "pause",
    PlaybackStatus.STOPPED: "stop",
}


@dataclass
class ConnectionState:
    """Per-connection protocol state, owned by a single connection task."""

    command_list: CommandListMachine = field(default_factory=CommandListMachine)
    should_close: bool = False
    idle_snapshots: dict[str, object] = field(default_factory=dict)


@dataclass
class CommandContext:
    """Everything a command may use while it runs for one connection."""

    shared: SharedState
    channel: CommandChannel
    state: ConnectionState
    wait_for_cancel: Callable[[float], Awaitable[bool]]
    idle_wait_s: float = 0.3


Handler = Callable[[CommandContext, list[str]], Awaitable[bytes]]


@dataclass(frozen=True)
class _CommandSpec:
    handler: Handler
    min_args: int
    max_args: int | None


_COMMANDS: dict[str, _CommandSpec] = {}


def command(
    name: str, *, min_args: int = 0, max_args: int | None = 0
) -> Callable[[Handler], Handler]:
    """Register `func` as the implementation of protocol command `name`."""

    def decorator(func: Handler) -> Handler:
        _COMMANDS[name] = _CommandSpec(func, min_args, max_args)
        return func

    return decorator


def supported_commands() -> list[str]:
    return sorted({*_COMMANDS, CLIST_BEGIN, CLIST_VERBOSE_BEGIN, CLIST_END})


def decode_name(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return NON_UTF8_PLACEHOLDER


def parse_arguments(raw: bytes) -> list[str]:
    """Split an argument string into bare words and double-quoted strings."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise MPDError(AckCode.ARG, "Malformed argument encoding") from None
    args: list[str] = []
    for quoted, bare in _ARG_RE.findall(text):
        if bare:
            args.append(bare)
        else:
            args.append(re.sub(r"\\(.)", r"\1", quoted))
    return args


async def dispatch(ctx: CommandContext, name: str, raw_args: bytes) -> bytes:
    """Run command `name` and return its payload (without trailing OK)."""
    entry = _COMMANDS.get(name)
    if entry is None:
        raise MPDError(AckCode.UNKNOWN, f'unknown command "{name}"')
    args = parse_arguments(raw_args)
    if len(args) < entry.min_args or (
        entry.max_args is not None and len(args) > entry.max_args
    ):
        raise MPDError(AckCode.ARG, f'wrong number of arguments for "{name}"')
    return await entry.handler(ctx, args)


def _line(key: str, value: object) -> str:
    text = str(value).replace("\r", " ").replace("\n", " ")
    return f"{key}: {text}\n"


def _parse_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise MPDError(AckCode.ARG, f"Integer expected: {value}") from None


async def _enqueue(ctx: CommandContext, playback: PlaybackCommand) -> bytes:
    try:
        await ctx.channel.send(playback)
    except ChannelClosed as exc:
        logger.critical("Command channel closed; backend controller is gone")
        raise MPDError(AckCode.SYSTEM, "backend controller unavailable") from exc
    except ChannelFull as exc:
        logger.warning("Command channel full; rejecting %s", playback.value)
        raise MPDError(AckCode.SYSTEM, "player busy, try again") from exc
    return b""


# Health and introspection


@command("ping")
async def cmd_ping(ctx: CommandContext, args: list[str]) -> bytes:
    return b""


@command("commands")
async def cmd_commands(ctx: CommandContext, args: list[str]) -> bytes:
    return "".join(_line("command", name) for name in supported_commands()).encode()


@command("tagtypes", max_args=None)
async def cmd_tagtypes(ctx: CommandContext, args: list[str]) -> bytes:
    # Subcommands (clear/enable/disable/all) are accepted and ignored.
    if args:
        return b""
    return "".join(_line("tagtype", tag) for tag in TAG_TYPES).encode()


# Playback


@command("play", max_args=1)
async def cmd_play(ctx: CommandContext, args: list[str]) -> bytes:
    return await _enqueue(ctx, PlaybackCommand.PLAY)


@command("pause", max_args=1)
async def cmd_pause(ctx: CommandContext, args: list[str]) -> bytes:
    if not args or args[0] in {"1", "on"}:
        return await _enqueue(ctx, PlaybackCommand.PAUSE)
    # Clients use `pause 0` (or anything else) to resume.
    return await _enqueue(ctx, PlaybackCommand.PLAY)


@command("stop")
async def cmd_stop(ctx: CommandContext, args: list[str]) -> bytes:
    return await _enqueue(ctx, PlaybackCommand.STOP)


@command("next")
async def cmd_next(ctx: CommandContext, args: list[str]) -> bytes:
    return await _enqueue(ctx, PlaybackCommand.NEXT)


@command("previous")
async def cmd_previous(ctx: CommandContext, args: list[str]) -> bytes:
    return await _enqueue(ctx, PlaybackCommand.PREVIOUS)


# Player information


def render_status(state: PlayerState | None, volume: int) -> bytes:
    lines = [_line("repeat", 0), _line("random", 0)]
    if state is not None:
        lines.append(_line("song", 0))
    lines.append(_line("playlistlength", 0 if state is None else 1))
    lines.append(_line("volume", volume))
    lines.append(
        _line("state", "stop" if state is None else _STATE_TOKENS[state.status])
    )
    if state is not None:
        if state.duration_s is not None:
            lines.append(_line("duration", f"{state.duration_s:.3f}"))
        if state.elapsed_s is not None:
            lines.append(_line("elapsed", f"{state.elapsed_s:.3f}"))
        if state.duration_s is not None and state.elapsed_s is not None:
            lines.append(
                _line("time", f"{int(state.elapsed_s)}:{int(state.duration_s)}")
            )
        if state.art_url:
            lines.append(_line("arturl", state.art_url))
    return "".join(lines).encode("utf-8")


def render_current_song(state: PlayerState | None) -> bytes:
    if state is None:
        return b""
    lines: list[str] = []
    file_name = state.url or state.title
    if file_name:
        lines.append(_line("file", file_name))
    if state.title:
        lines.append(_line("Title", state.title))
    if state.artist:
        lines.append(_line("Artist", state.artist))
    if state.duration_s is not None:
        lines.append(_line("Time", int(state.duration_s)))
        lines.append(_line("duration", f"{state.duration_s:.3f}"))
    if state.art_url:
        lines.append(_line("arturl", state.art_url))
    return "".join(lines).encode("utf-8")


@command("status")
async def cmd_status(ctx: CommandContext, args: list[str]) -> bytes:
    return render_status(ctx.shared.player, ctx.shared.volume.get())


@command("currentsong")
async def cmd_currentsong(ctx: CommandContext, args: list[str]) -> bytes:
    return render_current_song(ctx.shared.player)


@command("idle", max_args=None)
async def cmd_idle(ctx: CommandContext, args: list[str]) -> bytes:
    watched = idle.parse_subsystems(args)
    return await idle.wait_for_change(
        watched,
        ctx.shared,
        ctx.state.idle_snapshots,
        ctx.wait_for_cancel,
        wait_s=ctx.idle_wait_s,
    )


# Mixer (emulated locally, never forwarded to the player)


@command("volume", min_args=1, max_args=1)
async def cmd_volume(ctx: CommandContext, args: list[str]) -> bytes:
    delta = _parse_int(args[0])
    if not -VOLUME_DELTA_LIMIT <= delta <= VOLUME_DELTA_LIMIT:
        raise MPDError(AckCode.ARG, f"Number out of range: {args[0]}")
    ctx.shared.volume.add(delta)
    return b""


@command("setvol", min_args=1, max_args=1)
async def cmd_setvol(ctx: CommandContext, args: list[str]) -> bytes:
    ctx.shared.volume.set(_parse_int(args[0]))
    return b""


@command("getvol")
async def cmd_getvol(ctx: CommandContext, args: list[str]) -> bytes:
    return _line("volume", ctx.shared.volume.get()).encode()


# Connection


@command("close")
async def cmd_close(ctx: CommandContext, args: list[str]) -> bytes:
    ctx.state.should_close = True
    return b""


# Acknowledged protocol surface without a backend equivalent.


@command("noidle")
async def cmd_noidle(ctx: CommandContext, args: list[str]) -> bytes:
    return b""


@command("playlistinfo", max_args=1)
async def cmd_playlistinfo(ctx: CommandContext, args: list[str]) -> bytes:
    return b""


@command("lsinfo", max_args=1)
async def cmd_lsinfo(ctx: CommandContext, args: list[str]) -> bytes:
    return b""


@command("stats")
async def cmd_stats(ctx: CommandContext, args: list[str]) -> bytes:
    return b""
