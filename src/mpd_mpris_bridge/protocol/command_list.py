"""Per-connection command-list (batch) state machine.

Commands inside a list run as they arrive. The first failure is reported once
and every later item of the same list is swallowed until `command_list_end`.
"""

from __future__ import annotations

from enum import Enum

from .errors import AckCode, MPDError

CLIST_BEGIN = "command_list_begin"
CLIST_VERBOSE_BEGIN = "command_list_ok_begin"
CLIST_END = "command_list_end"

RESP_OK = b"OK\n"
RESP_CLIST_VERBOSE = b"list_OK\n"


class ListState(Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    COLLECTING_VERBOSE = "collecting_verbose"
    FAILED = "failed"
    ENDING = "ending"


class ListEvent(Enum):
    BEGIN = "begin"
    BEGIN_VERBOSE = "begin_verbose"
    ITEM_OK = "item_ok"
    ITEM_FAILED = "item_failed"
    END = "end"
    FINISH_CYCLE = "finish_cycle"


_TRANSITIONS: dict[tuple[ListState, ListEvent], ListState] = {
    (ListState.IDLE, ListEvent.BEGIN): ListState.COLLECTING,
    (ListState.IDLE, ListEvent.BEGIN_VERBOSE): ListState.COLLECTING_VERBOSE,
    (ListState.IDLE, ListEvent.ITEM_OK): ListState.IDLE,
    (ListState.IDLE, ListEvent.ITEM_FAILED): ListState.IDLE,
    (ListState.COLLECTING, ListEvent.ITEM_OK): ListState.COLLECTING,
    (ListState.COLLECTING, ListEvent.ITEM_FAILED): ListState.FAILED,
    (ListState.COLLECTING, ListEvent.END): ListState.ENDING,
    (ListState.COLLECTING_VERBOSE, ListEvent.ITEM_OK): ListState.COLLECTING_VERBOSE,
    (ListState.COLLECTING_VERBOSE, ListEvent.ITEM_FAILED): ListState.FAILED,
    (ListState.COLLECTING_VERBOSE, ListEvent.END): ListState.ENDING,
    (ListState.FAILED, ListEvent.ITEM_OK): ListState.FAILED,
    (ListState.FAILED, ListEvent.END): ListState.ENDING,
    (ListState.ENDING, ListEvent.FINISH_CYCLE): ListState.IDLE,
}

_COLLECTING = {ListState.COLLECTING, ListState.COLLECTING_VERBOSE}


class CommandListMachine:
    """Tracks list mode and the 0-based position of the current list item."""

    def __init__(self) -> None:
        self.state = ListState.IDLE
        self.index = 0

    @property
    def in_list(self) -> bool:
        return self.state is not ListState.IDLE

    @property
    def swallowing(self) -> bool:
        """True while items of an already failed list must be ignored."""
        return self.state is ListState.FAILED

    def begin(self, *, verbose: bool) -> None:
        event = ListEvent.BEGIN_VERBOSE if verbose else ListEvent.BEGIN
        name = CLIST_VERBOSE_BEGIN if verbose else CLIST_BEGIN
        self._apply(event, name, "already in command list")
        self.index = 0

    def end(self) -> bytes:
        """Close the list and return the trailing response (empty on failure)."""
        failed = self.state is ListState.FAILED
        self._apply(ListEvent.END, CLIST_END, "not in command list")
        return b"" if failed else RESP_OK

    def finish_cycle(self) -> None:
        if self.state is ListState.ENDING:
            self._apply(ListEvent.FINISH_CYCLE, CLIST_END, "not in command list")
            self.index = 0

    def item_succeeded(self) -> bytes:
        """Record a successful (or swallowed) item and return its trailer."""
        previous = self.state
        self._apply(ListEvent.ITEM_OK, "", "unexpected command")
        if previous not in _COLLECTING:
            return RESP_OK if previous is ListState.IDLE else b""
        self.index += 1
        if previous is ListState.COLLECTING_VERBOSE:
            return RESP_CLIST_VERBOSE
        return b""

    def item_failed(self) -> None:
        self._apply(ListEvent.ITEM_FAILED, "", "unexpected command")

    def _apply(self, event: ListEvent, command: str, message: str) -> None:
        try:
            self.state = _TRANSITIONS[(self.state, event)]
        except KeyError:
            raise MPDError(
                AckCode.NOT_LIST, message, command=command, index=self.index
            ) from None
