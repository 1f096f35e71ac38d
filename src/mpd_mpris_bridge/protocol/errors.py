"""Protocol error type and ACK codes exposed to MPD clients."""

from __future__ import annotations

from enum import IntEnum


class AckCode(IntEnum):
    NOT_LIST = 1
    ARG = 2
    PASSWORD = 3
    PERMISSION = 4
    UNKNOWN = 5
    NO_EXIST = 50
    SYSTEM = 52


class MPDError(Exception):
    """An error reported to the client as a single ACK line.

    `command` and `index` are filled in by the connection once it knows which
    command failed and where it sat inside a command list.
    """

    def __init__(
        self, code: AckCode, message: str, command: str = "", index: int = 0
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.command = command
        self.index = index

    def response(self) -> bytes:
        head = f"ACK [{int(self.code)}@{self.index}]"
        return f"{head} {{{self.command}}} {self.message}\n".encode("utf-8")
