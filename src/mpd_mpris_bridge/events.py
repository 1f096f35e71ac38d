"""Cross-module message models for handler-to-controller communication.

Connection handlers never touch a backend session directly; every playback
intent travels to `BackendController` as one of these values.
"""

from __future__ import annotations

from enum import Enum


class PlaybackCommand(Enum):
    """Playback intent queued by a connection handler.

    Carries no payload: the controller resolves the target session when it
    executes the command.
    """

    PLAY = "play"
    PAUSE = "pause"
    STOP = "stop"
    NEXT = "next"
    PREVIOUS = "previous"
