"""Project version source of truth."""

from __future__ import annotations

import platform

__all__ = ["MPD_PROTOCOL_VERSION", "__version__", "build_help_epilog"]

# Manually updated for each release.
__version__ = "0.3.0"
# Protocol version announced in the greeting line.
MPD_PROTOCOL_VERSION = "0.23.16"


def build_help_epilog() -> str:
    return (
        f"Platform: {platform.platform()}\n"
        f"Version: {__version__}\n"
        f"MPD protocol: {MPD_PROTOCOL_VERSION}"
    )
