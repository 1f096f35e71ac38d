"""Command-line interface for mpd-mpris-bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from . import __version__
from .doctor import render_report, run_doctor
from .logging_utils import setup_logging
from .paths import log_dir, state_path
from .runtime_config import (
    BACKEND_CHOICES,
    DEFAULT_HOST,
    DEFAULT_PORT,
    build_config,
    resolve_log_level,
)
from .server import serve
from .version import build_help_epilog


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mpd-mpris-bridge",
        description="Serve the active MPRIS media player to MPD clients.",
        epilog=build_help_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    parser.add_argument(
        "--host", default=DEFAULT_HOST, help=f"Address to bind (default {DEFAULT_HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help=f"TCP port to listen on (default {DEFAULT_PORT})",
    )
    parser.add_argument(
        "--backend",
        choices=BACKEND_CHOICES,
        default="mpris",
        help="Player backend to drive (mpris or fake).",
    )
    parser.add_argument(
        "--poll-interval",
        type=float,
        help="Seconds between player status polls (default 0.5).",
    )
    parser.add_argument(
        "--state-file", help="JSON file used to persist the emulated volume"
    )
    parser.add_argument(
        "--no-state",
        action="store_true",
        help="Do not load or save the emulated volume",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("doctor", help="Check D-Bus/MPRIS readiness and exit.")
    return parser


def _resolve_state_file(args: argparse.Namespace) -> Path | None:
    if args.no_state:
        return None
    if args.state_file:
        return Path(args.state_file)
    return state_path()


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logger = logging.getLogger(__name__)
    try:
        level = resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        setup_logging(
            log_dir=log_dir(),
            level=level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        if getattr(args, "command", None) == "doctor":
            report = run_doctor(args.backend)
            print(render_report(report))
            return report.exit_code
        config = build_config(
            host=args.host,
            port=args.port,
            backend=args.backend,
            poll_interval_s=args.poll_interval,
            state_file=_resolve_state_file(args),
        )
        logger.info("Starting mpd-mpris-bridge (backend=%s)", config.backend)
        asyncio.run(serve(config))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
        return 0
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    except OSError as exc:
        logger.error("Could not start server: %s", exc)
        print(f"Could not start server: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
