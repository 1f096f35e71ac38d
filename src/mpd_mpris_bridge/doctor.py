"""Runtime diagnostics for D-Bus and MPRIS readiness."""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Literal

from mpd_mpris_bridge.services.mpris_backend import MprisSessionFinder
from mpd_mpris_bridge.services.playback_backend import BackendError

DoctorStatus = Literal["ok", "missing", "error"]


@dataclass(frozen=True)
class DoctorCheck:
    """One environment readiness check result."""

    name: str
    status: DoctorStatus
    required: bool
    detail: str
    hint: str | None = None


@dataclass(frozen=True)
class DoctorReport:
    """Collection of doctor checks and derived process exit contract."""

    backend: str
    checks: list[DoctorCheck]

    @property
    def exit_code(self) -> int:
        """Return non-zero when any required check failed or is missing."""
        for check in self.checks:
            if check.required and check.status != "ok":
                return 2
        return 0


def run_doctor(backend: str) -> DoctorReport:
    """Run configured diagnostics for selected backend mode."""
    required = backend == "mpris"
    checks = [probe_dbus(required=required)]
    if checks[0].status == "ok":
        checks.append(probe_mpris_players(required=required))
    return DoctorReport(backend=backend, checks=checks)


def render_report(report: DoctorReport) -> str:
    """Render terminal-friendly diagnostics report text."""
    lines = [f"mpd-mpris-bridge doctor (backend={report.backend})", ""]
    for check in report.checks:
        state = _status_token(check.status)
        req = "required" if check.required else "optional"
        lines.append(f"{state} {check.name:<12} [{req}] {check.detail}")
        if check.hint:
            lines.append(f"      hint: {check.hint}")
    lines.append("")
    lines.append("Result: OK" if report.exit_code == 0 else "Result: FAIL")
    return "\n".join(lines)


def probe_dbus(*, required: bool) -> DoctorCheck:
    """Verify dbus-python importability."""
    try:
        module = importlib.import_module("dbus")
    except Exception as exc:
        return DoctorCheck(
            name="dbus-python",
            status="missing",
            required=required,
            detail=f"not importable ({exc.__class__.__name__})",
            hint="Install dbus-python and the libdbus development headers.",
        )
    version = getattr(module, "__version__", None)
    detail = f"importable ({version})" if version else "importable"
    return DoctorCheck(
        name="dbus-python", status="ok", required=required, detail=detail
    )


def probe_mpris_players(*, required: bool) -> DoctorCheck:
    """Verify the session bus is reachable and report visible MPRIS players."""
    try:
        names = MprisSessionFinder().list_player_names()
    except BackendError as exc:
        return DoctorCheck(
            name="session bus",
            status="error",
            required=required,
            detail=str(exc),
            hint="Run inside a desktop session or export DBUS_SESSION_BUS_ADDRESS.",
        )
    if not names:
        return DoctorCheck(
            name="session bus",
            status="ok",
            required=required,
            detail="reachable; no MPRIS players running",
        )
    return DoctorCheck(
        name="session bus",
        status="ok",
        required=required,
        detail=f"reachable; players: {', '.join(names)}",
    )


def _status_token(status: DoctorStatus) -> str:
    """Map doctor status to compact display token."""
    if status == "ok":
        return "[OK]"
    if status == "missing":
        return "[MISS]"
    return "[ERR]"
