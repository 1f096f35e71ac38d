"""Tests for environment diagnostics probes and report behavior."""

from __future__ import annotations

import mpd_mpris_bridge.doctor as doctor_module
from mpd_mpris_bridge.services.playback_backend import BackendError


def _check(name: str, status: str, required: bool) -> doctor_module.DoctorCheck:
    return doctor_module.DoctorCheck(
        name=name, status=status, required=required, detail="detail"
    )


def test_run_doctor_fake_backend_allows_missing_dbus(monkeypatch) -> None:
    monkeypatch.setattr(
        doctor_module,
        "probe_dbus",
        lambda **kwargs: _check("dbus-python", "missing", kwargs["required"]),
    )

    report = doctor_module.run_doctor("fake")
    assert report.exit_code == 0
    assert [check.name for check in report.checks] == ["dbus-python"]


def test_run_doctor_mpris_backend_fails_when_dbus_missing(monkeypatch) -> None:
    monkeypatch.setattr(
        doctor_module,
        "probe_dbus",
        lambda **kwargs: _check("dbus-python", "missing", kwargs["required"]),
    )

    report = doctor_module.run_doctor("mpris")
    assert report.exit_code == 2
    assert "Result: FAIL" in doctor_module.render_report(report)


def test_run_doctor_probes_players_when_dbus_present(monkeypatch) -> None:
    monkeypatch.setattr(
        doctor_module,
        "probe_dbus",
        lambda **kwargs: _check("dbus-python", "ok", kwargs["required"]),
    )
    monkeypatch.setattr(
        doctor_module,
        "probe_mpris_players",
        lambda **kwargs: _check("session bus", "ok", kwargs["required"]),
    )

    report = doctor_module.run_doctor("mpris")
    assert report.exit_code == 0
    assert [check.name for check in report.checks] == ["dbus-python", "session bus"]
    assert doctor_module.render_report(report).endswith("Result: OK")


def test_probe_mpris_players_lists_names(monkeypatch) -> None:
    class FakeFinder:
        def list_player_names(self) -> list[str]:
            return ["org.mpris.MediaPlayer2.spotify"]

    monkeypatch.setattr(doctor_module, "MprisSessionFinder", FakeFinder)
    check = doctor_module.probe_mpris_players(required=True)
    assert check.status == "ok"
    assert "org.mpris.MediaPlayer2.spotify" in check.detail


def test_probe_mpris_players_empty_bus_is_ok(monkeypatch) -> None:
    class FakeFinder:
        def list_player_names(self) -> list[str]:
            return []

    monkeypatch.setattr(doctor_module, "MprisSessionFinder", FakeFinder)
    check = doctor_module.probe_mpris_players(required=True)
    assert check.status == "ok"
    assert "no MPRIS players" in check.detail


def test_probe_mpris_players_bus_error(monkeypatch) -> None:
    class FakeFinder:
        def list_player_names(self) -> list[str]:
            raise BackendError("session bus unavailable: no address")

    monkeypatch.setattr(doctor_module, "MprisSessionFinder", FakeFinder)
    check = doctor_module.probe_mpris_players(required=False)
    assert check.status == "error"
    assert check.hint is not None


def test_render_report_marks_status_tokens() -> None:
    report = doctor_module.DoctorReport(
        backend="mpris",
        checks=[
            _check("dbus-python", "ok", True),
            _check("session bus", "error", True),
        ],
    )
    text = doctor_module.render_report(report)
    assert "[OK] dbus-python" in text
    assert "[ERR] session bus" in text
    assert "[required]" in text
