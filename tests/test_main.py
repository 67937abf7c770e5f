"""Tests for the command line entry point."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from freehand import __main__ as cli
from freehand.core import constants
from freehand.discovery.models import ConnectionDescriptor


def _run(tmp_path, *argv):
    return cli.main(["--data-dir", str(tmp_path / "data"), *argv])


def _fake_hunter(descriptor):
    hunter = MagicMock()
    hunter.scan_environment = AsyncMock(return_value=descriptor)
    hunter.close = AsyncMock()
    return hunter


class TestParser:

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_check_takes_command(self):
        args = cli.build_parser().parse_args(["check", "rm -rf /"])
        assert args.shell_command == "rm -rf /"


class TestBlocklistCommands:

    def test_list_prints_defaults(self, tmp_path, capsys):
        assert _run(tmp_path, "blocklist", "list") == 0
        assert capsys.readouterr().out.splitlines() == list(constants.DEFAULT_BLOCKLIST)

    def test_add_persists_between_runs(self, tmp_path, capsys):
        _run(tmp_path, "blocklist", "add", "curl | sh")
        capsys.readouterr()

        _run(tmp_path, "blocklist", "list")
        assert capsys.readouterr().out.splitlines()[-1] == "curl | sh"

    def test_duplicate_add_reports_unchanged(self, tmp_path, capsys):
        _run(tmp_path, "blocklist", "add", "rm -rf /")
        assert "Unchanged" in capsys.readouterr().out

    def test_reset(self, tmp_path, capsys):
        _run(tmp_path, "blocklist", "remove", "dd if=")
        _run(tmp_path, "blocklist", "reset")
        out = capsys.readouterr().out.splitlines()
        assert out[-len(constants.DEFAULT_BLOCKLIST):] == list(constants.DEFAULT_BLOCKLIST)

    def test_check(self, tmp_path, capsys):
        assert _run(tmp_path, "check", "sudo rm -rf / --no-preserve-root") == 1
        assert _run(tmp_path, "check", "npm test") == 0
        assert capsys.readouterr().out.splitlines() == ["BLOCKED", "allowed"]


class TestScanCommand:

    def test_nothing_found(self, tmp_path, capsys, monkeypatch):
        hunter = _fake_hunter(None)
        monkeypatch.setattr(cli.ProcessHunter, "for_platform", classmethod(lambda cls, ctx: hunter))

        assert _run(tmp_path, "scan") == 1
        assert "No target process found" in capsys.readouterr().out
        hunter.close.assert_awaited_once()

    def test_descriptor_printed_redacted(self, tmp_path, capsys, monkeypatch):
        descriptor = ConnectionDescriptor(auxiliary_port=41000, control_port=42100, token="secret-token")
        hunter = _fake_hunter(descriptor)
        monkeypatch.setattr(cli.ProcessHunter, "for_platform", classmethod(lambda cls, ctx: hunter))

        assert _run(tmp_path, "scan") == 0
        printed = json.loads(capsys.readouterr().out)
        assert printed == {"auxiliary_port": 41000, "control_port": 42100, "token": "secr..."}
        hunter.scan_environment.assert_awaited_once_with(constants.DEFAULT_SCAN_ATTEMPTS)


class TestSwitchCommands:

    def test_toggle_persists(self, tmp_path, capsys):
        assert _run(tmp_path, "toggle") == 0
        assert _run(tmp_path, "toggle") == 0
        assert _run(tmp_path, "toggle") == 0
        assert capsys.readouterr().out.splitlines() == [
            "Automation disabled", "Automation enabled", "Automation disabled",
        ]

    def test_status_reflects_settings(self, tmp_path, capsys):
        _run(tmp_path, "toggle")
        capsys.readouterr()

        assert _run(tmp_path, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["enabled"] is False
        assert status["schedule_enabled"] is False
        assert status["is_awake"] is True
        assert status["next_wake"] is None
        assert status["next_sleep"] is None
