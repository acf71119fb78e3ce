"""
Tests for cli -- qlight command-line interface argument parsing and dispatch.

Tests cover:
- main() with no args (prints help, returns 0) and --version
- list: empty, ordered output, access errors
- set: --index / --path / --all targeting, --reset, bad tokens
- --backend flag and config backend reach create_context()
- setup-udev --dry-run output and root check
"""

import logging
from unittest.mock import patch

import pytest

from conftest import FakeContext
from qlight.cli import _setup_logging, main, setup_udev, udev_rules
from qlight.errors import DeviceAccessError


@pytest.fixture(autouse=True)
def _no_user_config(tmp_path, monkeypatch):
    monkeypatch.setenv('QLIGHT_CONFIG', str(tmp_path / "missing.json"))
    monkeypatch.delenv('QLIGHT_BACKEND', raising=False)
    monkeypatch.delenv('QLIGHT_LOG_LEVEL', raising=False)


@pytest.fixture
def use_context():
    """Patch create_context to hand out the given fake context."""
    patchers = []

    def _use(ctx):
        p = patch("qlight.transport.create_context", return_value=ctx)
        patchers.append(p)
        return p.start()

    yield _use
    for p in patchers:
        p.stop()


class TestMainEntryPoint:

    def test_no_args_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: qlight" in capsys.readouterr().out

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "qlight" in capsys.readouterr().out

    def test_backend_flag(self, use_context, empty_context):
        create = use_context(empty_context)
        main(["--backend", "pyusb", "list"])
        create.assert_called_once_with("pyusb")

    def test_backend_from_env(self, use_context, empty_context, monkeypatch):
        monkeypatch.setenv('QLIGHT_BACKEND', 'hidapi')
        create = use_context(empty_context)
        main(["list"])
        create.assert_called_once_with("hidapi")


class TestSetupLogging:

    @pytest.mark.parametrize("verbose,config_level,level,with_name", [
        (0, None, logging.WARNING, False),
        (1, None, logging.INFO, False),
        (2, None, logging.DEBUG, True),
        (0, "INFO", logging.INFO, False),
        (0, "DEBUG", logging.DEBUG, True),
        (2, "ERROR", logging.DEBUG, True),
    ])
    def test_format_follows_effective_level(self, verbose, config_level, level, with_name):
        with patch("qlight.cli.logging.basicConfig") as basic:
            _setup_logging(verbose, config_level)
        kwargs = basic.call_args.kwargs
        assert kwargs['level'] == level
        assert ("%(name)s" in kwargs['format']) is with_name

    def test_env_debug_level_reaches_logging(self, monkeypatch, capsys):
        monkeypatch.setenv('QLIGHT_LOG_LEVEL', 'debug')
        with patch("qlight.cli.logging.basicConfig") as basic:
            main([])
        assert basic.call_args.kwargs['level'] == logging.DEBUG
        assert "%(name)s" in basic.call_args.kwargs['format']


class TestList:

    def test_empty(self, use_context, empty_context, capsys):
        use_context(empty_context)
        assert main(["list"]) == 0
        assert "No Q-Light devices found." in capsys.readouterr().out

    def test_ordered_with_index(self, use_context, fake_context, capsys):
        use_context(fake_context)
        assert main(["list"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0].startswith("[1] 1-2.4")
        assert lines[1].startswith("[2] 1-3")
        assert "04d8:e73c" in lines[0]

    def test_access_error(self, use_context, capsys):
        ctx = FakeContext()
        ctx.enumerate_error = DeviceAccessError("permission denied")
        use_context(ctx)
        assert main(["list"]) == 1
        assert "Error: permission denied" in capsys.readouterr().err


class TestSet:

    def test_by_index(self, use_context, fake_context):
        use_context(fake_context)
        assert main(["set", "-i", "2", "red:on"]) == 0
        path, report = fake_context.writes[0]
        assert path == b"1-3:1.0"
        assert report[:8] == bytes([0x57, 0, 1, 3, 3, 3, 3, 6])

    def test_by_path(self, use_context, fake_context):
        use_context(fake_context)
        assert main(["set", "--path", "1-2.4", "green:blink", "white:off"]) == 0
        path, report = fake_context.writes[0]
        assert path == b"1-2.4:1.0"
        assert report[2:7] == bytes([3, 3, 2, 3, 0])

    def test_all(self, use_context, fake_context):
        use_context(fake_context)
        assert main(["set", "--all", "yellow:blink"]) == 0
        assert len(fake_context.writes) == 2

    def test_all_with_no_devices(self, use_context, empty_context, capsys):
        use_context(empty_context)
        assert main(["set", "--all", "red:on"]) == 1
        assert "No Q-Light devices" in capsys.readouterr().err

    def test_reset_only(self, use_context, fake_context):
        use_context(fake_context)
        assert main(["set", "-i", "1", "--reset"]) == 0
        assert fake_context.writes[0][1] == bytes([0x57]) + bytes(64)

    def test_reset_with_command(self, use_context, fake_context):
        use_context(fake_context)
        assert main(["set", "-i", "1", "--reset", "blue:on"]) == 0
        assert fake_context.writes[0][1][2:8] == bytes([0, 0, 0, 1, 0, 0])

    def test_index_out_of_range(self, use_context, fake_context, capsys):
        use_context(fake_context)
        assert main(["set", "-i", "5", "red:on"]) == 1
        assert "out of range" in capsys.readouterr().err
        assert fake_context.writes == []

    def test_nothing_to_do(self, use_context, fake_context, capsys):
        use_context(fake_context)
        assert main(["set", "-i", "1"]) == 1
        assert "COLOR:STATE" in capsys.readouterr().err

    def test_bad_token_is_usage_error(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["set", "-i", "1", "purple:on"])
        assert exc.value.code == 2
        assert "purple" in capsys.readouterr().err

    def test_target_required(self):
        with pytest.raises(SystemExit) as exc:
            main(["set", "red:on"])
        assert exc.value.code == 2

    def test_partial_failure_with_all(self, use_context, fake_context, capsys):
        use_context(fake_context)
        fake_context.write_result = 3
        assert main(["set", "--all", "red:on"]) == 1
        assert capsys.readouterr().err.count("Error:") == 2


class TestSetupUdev:

    def test_rules_content(self):
        rules = udev_rules()
        assert 'SUBSYSTEM=="hidraw"' in rules
        assert 'ATTRS{idVendor}=="04d8"' in rules
        assert 'ATTRS{idProduct}=="e73c"' in rules

    def test_dry_run(self, capsys):
        assert main(["setup-udev", "--dry-run"]) == 0
        out = capsys.readouterr().out
        assert "99-qlight.rules" in out
        assert 'MODE="0666"' in out

    def test_requires_root(self, capsys):
        with patch("qlight.cli.os.geteuid", return_value=1000):
            assert setup_udev() == 1
        assert "root required" in capsys.readouterr().err

    def test_writes_rules_as_root(self, tmp_path, capsys):
        rules_path = tmp_path / "99-qlight.rules"
        with patch("qlight.cli.os.geteuid", return_value=0), \
             patch("qlight.cli.UDEV_RULES_PATH", str(rules_path)), \
             patch("qlight.cli.subprocess.run") as run:
            assert setup_udev() == 0
        assert rules_path.read_text() == udev_rules()
        assert run.call_count == 2
