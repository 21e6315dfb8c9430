"""Tests for co2mon.daemon."""

import io
import logging
import threading
from unittest.mock import patch

import pytest

import co2mon.daemon as daemon_mod
from conftest import FakeLink, SensorLink
from co2mon.daemon import _on_signal, main, run
from co2mon.protocol import ABC_OFF_FRAME, PROTO_CMD_READ_CO2
from co2mon.serial_link import LinkOpenError


class StoppingSensorLink(SensorLink):
    """SensorLink that requests daemon shutdown after *n* answered reads."""

    def __init__(self, n: int):
        super().__init__()
        self._n = n
        self.co2_requests = 0

    def write(self, data: bytes) -> None:
        if data[2] == PROTO_CMD_READ_CO2:
            self.co2_requests += 1
        super().write(data)

    def read_byte(self) -> int | None:
        if self.co2_requests >= self._n and not self.pending():
            daemon_mod._shutdown.set()
        return super().read_byte()


class SetupThenStopLink(SensorLink):
    """SensorLink that sets *shutdown* once the range ack has been read."""

    def __init__(self, shutdown: threading.Event):
        super().__init__()
        self._shutdown = shutdown

    def read_byte(self) -> int | None:
        if len(self.written) >= 2 and not self.pending():
            self._shutdown.set()
        return super().read_byte()


class InterruptedLink(FakeLink):
    """Silent link that requests daemon shutdown on the first read."""

    def read_byte(self) -> int | None:
        daemon_mod._shutdown.set()
        return super().read_byte()


def _write_toml(tmp_path, text: str) -> str:
    """Write TOML text to a temp file and return its path."""
    path = tmp_path / "co2mon.toml"
    path.write_text(text)
    return str(path)


@pytest.fixture(autouse=True)
def _no_signal_handlers(monkeypatch):
    """Keep main() from replacing the test runner's signal handlers."""
    monkeypatch.setattr(daemon_mod.signal, "signal", lambda *args: None)


@pytest.fixture(autouse=True)
def _workdir(tmp_path, monkeypatch):
    """Run main() from an empty directory with no system-wide config."""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.setattr("co2mon.paths.ETC_DIR", str(tmp_path / "etc"))
    return work


@pytest.fixture
def _protocol_logger():
    """Restore the protocol logger level after a test changes it."""
    logger = logging.getLogger("co2mon.protocol")
    level = logger.level
    yield logger
    logger.setLevel(level)


class TestRun:
    """Tests for the daemon run() function."""

    def test_handshake_then_readings(self):
        """run() configures the sensor and reports until shutdown."""
        shutdown = threading.Event()
        link = SetupThenStopLink(shutdown)
        cfg = {"range": 5000, "interval": 10, "handshake_timeout": 2}
        out = io.StringIO()

        assert run(cfg, link, out, shutdown) == 0
        assert link.written[1][3:5] == bytes([0x13, 0x88])
        assert out.getvalue() == ""

    def test_shutdown_before_handshake(self):
        """A pending shutdown skips the range step and the loop."""
        shutdown = threading.Event()
        shutdown.set()
        link = SensorLink()
        cfg = {"range": 5000, "interval": 10, "handshake_timeout": 2}

        assert run(cfg, link, io.StringIO(), shutdown) == 0
        assert link.written == [ABC_OFF_FRAME]


class TestMain:
    """Tests for the CLI entry point."""

    def test_on_signal_sets_shutdown(self):
        """_on_signal sets the module-level shutdown event."""
        daemon_mod._shutdown.clear()
        _on_signal(2, None)
        assert daemon_mod._shutdown.is_set()

    def test_link_open_error(self, caplog):
        """An unopenable device exits 1 with the path in the log."""
        err = LinkOpenError("/dev/nope", "No such file or directory")
        with patch("co2mon.daemon.SerialLink", side_effect=err):
            status = main(["--port", "/dev/nope"])
        assert status == 1
        assert "/dev/nope" in caplog.text

    def test_cli_overrides_port(self):
        """--port overrides the default device."""
        err = LinkOpenError("/dev/ttyACM0", "busy")
        with patch("co2mon.daemon.SerialLink", side_effect=err) as link_cls:
            main(["--port", "/dev/ttyACM0"])
        link_cls.assert_called_once_with("/dev/ttyACM0", 9600)

    def test_default_port(self):
        """Without a config or --port the first USB serial device is used."""
        err = LinkOpenError("/dev/ttyUSB0", "busy")
        with patch("co2mon.daemon.SerialLink", side_effect=err) as link_cls:
            main([])
        link_cls.assert_called_once_with("/dev/ttyUSB0", 9600)

    def test_config_file(self, tmp_path):
        """Port and baudrate come from the config file."""
        path = _write_toml(tmp_path, (
            '[sensor]\n'
            'port = "/dev/ttyS1"\n'
            'baudrate = 19200\n'
        ))
        err = LinkOpenError("/dev/ttyS1", "busy")
        with patch("co2mon.daemon.SerialLink", side_effect=err) as link_cls:
            main([path])
        link_cls.assert_called_once_with("/dev/ttyS1", 19200)

    def test_bad_range_rejected(self):
        """An unsupported --range is a usage error."""
        with pytest.raises(SystemExit) as info:
            main(["--range", "3000"])
        assert info.value.code == 2

    def test_handshake_timeout(self, tmp_path, caplog):
        """A silent sensor exits 1 naming the failed step; link is closed."""
        path = _write_toml(tmp_path, '[sensor]\nhandshake_timeout = 0.05\n')
        link = FakeLink()
        with patch("co2mon.daemon.SerialLink", return_value=link):
            status = main([path])
        assert status == 1
        assert "ABC off" in caplog.text
        assert link.closed

    def test_orderly_shutdown(self, tmp_path, capsys):
        """Readings go to stdout; shutdown exits 0."""
        path = _write_toml(tmp_path, '[sensor]\ninterval = 0.01\n')
        link = StoppingSensorLink(3)
        with patch("co2mon.daemon.SerialLink", return_value=link):
            status = main([path, "--range", "2000"])
        assert status == 0
        assert link.closed
        assert link.written[1][3:5] == bytes([0x07, 0xD0])
        lines = capsys.readouterr().out.splitlines()
        assert len(lines) >= 3
        assert all(line.isdigit() for line in lines)

    def test_trace_flag(self, _protocol_logger):
        """--trace turns on DEBUG for the protocol logger only."""
        _protocol_logger.setLevel(logging.NOTSET)
        err = LinkOpenError("/dev/ttyUSB0", "busy")
        with patch("co2mon.daemon.SerialLink", side_effect=err):
            main(["--trace"])
        assert _protocol_logger.level == logging.DEBUG

    def test_trace_from_config(self, tmp_path, _protocol_logger):
        """trace = true in the config file also enables tracing."""
        _protocol_logger.setLevel(logging.NOTSET)
        path = _write_toml(tmp_path, '[sensor]\ntrace = true\n')
        err = LinkOpenError("/dev/ttyUSB0", "busy")
        with patch("co2mon.daemon.SerialLink", side_effect=err):
            main([path])
        assert _protocol_logger.level == logging.DEBUG

    def test_verbose_keeps_protocol_quiet(self, _protocol_logger):
        """-v alone leaves byte-level protocol output off."""
        _protocol_logger.setLevel(logging.NOTSET)
        err = LinkOpenError("/dev/ttyUSB0", "busy")
        with patch("co2mon.daemon.SerialLink", side_effect=err):
            main(["-v"])
        assert _protocol_logger.level == logging.INFO

    def test_default_config_in_workdir(self, _workdir):
        """A bare invocation picks up ./co2mon.toml."""
        (_workdir / "co2mon.toml").write_text('[sensor]\nport = "/dev/ttyS3"\n')
        err = LinkOpenError("/dev/ttyS3", "busy")
        with patch("co2mon.daemon.SerialLink", side_effect=err) as link_cls:
            main([])
        link_cls.assert_called_once_with("/dev/ttyS3", 9600)

    def test_shutdown_during_handshake(self, caplog):
        """A signal while the sensor is silent exits 0, not as a timeout."""
        link = InterruptedLink()
        with patch("co2mon.daemon.SerialLink", return_value=link):
            status = main([])
        assert status == 0
        assert link.closed
        assert link.written == [ABC_OFF_FRAME]
        assert "error initialising" not in caplog.text

    def test_missing_config(self, tmp_path):
        """A missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            main([str(tmp_path / "nope.toml")])
