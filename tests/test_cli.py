from __future__ import annotations

import io
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

from elmpoll import cli
from elmpoll.errors import AdapterUnresponsive, CommunicationError, ConnectError, HandshakeError
from elmpoll.polling import PollEvent, PollStatus
from elmpoll.session import SetupResult, open_session
from elmpoll.transport.connector import DeviceConnector
from tests.fakes import FAST, FakeAdapter, RecordingOpener, rpm_frame


class RenderEventTests(unittest.TestCase):
    def test_rpm_value(self) -> None:
        self.assertEqual("RPM: 812", cli.render_event(PollEvent(PollStatus.VALUE, 0x0C, value=812)))

    def test_speed_value_has_unit(self) -> None:
        self.assertEqual("Speed: 50 km/h", cli.render_event(PollEvent(PollStatus.VALUE, 0x0D, value=50)))

    def test_waiting(self) -> None:
        self.assertEqual("RPM: Waiting for data...", cli.render_event(PollEvent(PollStatus.WAITING, 0x0C)))

    def test_unresponsive(self) -> None:
        event = PollEvent(PollStatus.UNRESPONSIVE, 0x0C, error=AdapterUnresponsive(10))
        self.assertEqual("Connection problems", cli.render_event(event))

    def test_stopped(self) -> None:
        self.assertEqual("Stopped", cli.render_event(PollEvent(PollStatus.STOPPED, 0x0C)))

    def test_stopped_with_error(self) -> None:
        event = PollEvent(PollStatus.STOPPED, 0x0C, error=CommunicationError("Polling stopped: boom"))
        self.assertEqual("Stopped: Polling stopped: boom", cli.render_event(event))


class MainTests(unittest.TestCase):
    def _run(self, argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = cli.main(argv)
        return code, out.getvalue(), err.getvalue()

    def test_missing_address(self) -> None:
        with mock.patch.dict("os.environ", {}, clear=True):
            code, _, err = self._run([])
        self.assertEqual(cli.EXIT_USAGE, code)
        self.assertIn("No adapter address", err)

    def test_bad_pid(self) -> None:
        code, _, err = self._run(["--address", "00:1D:A5:68:98:8B", "--channel", "1", "--pid", "XYZ"])
        self.assertEqual(cli.EXIT_USAGE, code)
        self.assertIn("Invalid PID", err)

    def test_out_of_range_limits_are_usage_errors(self) -> None:
        base = ["--address", "00:1D:A5:68:98:8B", "--channel", "1"]
        cases = {
            "--retries": ("0", "--retries must be at least 1"),
            "--threshold": ("0", "--threshold must be at least 1"),
            "--interval": ("-1", "--interval cannot be negative"),
        }
        for flag, (value, message) in cases.items():
            with self.subTest(flag=flag), mock.patch.object(cli, "open_session") as open_session_mock:
                code, _, err = self._run(base + [flag, value])
                self.assertEqual(cli.EXIT_USAGE, code)
                self.assertIn(message, err)
                open_session_mock.assert_not_called()

    def test_connect_failure(self) -> None:
        failed = SetupResult(error=ConnectError("Could not connect", attempts=4))
        with mock.patch.object(cli, "open_session", return_value=failed):
            code, out, _ = self._run(["--address", "00:1D:A5:68:98:8B", "--channel", "1"])
        self.assertEqual(cli.EXIT_SETUP_FAILED, code)
        self.assertIn("OBD Connection Failed", out)

    def test_handshake_failure(self) -> None:
        failed = SetupResult(error=HandshakeError("No protocol candidate"))
        with mock.patch.object(cli, "open_session", return_value=failed):
            code, out, _ = self._run(["--address", "00:1D:A5:68:98:8B", "--channel", "1"])
        self.assertEqual(cli.EXIT_SETUP_FAILED, code)
        self.assertIn("Failed to initialize OBD adapter", out)

    def test_polls_until_unresponsive(self) -> None:
        replies = [rpm_frame(750), rpm_frame(812), "NO DATA"]
        opener = RecordingOpener(channel_factory=lambda: FakeAdapter({"010C": replies}))
        settings = FAST.with_overrides(error_threshold=2)

        def fake_open(device, _settings, **kwargs):
            return open_session(device, settings, connector=DeviceConnector(settings, opener=opener), **kwargs)

        with mock.patch.object(cli, "open_session", side_effect=fake_open):
            code, out, _ = self._run(["--address", "00:1D:A5:68:98:8B", "--channel", "1"])

        self.assertEqual(cli.EXIT_UNRESPONSIVE, code)
        lines = out.splitlines()
        self.assertIn("RPM: 750", lines)
        self.assertIn("RPM: 812", lines)
        self.assertIn("RPM: Waiting for data...", lines)
        self.assertEqual("Connection problems", lines[-1])
        self.assertFalse(opener.opened[0].is_open)


if __name__ == "__main__":
    unittest.main()
