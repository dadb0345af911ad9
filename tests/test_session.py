from __future__ import annotations

import unittest
from typing import List

from elmpoll.elm.init import AdapterState, InitResult
from elmpoll.errors import ConnectError, HandshakeError
from elmpoll.polling import PollEvent, PollStatus
from elmpoll.session import ReadySession, open_session
from elmpoll.transport.connector import DeviceConnector
from tests.fakes import CANARY_OK, DEVICE, FAST, FakeAdapter, RecordingOpener, SlowAdapter, make_channel, rpm_frame


class OpenSessionTests(unittest.TestCase):
    def _open(self, opener: RecordingOpener, settings=FAST):
        return open_session(DEVICE, settings, connector=DeviceConnector(settings, opener=opener))

    def test_connect_initialize_and_poll(self) -> None:
        opener = RecordingOpener(channel_factory=lambda: FakeAdapter({"010C": rpm_frame(812)}))
        setup = self._open(opener)

        self.assertTrue(setup.ok)
        self.assertIsNone(setup.error)
        session = setup.session
        self.assertIs(AdapterState.READY, session.init.state)

        loop = session.poller(on_event=lambda e: loop.cancel())
        loop.run()
        self.assertEqual(812, loop.last_value)

        session.close()
        self.assertFalse(session.is_open)
        session.close()
        self.assertEqual(1, opener.opened[0].close_count)

    def test_connect_failure(self) -> None:
        setup = self._open(RecordingOpener(failures=99))
        self.assertFalse(setup.ok)
        self.assertIsInstance(setup.error, ConnectError)
        self.assertIsNone(setup.init)

    def test_handshake_failure_releases_connection(self) -> None:
        opener = RecordingOpener(channel_factory=lambda: FakeAdapter({"0100": "NO DATA"}))
        setup = self._open(opener)
        self.assertFalse(setup.ok)
        self.assertIsInstance(setup.error, HandshakeError)
        self.assertIs(AdapterState.FAILED, setup.init.state)
        self.assertEqual(1, opener.opened[0].close_count)

    def test_second_protocol_then_three_readings(self) -> None:
        replies = {
            "0100": lambda a: CANARY_OK if a.protocol == "6" else "UNABLE TO CONNECT",
            "010C": [rpm_frame(750), rpm_frame(812), rpm_frame(790)],
        }
        opener = RecordingOpener(channel_factory=lambda: FakeAdapter(replies))
        setup = self._open(opener)
        self.assertEqual("6", setup.init.protocol.code)

        counters: List[int] = []
        values: List[int] = []

        def on_event(event: PollEvent) -> None:
            if event.status is PollStatus.VALUE:
                values.append(event.value)
                counters.append(loop.consecutive_errors)
            if len(values) == 3:
                loop.cancel()

        loop = setup.session.poller(on_event=on_event)
        loop.run()
        setup.session.close()

        self.assertEqual([750, 812, 790], values)
        self.assertEqual([0, 0, 0], counters)

    def test_all_candidates_fail_no_session(self) -> None:
        opener = RecordingOpener(channel_factory=lambda: FakeAdapter({"0100": "NO DATA"}))
        setup = self._open(opener)
        self.assertIsNone(setup.session)
        self.assertIsInstance(setup.error, HandshakeError)
        self.assertNotIn("010C", opener.opened[0].writes)

    def test_close_stops_running_pollers(self) -> None:
        opener = RecordingOpener(channel_factory=lambda: FakeAdapter({"010C": rpm_frame(800)}))
        setup = self._open(opener, FAST.with_overrides(poll_interval_s=30.0))
        with setup.session as session:
            loop = session.poller()
            thread = loop.start()
            self.assertIs(PollStatus.VALUE, loop.events.get(timeout=2.0).status)
        thread.join(2.0)
        self.assertFalse(thread.is_alive())
        self.assertTrue(loop.cancelled)
        self.assertFalse(opener.opened[0].is_open)


    def test_one_poller_at_a_time(self) -> None:
        opener = RecordingOpener(channel_factory=lambda: SlowAdapter({"010C": rpm_frame(800)}))
        session = self._open(opener).session

        first = session.poller()
        first.start()
        self.assertIs(PollStatus.VALUE, first.events.get(timeout=2.0).status)
        with self.assertRaises(RuntimeError):
            session.poller()

        first.cancel()
        second = session.poller()
        self.assertFalse(first.running)
        second.start()
        self.assertIs(PollStatus.VALUE, second.events.get(timeout=2.0).status)
        session.close()

        self.assertFalse(second.running)
        self.assertEqual(0, opener.opened[0].overlaps)

    def test_cancelled_unstarted_poller_does_not_block(self) -> None:
        session = self._open(RecordingOpener()).session
        session.poller().cancel()
        self.assertIsNotNone(session.poller())
        session.close()

class ReadySessionTests(unittest.TestCase):
    def test_requires_ready_adapter(self) -> None:
        channel = make_channel(FakeAdapter())
        with self.assertRaises(ValueError):
            ReadySession(channel.connection, channel, InitResult())


if __name__ == "__main__":
    unittest.main()
