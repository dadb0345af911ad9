from __future__ import annotations

import unittest
from unittest import mock

from elmpoll.elm.init import AdapterInitializer, AdapterState, extract_version, initialize_adapter
from elmpoll.elm.protocol import PROTOCOL_CANDIDATES, describe_protocol
from elmpoll.errors import HandshakeError
from tests.fakes import CANARY_OK, FakeAdapter, make_channel


def _init(adapter: FakeAdapter) -> AdapterInitializer:
    initializer = AdapterInitializer(make_channel(adapter))
    initializer.initialize()
    return initializer


class AdapterInitializerTests(unittest.TestCase):
    def test_happy_path(self) -> None:
        adapter = FakeAdapter()
        result = initialize_adapter(make_channel(adapter))

        self.assertTrue(result.ok)
        self.assertIs(AdapterState.READY, result.state)
        self.assertEqual("0", result.protocol.code)
        self.assertEqual("ISO 15765-4 CAN (11 bit, 500 kbaud)", result.protocol_name)
        self.assertEqual("ELM327 v1.5", result.elm_version)
        self.assertEqual(0xBE3FA813, result.supported_pids)
        self.assertIsNone(result.error)
        self.assertEqual(
            ["ATZ", "ATE0", "ATL0", "ATS0", "ATH0", "ATAT1", "ATST64", "ATSP0", "0100", "ATDPN"],
            adapter.writes,
        )
        self.assertEqual(
            [
                AdapterState.UNCONFIGURED,
                AdapterState.RESETTING,
                AdapterState.CONFIGURING,
                AdapterState.NEGOTIATING_PROTOCOL,
                AdapterState.READY,
            ],
            result.history,
        )

    def test_reset_is_retried_once(self) -> None:
        adapter = FakeAdapter({"ATZ": [None, "\rELM327 v2.1"]})
        initializer = _init(adapter)
        self.assertTrue(initializer.result.ok)
        self.assertEqual("ELM327 v2.1", initializer.result.elm_version)
        self.assertEqual(["ATZ", "ATZ", "ATE0"], adapter.writes[:3])

    def test_bare_banner_is_accepted(self) -> None:
        initializer = _init(FakeAdapter(banner="ELM327"))
        self.assertTrue(initializer.result.ok)
        self.assertEqual("ELM327", initializer.result.elm_version)

    def test_transport_error_during_configuration_does_not_abort(self) -> None:
        adapter = FakeAdapter({"ATE0": ValueError("bad fd")})
        initializer = _init(adapter)
        self.assertTrue(initializer.result.ok)
        self.assertEqual(2, adapter.writes.count("ATE0"))

    def test_missing_banner_fails(self) -> None:
        adapter = FakeAdapter({"ATZ": "OK"})
        initializer = _init(adapter)
        result = initializer.result
        self.assertFalse(result.ok)
        self.assertIs(AdapterState.FAILED, result.state)
        self.assertIsInstance(result.error, HandshakeError)
        self.assertEqual([AdapterState.UNCONFIGURED, AdapterState.RESETTING, AdapterState.FAILED], result.history)
        self.assertEqual(["ATZ", "ATZ"], adapter.writes)

    def test_falls_through_to_next_protocol(self) -> None:
        adapter = FakeAdapter({"0100": lambda a: CANARY_OK if a.protocol == "6" else "UNABLE TO CONNECT"})
        initializer = _init(adapter)
        self.assertTrue(initializer.result.ok)
        self.assertEqual("6", initializer.result.protocol.code)
        self.assertEqual(["ATSP0", "0100", "ATSP6", "0100", "ATDPN"], adapter.writes[7:])

    def test_no_protocol_answers(self) -> None:
        adapter = FakeAdapter({"0100": "NO DATA"})
        initializer = _init(adapter)
        self.assertIs(AdapterState.FAILED, initializer.state)
        self.assertIsInstance(initializer.result.error, HandshakeError)
        self.assertEqual(
            [c.select_command for c in PROTOCOL_CANDIDATES],
            [w for w in adapter.writes if w.startswith("ATSP")],
        )
        self.assertNotIn("ATDPN", adapter.writes)

    def test_unacknowledged_setting_does_not_abort(self) -> None:
        adapter = FakeAdapter({"ATL0": "?"})
        initializer = _init(adapter)
        self.assertTrue(initializer.result.ok)
        self.assertEqual(2, adapter.writes.count("ATL0"))

    def test_unexpected_exception_becomes_handshake_error(self) -> None:
        initializer = AdapterInitializer(make_channel(FakeAdapter()))
        with mock.patch.object(initializer, "_configure", side_effect=ValueError("boom")):
            initializer.initialize()
        self.assertIs(AdapterState.FAILED, initializer.state)
        self.assertIsInstance(initializer.result.error, HandshakeError)
        self.assertIn("boom", str(initializer.result.error))

    def test_unknown_protocol_report_uses_candidate_name(self) -> None:
        adapter = FakeAdapter({"ATDPN": "?"})
        initializer = _init(adapter)
        self.assertTrue(initializer.result.ok)
        self.assertEqual("Automatic", initializer.result.protocol_name)

    def test_initialize_runs_once(self) -> None:
        adapter = FakeAdapter()
        initializer = AdapterInitializer(make_channel(adapter))
        first = initializer.initialize()
        count = len(adapter.writes)
        self.assertIs(first, initializer.initialize())
        self.assertEqual(count, len(adapter.writes))

    def test_states_only_move_forward(self) -> None:
        initializer = _init(FakeAdapter())
        with self.assertRaises(HandshakeError):
            initializer._enter(AdapterState.RESETTING)


class HelperTests(unittest.TestCase):
    def test_extract_version(self) -> None:
        self.assertEqual("ELM327 v1.5", extract_version("ATZ\nELM327 v1.5"))
        self.assertEqual("elm327 v2.1", extract_version("elm327 v2.1"))
        self.assertEqual("ELM327", extract_version("ELM327"))
        self.assertEqual("ELM327", extract_version("ATZ\nELM327\nOK"))
        self.assertIsNone(extract_version("OK"))
        self.assertIsNone(extract_version(""))

    def test_describe_protocol(self) -> None:
        self.assertEqual(
            "ISO 15765-4 CAN (29 bit, 500 kbaud)",
            describe_protocol(make_channel(FakeAdapter({"ATDPN": "7"}))),
        )
        self.assertIsNone(describe_protocol(make_channel(FakeAdapter({"ATDPN": "NO DATA"}))))


if __name__ == "__main__":
    unittest.main()
