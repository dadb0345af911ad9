from __future__ import annotations

import unittest

from elmpoll.pids import (
    PID_ENGINE_RPM,
    decode_value,
    get_pid_spec,
    parse_pid,
    pid_width,
    request_command,
    supported_pids,
)


class PidTests(unittest.TestCase):
    def test_request_command(self) -> None:
        self.assertEqual("010C", request_command(PID_ENGINE_RPM))
        self.assertEqual("0100", request_command(0x00))

    def test_parse_pid(self) -> None:
        self.assertEqual(0x0C, parse_pid("0C"))
        self.assertEqual(0x0C, parse_pid("c"))
        self.assertEqual(0x0D, parse_pid("0x0d"))
        for bad in ("", "123", "zz"):
            with self.assertRaises(ValueError):
                parse_pid(bad)

    def test_rpm_formula(self) -> None:
        self.assertEqual(1726, decode_value(0x0C, (0x1A, 0xF8)))
        self.assertEqual(0, decode_value(0x0C, (0x00, 0x03)))
        self.assertEqual(16383, decode_value(0x0C, (0xFF, 0xFF)))

    def test_short_data_returns_none(self) -> None:
        self.assertIsNone(decode_value(0x0C, (0x1A,)))

    def test_unknown_pid_uses_first_byte(self) -> None:
        spec = get_pid_spec(0x05)
        self.assertEqual(1, pid_width(0x05))
        self.assertEqual("PID 05", spec.name)
        self.assertEqual(0x7B, decode_value(0x05, (0x7B, 0x10)))

    def test_supported_pids(self) -> None:
        pids = supported_pids(0xBE3FA813)
        self.assertEqual([0x01, 0x03, 0x04, 0x05, 0x06, 0x07], pids[:6])
        self.assertIn(0x0C, pids)
        self.assertIn(0x0D, pids)
        self.assertNotIn(0x02, pids)
        self.assertEqual([], supported_pids(0))


if __name__ == "__main__":
    unittest.main()
