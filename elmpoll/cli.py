from __future__ import annotations

import argparse
import logging
import queue
import signal
import sys
from typing import List, Optional

from . import __version__
from .config import TRANSPORTS, device_address, device_transport, load_settings, rfcomm_channel, service_uuid
from .errors import ConnectError
from .logger import ReadingLogger
from .pids import PID_ENGINE_RPM, PID_VEHICLE_SPEED, get_pid_spec, parse_pid, supported_pids
from .polling import PollEvent, PollingLoop, PollStatus
from .rawlog import RawLogger
from .session import open_session
from .transport.device import DeviceReference
from .transport.rfcomm import discover_service_ids
from .transport.serial_port import find_ports

EXIT_OK = 0
EXIT_SETUP_FAILED = 1
EXIT_USAGE = 2
EXIT_UNRESPONSIVE = 3

logger = logging.getLogger(__name__)

_LABELS = {PID_ENGINE_RPM: "RPM", PID_VEHICLE_SPEED: "Speed"}


def render_event(event: PollEvent) -> str:
    label = _LABELS.get(event.pid) or get_pid_spec(event.pid).name
    if event.status is PollStatus.VALUE:
        unit = get_pid_spec(event.pid).unit
        suffix = "" if event.pid == PID_ENGINE_RPM or not unit else f" {unit}"
        return f"{label}: {event.value}{suffix}"
    if event.status is PollStatus.WAITING:
        return f"{label}: Waiting for data..."
    if event.status is PollStatus.UNRESPONSIVE:
        return "Connection problems"
    if event.error is not None:
        return f"Stopped: {event.error}"
    return "Stopped"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="elmpoll",
        description="Poll a Mode 01 PID (engine RPM by default) from an ELM327 adapter",
    )
    parser.add_argument("--address", default=device_address(), help="Bluetooth MAC or serial device path")
    parser.add_argument("--name", default=None, help="Display name for the adapter")
    parser.add_argument("--transport", choices=TRANSPORTS, default=device_transport())
    parser.add_argument("--service-uuid", default=service_uuid(), help="RFCOMM service UUID (default: SPP)")
    parser.add_argument("--channel", type=int, default=rfcomm_channel(), help="Fixed RFCOMM channel, skips SDP")
    parser.add_argument("--pid", default="0C", help="Mode 01 PID in hex (default: 0C, engine RPM)")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between polls")
    parser.add_argument("--threshold", type=int, default=None, help="Consecutive failures before giving up")
    parser.add_argument("--retries", type=int, default=None, help="Secure connect attempts")
    parser.add_argument("--log", choices=["csv", "json"], default=None, help="Save readings to a session file")
    parser.add_argument("--log-dir", default="logs")
    parser.add_argument("--raw-log", default=None, metavar="PATH", help="Append TX/RX traffic to PATH")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _usage_problem(args: argparse.Namespace) -> Optional[str]:
    if args.retries is not None and args.retries < 1:
        return "--retries must be at least 1"
    if args.threshold is not None and args.threshold < 1:
        return "--threshold must be at least 1"
    if args.interval is not None and args.interval < 0:
        return "--interval cannot be negative"
    return None


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _resolve_device(args: argparse.Namespace) -> Optional[DeviceReference]:
    address = args.address
    if not address and args.transport == "serial":
        ports = find_ports()
        address = ports[0] if ports else None
    if not address:
        return None

    service_ids: List[str] = []
    if args.transport == "rfcomm" and not args.service_uuid and args.channel is None:
        try:
            service_ids = discover_service_ids(address)
        except OSError as exc:
            logger.info("Service discovery skipped: %s", exc)
    return DeviceReference(
        address=address,
        name=args.name,
        service_ids=service_ids,
        transport=args.transport,
        channel=args.channel,
    )


def consume(loop: PollingLoop, out=None) -> PollEvent:
    """Print events until the loop reports a terminal one."""
    out = out or sys.stdout
    while True:
        try:
            event = loop.events.get(timeout=0.5)
        except queue.Empty:
            continue
        print(render_event(event), file=out, flush=True)
        if event.terminal:
            return event


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        pid = parse_pid(args.pid)
    except ValueError as exc:
        print(f"❌ {exc}", file=sys.stderr)
        return EXIT_USAGE

    problem = _usage_problem(args)
    if problem:
        print(f"❌ {problem}", file=sys.stderr)
        return EXIT_USAGE

    device = _resolve_device(args)
    if device is None:
        print("❌ No adapter address. Pass --address or set ELMPOLL_ADDRESS.", file=sys.stderr)
        return EXIT_USAGE

    settings = load_settings().with_overrides(
        poll_interval_s=args.interval,
        error_threshold=args.threshold,
        connect_retries=args.retries,
    )
    raw_logger = RawLogger(args.raw_log) if args.raw_log else None
    if raw_logger:
        raw_logger.note(f"session {device.label}")

    print(f"🔌 Connecting to {device.label}...")
    setup = open_session(device, settings, preferred_service_id=args.service_uuid, raw_logger=raw_logger)
    if not setup.ok:
        if isinstance(setup.error, ConnectError):
            print(f"❌ OBD Connection Failed: {setup.error}")
        else:
            print(f"❌ Failed to initialize OBD adapter: {setup.error}")
        return EXIT_SETUP_FAILED

    session = setup.session
    print(f"✅ Connected: {session.init.elm_version or 'ELM327'} / {session.init.protocol_name}")
    bitmap = session.init.supported_pids
    if bitmap is not None and 0 < pid <= 0x20 and pid not in supported_pids(bitmap):
        print(f"⚠️  ECU does not list PID {pid:02X} as supported; polling anyway")

    reading_log = None
    if args.log:
        reading_log = ReadingLogger(args.log_dir)
        log_file = reading_log.start_session(format=args.log)
        print(f"📝 Logging to: {log_file}")

    loop = session.poller(pid, on_event=reading_log.log_event if reading_log else None)
    original_sigint = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, lambda sig, frame: loop.cancel())

    try:
        loop.start()
        final = consume(loop)
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        session.close()
        if reading_log:
            summary = reading_log.end_session()
            print(f"📊 {summary.get('reading_count', 0)} readings saved to {summary.get('file', 'N/A')}")

    return EXIT_UNRESPONSIVE if final.status is PollStatus.UNRESPONSIVE else EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
