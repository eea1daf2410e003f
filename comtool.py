#!/usr/bin/env python3
"""Command-line tool for comlink ports."""

import argparse
import logging
import os
import pty
import random
import signal
import sys
import threading
import time
from dataclasses import dataclass
from types import FrameType

from com.monitor import ReconnectMonitor
from com.port import ComPort
from common.configuration import PortConfiguration, TimeoutSettings
from common.device import list_ports
from common.protocol import TRACE, Parity, StopBits
from common.settings import (
    DEFAULT_BAUDRATE,
    DEFAULT_READ_TIMEOUT_MS,
    DEFAULT_WRITE_TIMEOUT_MS,
    RESUME_INTERVAL_S,
)

logger = logging.getLogger(__name__)

DEFAULT_LOOPBACK_COUNT = 20
LOOPBACK_ECHO_TIMEOUT_S = 2.0
MIN_PAYLOAD_SIZE = 16
MAX_PAYLOAD_SIZE = 256


@dataclass
class LatencyStats:
    """Computed latency statistics in milliseconds."""

    count: int
    min_ms: float
    max_ms: float
    avg_ms: float
    p50_ms: float
    p95_ms: float


def compute_latency_stats(rtt_samples: list[float]) -> LatencyStats | None:
    """Compute latency statistics from RTT samples (in seconds).

    Returns None if no samples available.
    """
    if not rtt_samples:
        return None

    count = len(rtt_samples)
    samples_ms = sorted(s * 1000 for s in rtt_samples)

    def percentile(sorted_data: list[float], p: float) -> float:
        idx = int(p / 100 * (len(sorted_data) - 1))
        return sorted_data[idx]

    return LatencyStats(
        count=count,
        min_ms=samples_ms[0],
        max_ms=samples_ms[-1],
        avg_ms=sum(samples_ms) / count,
        p50_ms=percentile(samples_ms, 50),
        p95_ms=percentile(samples_ms, 95),
    )


def parse_payload(text: str, as_hex: bool) -> bytes:
    """Parse a payload argument: hex digits (spaces allowed) or UTF-8 text."""
    if as_hex:
        return bytes.fromhex(text)
    return text.encode("utf-8")


class LoopbackEcho:
    """Virtual loopback device using a pty pair.

    Everything written to the slave side is echoed back by a thread reading
    the master side.
    """

    def __init__(self) -> None:
        if sys.platform not in ("linux", "darwin"):
            raise RuntimeError(
                f"Loopback mode only supported on Linux/macOS, not {sys.platform}"
            )
        self._master_fd, slave_fd = pty.openpty()
        self.device = os.ttyname(slave_fd)
        os.close(slave_fd)
        self._running = True
        self._echo_thread = threading.Thread(target=self._echo_loop, daemon=True)
        self._echo_thread.start()
        logger.info(f"Loopback pty: {self.device}")

    def _echo_loop(self) -> None:
        while self._running:
            try:
                data = os.read(self._master_fd, 4096)
                if data:
                    os.write(self._master_fd, data)
            except OSError:
                break

    def close(self) -> None:
        self._running = False
        os.close(self._master_fd)
        logger.info("Closed loopback device")


def _configuration_from_args(args: argparse.Namespace, port_number: int) -> PortConfiguration:
    return PortConfiguration(
        port_number=port_number,
        baud_rate=args.baudrate,
        parity=Parity(args.parity),
        data_bits=args.data_bits,
        stop_bits=StopBits(float(args.stop_bits)),
    )


def _timeouts_from_args(args: argparse.Namespace) -> TimeoutSettings:
    return TimeoutSettings(read_timeout_ms=args.read_timeout, write_timeout_ms=args.write_timeout)


def _open_port(args: argparse.Namespace) -> ComPort:
    return ComPort(
        _configuration_from_args(args, args.num),
        timeouts=_timeouts_from_args(args),
        port_template=args.template,
    )


def cmd_list(args: argparse.Namespace) -> int:
    ports = list_ports()
    if not ports:
        print("No serial ports found")
        return 0
    for info in ports:
        print(f"{info.device}\t{info.description}\t{info.hwid}")
    return 0


def cmd_monitor(args: argparse.Namespace) -> int:
    """Print received bytes as hex until duration expires or SIGINT."""
    running = True

    def handler(_sig: int, _frame: FrameType | None) -> None:
        nonlocal running
        running = False

    signal.signal(signal.SIGINT, handler)

    with _open_port(args) as com:
        com.open_state_changed.subscribe(
            lambda old, new: logger.info(f"Port {com.get_num()}: {old.value} -> {new.value}")
        )
        arrived = threading.Event()
        com.data_received.subscribe(lambda _count: arrived.set())

        start_time = time.monotonic()
        with ReconnectMonitor(com, args.resume_interval):
            while running and (args.duration == 0 or (time.monotonic() - start_time) < args.duration):
                if not arrived.wait(0.2):
                    continue
                arrived.clear()
                data = com.get_read_bytes()
                if data:
                    print(data.hex(" "), flush=True)
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    try:
        payload = parse_payload(args.data, args.hex)
    except ValueError as e:
        logger.error(f"Invalid payload: {e}")
        return 2

    with _open_port(args) as com:
        com.resume()
        if not com.is_open:
            logger.error(f"Cannot open port {args.num}")
            return 1
        if not com.send_message(payload):
            logger.error(f"Send failed ({len(payload)} bytes)")
            return 1
        print(f"sent {len(payload)} bytes")
        if args.wait > 0:
            time.sleep(args.wait)
            reply = com.get_read_bytes()
            print(f"received {len(reply)} bytes: {reply.hex(' ')}")
    return 0


def run_loopback(com: ComPort, count: int) -> tuple[int, int, list[float]]:
    """Send count random payloads and wait for each echo.

    Returns (sent, echoed, rtt_samples).
    """
    sent, echoed = 0, 0
    rtt_samples: list[float] = []
    arrived = threading.Event()
    com.data_received.subscribe(lambda _count: arrived.set())

    for i in range(count):
        payload = random.randbytes(random.randint(MIN_PAYLOAD_SIZE, MAX_PAYLOAD_SIZE))
        com.get_read_bytes()
        msg_start = time.monotonic()
        if not com.send_message(payload):
            logger.warning(f"Send {i + 1}/{count} failed")
            continue
        sent += 1

        received = bytearray()
        deadline = msg_start + LOOPBACK_ECHO_TIMEOUT_S
        while len(received) < len(payload) and time.monotonic() < deadline:
            arrived.wait(max(0.0, deadline - time.monotonic()))
            arrived.clear()
            received += com.get_read_bytes()

        if bytes(received) == payload:
            echoed += 1
            rtt_samples.append(time.monotonic() - msg_start)
            logger.log(TRACE, f"Echo {i + 1}/{count} ok ({len(payload)} bytes)")
        else:
            logger.warning(f"Echo {i + 1}/{count} mismatch: got {len(received)}/{len(payload)} bytes")
    return sent, echoed, rtt_samples


def cmd_loopback(args: argparse.Namespace) -> int:
    """Run the full stack against a pty echo device."""
    echo = LoopbackEcho()
    try:
        with ComPort(
            _configuration_from_args(args, 0),
            timeouts=_timeouts_from_args(args),
            resolver=lambda _num: echo.device,
        ) as com:
            com.resume()
            if not com.is_open:
                logger.error(f"Cannot open {echo.device}")
                return 1
            sent, echoed, rtt_samples = run_loopback(com, args.count)
            com.reset_connection()
            after_reset = com.send_message(b"\x00") and com.is_open
    finally:
        echo.close()

    print(f"sent={sent} echoed={echoed} reset={'ok' if after_reset else 'failed'}")
    latency = compute_latency_stats(rtt_samples)
    if latency:
        print(
            f"latency: avg={latency.avg_ms:.2f}ms min={latency.min_ms:.2f}ms "
            f"max={latency.max_ms:.2f}ms p50={latency.p50_ms:.2f}ms p95={latency.p95_ms:.2f}ms"
        )
    return 0 if echoed == args.count and after_reset else 1


def _add_line_args(parser: argparse.ArgumentParser) -> None:
    """Add line setting and timeout arguments to a parser."""
    parser.add_argument(
        "-b",
        "--baudrate",
        type=int,
        default=DEFAULT_BAUDRATE,
        help=f"Baud rate (default: {DEFAULT_BAUDRATE})",
    )
    parser.add_argument(
        "-p",
        "--parity",
        choices=[p.value for p in Parity],
        default=Parity.NONE.value,
        help="Parity (default: N)",
    )
    parser.add_argument(
        "--data-bits",
        type=int,
        choices=[5, 6, 7, 8],
        default=8,
        help="Data bits (default: 8)",
    )
    parser.add_argument(
        "--stop-bits",
        choices=["1", "1.5", "2"],
        default="1",
        help="Stop bits (default: 1)",
    )
    parser.add_argument(
        "--read-timeout",
        type=int,
        default=DEFAULT_READ_TIMEOUT_MS,
        help=f"Read timeout in ms (default: {DEFAULT_READ_TIMEOUT_MS})",
    )
    parser.add_argument(
        "--write-timeout",
        type=int,
        default=DEFAULT_WRITE_TIMEOUT_MS,
        help=f"Write timeout in ms (default: {DEFAULT_WRITE_TIMEOUT_MS})",
    )


def _add_port_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-n", "--num", type=int, required=True, help="Port number")
    parser.add_argument(
        "--template",
        type=str,
        default=None,
        help="Device name template, e.g. /dev/ttyUSB{num} (default: $COM_PORT_TEMPLATE)",
    )
    _add_line_args(parser)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Resilient serial port tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s list                                   List serial ports
  %(prog)s monitor -n 3 -b 115200                 Print bytes from port 3, reconnecting
  %(prog)s send -n 0 --template /dev/ttyUSB{num} --hex "01 03 00 00"
  %(prog)s loopback                               Exercise the stack on a pty echo device
""",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for TRACE)")
    subparsers = parser.add_subparsers(dest="mode")

    subparsers.add_parser("list", help="List serial ports")

    monitor_parser = subparsers.add_parser("monitor", help="Print received bytes as hex")
    _add_port_args(monitor_parser)
    monitor_parser.add_argument(
        "-t",
        "--duration",
        type=int,
        default=0,
        help="Duration in seconds, 0 = indefinite (default: 0)",
    )
    monitor_parser.add_argument(
        "--resume-interval",
        type=float,
        default=RESUME_INTERVAL_S,
        help=f"Seconds between reconnect attempts (default: {RESUME_INTERVAL_S})",
    )

    send_parser = subparsers.add_parser("send", help="Send one message")
    _add_port_args(send_parser)
    send_parser.add_argument("data", type=str, help="Payload (text, or hex with --hex)")
    send_parser.add_argument("--hex", action="store_true", help="Payload is hex")
    send_parser.add_argument(
        "-w",
        "--wait",
        type=float,
        default=0.0,
        help="Seconds to wait for a reply after sending (default: 0)",
    )

    loopback_parser = subparsers.add_parser("loopback", help="Run loopback test using pty")
    _add_line_args(loopback_parser)
    loopback_parser.add_argument(
        "-c",
        "--count",
        type=int,
        default=DEFAULT_LOOPBACK_COUNT,
        help=f"Number of payloads (default: {DEFAULT_LOOPBACK_COUNT})",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = {0: logging.INFO, 1: logging.DEBUG}.get(args.verbose, TRACE)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    commands = {
        "list": cmd_list,
        "monitor": cmd_monitor,
        "send": cmd_send,
        "loopback": cmd_loopback,
    }
    if args.mode not in commands:
        parser.print_help()
        return 2

    try:
        return commands[args.mode](args)
    except ValueError as e:
        logger.error(f"Invalid port settings: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
