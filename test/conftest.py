"""pytest configuration and fixtures for comlink tests.

Provides:
- MockSerial: pyserial stand-in with injectable reads, failures and write timeouts
- MockSerialFactory: serial factory recording every opened MockSerial
- make_com: builds ComPort instances on mock devices and disposes them
- wait_for: polling helper for listener-driven assertions
- socat PTY pair fixture for integration tests
- Markers for unit vs integration tests
"""

import re
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import serial

from com.port import ComPort
from common.configuration import PortConfiguration, TimeoutSettings


class MockSerial:
    """Mock pyserial object for unit testing.

    read() blocks until data is injected, the port is closed or cancelled,
    or the configured timeout elapses, like a real port would.
    """

    def __init__(self, port: str, **settings: Any) -> None:
        self.port = port
        self.settings = settings
        self.timeout: float | None = settings.get("timeout")
        self.write_timeout: float | None = settings.get("write_timeout")
        self.is_open = True
        self.written = bytearray()
        self.write_limit: int | None = None
        self.write_error: Exception | None = None
        self.write_delay_s = 0.0
        self.write_started = threading.Event()
        self.read_calls = 0
        self._rx = bytearray()
        self._read_error: Exception | None = None
        self._cancelled = False
        self._cond = threading.Condition()

    def inject(self, data: bytes) -> None:
        """Inject data as if received from the device."""
        with self._cond:
            self._rx.extend(data)
            self._cond.notify_all()

    def fail_reads(self, error: Exception | None = None) -> None:
        """Make the next read raise, as when the device is unplugged."""
        with self._cond:
            self._read_error = error or serial.SerialException("device reports readiness to read but returned no data")
            self._cond.notify_all()

    @property
    def in_waiting(self) -> int:
        with self._cond:
            return len(self._rx)

    def read(self, size: int = 1, /) -> bytes:
        deadline = time.monotonic() + (self.timeout or 0)
        with self._cond:
            self.read_calls += 1
            while not self._rx and self._read_error is None and self.is_open and not self._cancelled:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._cond.wait(remaining)
            self._cancelled = False
            if self._read_error is not None:
                raise self._read_error
            if not self.is_open:
                raise serial.SerialException("Attempting to use a port that is not open")
            data = bytes(self._rx[:size])
            del self._rx[:size]
            return data

    def write(self, data: bytes, /) -> int:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")
        self.write_started.set()
        if self.write_delay_s:
            time.sleep(self.write_delay_s)
        if self.write_error is not None:
            raise self.write_error
        if self.write_limit is not None and len(data) > self.write_limit:
            self.written.extend(data[: self.write_limit])
            raise serial.SerialTimeoutException("Write timeout")
        self.written.extend(data)
        return len(data)

    def cancel_read(self) -> None:
        with self._cond:
            self._cancelled = True
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self.is_open = False
            self._cond.notify_all()


class MockSerialFactory:
    """Serial factory handing out MockSerial objects.

    Devices listed in unavailable fail to open; reject(settings) can refuse
    particular line settings (e.g. an unsupported baud rate).
    """

    def __init__(self) -> None:
        self.opened: list[MockSerial] = []
        self.unavailable: set[str] = set()
        self.reject: Callable[[dict[str, Any]], bool] | None = None
        self._lock = threading.Lock()

    def __call__(self, device: str, **settings: Any) -> MockSerial:
        if device in self.unavailable:
            raise serial.SerialException(f"could not open port {device}: No such file or directory")
        if self.reject is not None and self.reject(settings):
            raise ValueError(f"Invalid settings for {device}: {settings}")
        port = MockSerial(device, **settings)
        with self._lock:
            self.opened.append(port)
        return port

    @property
    def last(self) -> MockSerial:
        with self._lock:
            return self.opened[-1]


def mock_device(num: int) -> str:
    return f"mock{num}"


def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll predicate until it returns True or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test (requires socat)")


@pytest.fixture
def factory() -> MockSerialFactory:
    return MockSerialFactory()


@pytest.fixture
def make_com(factory: MockSerialFactory) -> Generator[Callable[..., ComPort], None, None]:
    """Build ComPort instances on mock devices; all are disposed afterwards."""
    created: list[ComPort] = []

    def make(port_number: int = 1, read_timeout_ms: int = 20, write_timeout_ms: int = 100, **fields: Any) -> ComPort:
        com = ComPort(
            PortConfiguration(port_number=port_number, **fields),
            timeouts=TimeoutSettings(read_timeout_ms=read_timeout_ms, write_timeout_ms=write_timeout_ms),
            serial_factory=factory,
            resolver=mock_device,
        )
        created.append(com)
        return com

    yield make

    for com in created:
        com.dispose()


@pytest.fixture
def pty_pair() -> Generator[tuple[str, str, subprocess.Popen[str]], None, None]:
    """Create a connected PTY pair using socat.

    Yields (pty1, pty2, socat_process).

    The PTYs are connected: data written to pty1 appears on pty2 and vice versa.
    This enables testing serial communication without real hardware.

    Requires: socat installed and Linux platform.
    """
    if sys.platform != "linux":
        pytest.skip("socat PTY fixture requires Linux")

    # Check if socat is available
    try:
        subprocess.run(["which", "socat"], check=True, capture_output=True)
    except (subprocess.CalledProcessError, FileNotFoundError):
        pytest.skip("socat not installed")

    socat = subprocess.Popen(
        ["socat", "-d", "-d", "pty,raw,echo=0", "pty,raw,echo=0"],
        stderr=subprocess.PIPE,
        text=True,
    )

    # Parse PTY names from socat stderr output
    ptys: list[str] = []
    try:
        for _ in range(20):  # Give socat time to start
            if socat.poll() is not None:
                raise RuntimeError(f"socat exited early with code {socat.returncode}")

            assert socat.stderr is not None
            line = socat.stderr.readline()
            if "PTY is" in line:
                match = re.search(r"/dev/pts/\d+", line)
                if match:
                    ptys.append(match.group())
            if len(ptys) == 2:
                break
            time.sleep(0.05)
        else:
            raise RuntimeError(f"Failed to get PTY pair from socat, got: {ptys}")

        yield ptys[0], ptys[1], socat

    finally:
        if socat.poll() is None:
            socat.terminate()
            socat.wait(timeout=5)
        if socat.stderr:
            socat.stderr.close()


@pytest.fixture
def script_dir() -> Path:
    """Return path to the repository root."""
    return Path(__file__).parent.parent


@pytest.fixture
def comtool_path(script_dir: Path) -> Path:
    """Return path to comtool.py."""
    return script_dir / "comtool.py"


@pytest.fixture
def wait() -> Callable[..., bool]:
    """Return the wait_for polling helper."""
    return wait_for
