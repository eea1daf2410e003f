"""In-memory test double for comlink.

FakeComPort implements the same contract as ComPort without any serial
device, so code written against common.protocol.Com can be exercised in
tests. Arrivals are simulated with inject(), device loss with fault(), and
a missing device with fail_open / unavailable_ports.
"""

import logging
import threading
from typing import Any

from common.configuration import PortConfiguration, TimeoutSettings, check_timeout, validate_field
from common.errors import ResourceDisposedError, ValidationError
from common.events import EventHook
from common.protocol import ConnectionState, Parity, StopBits
from port.buffer import ReceiveBuffer

logger = logging.getLogger(__name__)


class FakeComPort:
    """Com implementation backed by memory."""

    def __init__(
        self,
        configuration: PortConfiguration | None = None,
        timeouts: TimeoutSettings | None = None,
        tag: Any = None,
    ) -> None:
        self.tag = tag
        self.data_received = EventHook("data_received")
        self.open_state_changed = EventHook("open_state_changed")
        self.sent: list[bytes] = []
        self.fail_open = False
        self.fail_send = False
        self.unavailable_ports: set[int] = set()
        self.open_count = 0

        self._configuration = configuration or PortConfiguration(port_number=1)
        self._timeouts = timeouts or TimeoutSettings()
        self._state = ConnectionState.CLOSED
        self._buffer = ReceiveBuffer()
        self._disposed = False
        self._lock = threading.RLock()

    def _check_disposed(self) -> None:
        if self._disposed:
            raise ResourceDisposedError("Port has been disposed")

    def _set_state(self, state: ConnectionState) -> None:
        old, self._state = self._state, state
        if (old is ConnectionState.OPEN) != (state is ConnectionState.OPEN):
            self.open_state_changed.emit(old, state)

    def _try_open(self, configuration: PortConfiguration) -> bool:
        if self.fail_open or configuration.port_number in self.unavailable_ports:
            self._set_state(ConnectionState.FAULTED)
            return False
        self._configuration = configuration
        self.open_count += 1
        self._set_state(ConnectionState.OPEN)
        return True

    # Properties

    @property
    def read_timeout(self) -> int:
        self._check_disposed()
        return self._timeouts.read_timeout_ms

    @read_timeout.setter
    def read_timeout(self, value: int) -> None:
        self._check_disposed()
        self._timeouts.read_timeout_ms = check_timeout(value)

    @property
    def write_timeout(self) -> int:
        self._check_disposed()
        return self._timeouts.write_timeout_ms

    @write_timeout.setter
    def write_timeout(self, value: int) -> None:
        self._check_disposed()
        self._timeouts.write_timeout_ms = check_timeout(value)

    @property
    def is_open(self) -> bool:
        self._check_disposed()
        return self._state is ConnectionState.OPEN

    @property
    def state(self) -> ConnectionState:
        self._check_disposed()
        return self._state

    @property
    def configuration(self) -> PortConfiguration:
        self._check_disposed()
        return self._configuration

    # Configuration

    def _change(self, name: str, value: Any) -> bool:
        self._check_disposed()
        try:
            value = validate_field(name, value)
        except ValidationError as e:
            logger.debug(f"Fake port: rejected {name}: {e}")
            return False
        with self._lock:
            target = self._configuration.with_field(name, value)
            if target == self._configuration:
                return True
            if self._state is ConnectionState.CLOSED:
                self._configuration = target
                return True
            self._set_state(ConnectionState.CLOSED)
            return self._try_open(target)

    def change_com_num(self, new_num: int) -> bool:
        return self._change("port_number", new_num)

    def change_com_baud_rate(self, new_baud_rate: int) -> bool:
        return self._change("baud_rate", new_baud_rate)

    def change_com_parity(self, new_parity: Parity) -> bool:
        return self._change("parity", new_parity)

    def change_com_data_bits(self, new_data_bits: int) -> bool:
        return self._change("data_bits", new_data_bits)

    def change_com_stop_bits(self, new_stop_bits: StopBits) -> bool:
        return self._change("stop_bits", new_stop_bits)

    def get_num(self) -> int:
        return self.configuration.port_number

    def get_baud_rate(self) -> int:
        return self.configuration.baud_rate

    def get_parity(self) -> Parity:
        return self.configuration.parity

    def get_data_bits(self) -> int:
        return self.configuration.data_bits

    def get_stop_bits(self) -> StopBits:
        return self.configuration.stop_bits

    # Data

    def get_read_bytes(self) -> bytes:
        self._check_disposed()
        return self._buffer.drain()

    def send_message(self, message: bytes) -> bool:
        self._check_disposed()
        with self._lock:
            if self._state is not ConnectionState.OPEN or self.fail_send:
                return False
            if not isinstance(message, (bytes, bytearray, memoryview)):
                return False
            self.sent.append(bytes(message))
            return True

    # Lifecycle

    def close(self) -> None:
        self._check_disposed()
        with self._lock:
            self._set_state(ConnectionState.CLOSED)

    def resume(self) -> None:
        self._check_disposed()
        with self._lock:
            if self._state is not ConnectionState.OPEN:
                self._try_open(self._configuration)

    def reset_connection(self) -> None:
        self._check_disposed()
        with self._lock:
            self._set_state(ConnectionState.CLOSED)
            self._try_open(self._configuration)

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._set_state(ConnectionState.CLOSED)
            self._buffer.clear()
            self._disposed = True

    def __enter__(self) -> "FakeComPort":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    # Simulation

    def inject(self, data: bytes) -> bool:
        """Simulate bytes arriving from the device. Ignored unless open."""
        self._check_disposed()
        if self._state is not ConnectionState.OPEN:
            return False
        self.data_received.emit(self._buffer.append(data))
        return True

    def fault(self) -> None:
        """Simulate a passive transport failure."""
        self._check_disposed()
        with self._lock:
            if self._state is ConnectionState.OPEN:
                self._set_state(ConnectionState.FAULTED)
