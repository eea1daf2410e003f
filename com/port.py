"""Managed COM port for comlink.

ComPort is the public face of one serial port. It composes the
ConnectionStateMachine (lifecycle, listener, buffer), the
ConfigurationManager (line settings) and the MessageExchanger (writes).

Example:
    with ComPort(PortConfiguration(port_number=3, baud_rate=115200)) as com:
        com.open_state_changed.subscribe(lambda old, new: print(old, new))
        com.resume()
        if com.send_message(b"ping"):
            time.sleep(0.1)
            print(com.get_read_bytes())
"""

import logging
from functools import partial
from typing import Any

from com.configuration import ConfigurationManager
from com.exchange import MessageExchanger
from common.configuration import PortConfiguration, TimeoutSettings, check_timeout
from common.events import EventHook
from common.protocol import ConnectionState, Parity, PortResolver, SerialFactory, StopBits
from common.settings import device_for
from port.state import ConnectionStateMachine

logger = logging.getLogger(__name__)


class ComPort:
    """A serial port kept open across transient failures.

    The port starts CLOSED; resume() opens it with the configured settings.
    Every method raises ResourceDisposedError after dispose().
    """

    def __init__(
        self,
        configuration: PortConfiguration,
        timeouts: TimeoutSettings | None = None,
        serial_factory: SerialFactory | None = None,
        resolver: PortResolver | None = None,
        port_template: str | None = None,
        tag: Any = None,
    ) -> None:
        if resolver is None and port_template is not None:
            resolver = partial(device_for, template=port_template)
        self._machine = ConnectionStateMachine(configuration, timeouts, serial_factory, resolver)
        self._configuration = ConfigurationManager(self._machine)
        self._exchanger = MessageExchanger(self._machine)
        self.tag = tag

    def __enter__(self) -> "ComPort":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    def __repr__(self) -> str:
        if self._machine.disposed:
            return "<ComPort disposed>"
        status = self._machine.status
        return f"<ComPort {status.configuration.port_number} {status.configuration.describe()} {status.state.value}>"

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def read_timeout(self) -> int:
        """Read timeout in milliseconds, applied from the next read."""
        self._machine.check_disposed()
        return self._machine.timeouts.read_timeout_ms

    @read_timeout.setter
    def read_timeout(self, value: int) -> None:
        self._machine.check_disposed()
        self._machine.timeouts.read_timeout_ms = check_timeout(value)

    @property
    def write_timeout(self) -> int:
        """Write timeout in milliseconds, applied from the next write."""
        self._machine.check_disposed()
        return self._machine.timeouts.write_timeout_ms

    @write_timeout.setter
    def write_timeout(self, value: int) -> None:
        self._machine.check_disposed()
        self._machine.timeouts.write_timeout_ms = check_timeout(value)

    @property
    def is_open(self) -> bool:
        return self._machine.is_open

    @property
    def state(self) -> ConnectionState:
        return self._machine.state

    @property
    def configuration(self) -> PortConfiguration:
        return self._machine.configuration

    @property
    def generation(self) -> int:
        """Number of successful opens so far."""
        return self._machine.status.generation

    @property
    def data_received(self) -> EventHook:
        """Raised with the number of buffered bytes after each arrival."""
        return self._machine.data_received

    @property
    def open_state_changed(self) -> EventHook:
        """Raised with (old_state, new_state) whenever is_open flips."""
        return self._machine.open_state_changed

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def change_com_num(self, new_num: int) -> bool:
        return self._configuration.change_com_num(new_num)

    def change_com_baud_rate(self, new_baud_rate: int) -> bool:
        return self._configuration.change_com_baud_rate(new_baud_rate)

    def change_com_parity(self, new_parity: Parity) -> bool:
        return self._configuration.change_com_parity(new_parity)

    def change_com_data_bits(self, new_data_bits: int) -> bool:
        return self._configuration.change_com_data_bits(new_data_bits)

    def change_com_stop_bits(self, new_stop_bits: StopBits) -> bool:
        return self._configuration.change_com_stop_bits(new_stop_bits)

    def get_num(self) -> int:
        return self._machine.configuration.port_number

    def get_baud_rate(self) -> int:
        return self._machine.configuration.baud_rate

    def get_parity(self) -> Parity:
        return self._machine.configuration.parity

    def get_data_bits(self) -> int:
        return self._machine.configuration.data_bits

    def get_stop_bits(self) -> StopBits:
        return self._machine.configuration.stop_bits

    # -------------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------------

    def get_read_bytes(self) -> bytes:
        """Return the bytes received since the previous call and clear them."""
        self._machine.check_disposed()
        return self._machine.buffer.drain()

    def peek_read_bytes(self) -> bytes:
        """Return the buffered bytes without clearing them."""
        self._machine.check_disposed()
        return self._machine.buffer.snapshot()

    def send_message(self, message: bytes) -> bool:
        return self._exchanger.send_message(message)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        self._machine.close()

    def resume(self) -> None:
        self._machine.resume()

    def reset_connection(self) -> None:
        self._machine.reset_connection()

    def dispose(self) -> None:
        """Release all resources. Calling it again does nothing."""
        self._machine.dispose()
