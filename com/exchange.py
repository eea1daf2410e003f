"""Message exchange for comlink."""

import logging

import serial

from common.protocol import TRACE
from port.state import ConnectionStateMachine

logger = logging.getLogger(__name__)


class MessageExchanger:
    """Sends byte messages over the open handle of a ConnectionStateMachine."""

    def __init__(self, machine: ConnectionStateMachine) -> None:
        self._machine = machine

    def send_message(self, message: bytes) -> bool:
        """Write every byte of message within the write timeout.

        Returns False when the port is not open, when the handle was torn
        down before the write started, on write timeout (including a
        partial write), on transport errors and for payloads that are not
        bytes-like. There is no implicit open and no device-level
        acknowledgement.
        """
        status = self._machine.status
        port_number = status.configuration.port_number
        if not status.is_open:
            logger.debug(f"Port {port_number}: send refused, state is {status.state.value}")
            return False
        if not isinstance(message, (bytes, bytearray, memoryview)):
            logger.warning(f"Port {port_number}: send refused, {type(message).__name__} is not bytes-like")
            return False
        data = bytes(message)
        if not data:
            return True

        with self._machine.write_access(status.generation) as handle:
            if handle is None:
                logger.warning(f"Port {port_number}: send refused, handle was replaced")
                return False
            try:
                written = handle.write(data, self._machine.timeouts.write_timeout_s)
            except serial.SerialTimeoutException:
                logger.warning(
                    f"Port {port_number}: write timeout after "
                    f"{self._machine.timeouts.write_timeout_ms}ms ({len(data)} bytes)"
                )
                return False
            except (serial.SerialException, OSError) as e:
                logger.error(f"Port {port_number}: write failed: {e}")
                return False

        if written != len(data):
            logger.warning(f"Port {port_number}: partial write {written}/{len(data)} bytes")
            return False
        logger.log(TRACE, f"Port {port_number}: sent {len(data)} bytes")
        return True
