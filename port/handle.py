"""Port handle for comlink.

A PortHandle owns one opened pyserial object for the lifetime of one open
generation. It is created by PortHandle.open() and released by close(),
after which it is never reused.
"""

import logging

import serial

from common.configuration import PortConfiguration
from common.errors import TransportError
from common.protocol import TRACE, SerialFactory, SerialLike

logger = logging.getLogger(__name__)


class PortHandle:
    """Blocking read/write on an opened serial object, bounded by timeouts."""

    def __init__(
        self,
        ser: SerialLike,
        device: str,
        configuration: PortConfiguration,
        generation: int,
    ) -> None:
        self._serial = ser
        self.device = device
        self.configuration = configuration
        self.generation = generation
        self.closed = False

    @classmethod
    def open(
        cls,
        factory: SerialFactory,
        device: str,
        configuration: PortConfiguration,
        read_timeout_s: float,
        write_timeout_s: float,
        generation: int,
    ) -> "PortHandle":
        """Open device with configuration.

        Raises:
            TransportError: If the device is missing, busy, or rejects the
                settings.
        """
        try:
            ser = factory(
                device,
                timeout=read_timeout_s,
                write_timeout=write_timeout_s,
                **configuration.serial_kwargs(),
            )
        except (serial.SerialException, OSError, ValueError) as e:
            raise TransportError(f"Cannot open {device} ({configuration.describe()}): {e}") from e
        logger.info(f"Opened {device} ({configuration.describe()}), generation {generation}")
        return cls(ser, device, configuration, generation)

    def read(self, timeout_s: float) -> bytes:
        """Read whatever is available, waiting at most timeout_s for one byte.

        Returns b"" on timeout. Transport failures propagate as
        serial.SerialException or OSError.
        """
        if self._serial.timeout != timeout_s:
            self._serial.timeout = timeout_s
        data = self._serial.read(self._serial.in_waiting or 1)
        if data:
            logger.log(TRACE, f"{self.device}: read {len(data)} bytes: {data.hex()}")
        return data

    def write(self, data: bytes, timeout_s: float) -> int:
        """Write data, returning the number of bytes accepted.

        Raises serial.SerialTimeoutException when the write timeout expires.
        """
        if self._serial.write_timeout != timeout_s:
            self._serial.write_timeout = timeout_s
        written = self._serial.write(data)
        # Some pyserial backends return None for a complete write
        if written is None:
            written = len(data)
        logger.log(TRACE, f"{self.device}: wrote {written}/{len(data)} bytes")
        return written

    def cancel_read(self) -> None:
        """Interrupt a blocked read, where the backend supports it."""
        cancel = getattr(self._serial, "cancel_read", None)
        if cancel is not None:
            cancel()

    def cancel_write(self) -> None:
        """Interrupt a blocked write, where the backend supports it."""
        cancel = getattr(self._serial, "cancel_write", None)
        if cancel is not None:
            cancel()

    def close(self) -> None:
        """Release the OS resource. Never raises; failures are logged."""
        if self.closed:
            return
        self.closed = True
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as e:
            logger.warning(f"Error closing {self.device}: {e}")
        logger.info(f"Closed {self.device}, generation {self.generation}")
