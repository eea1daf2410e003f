"""Protocol definitions for comlink.

Contains:
- Parity, StopBits and ConnectionState enums
- SerialLike Protocol for the pyserial object a PortHandle drives
- Com Protocol: the public contract of a managed COM port
- Logging configuration (TRACE level)
"""

import logging
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

import serial

# TRACE logging level (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class Parity(Enum):
    """Parity checking mode. Values are pyserial parity constants."""

    NONE = serial.PARITY_NONE
    ODD = serial.PARITY_ODD
    EVEN = serial.PARITY_EVEN
    MARK = serial.PARITY_MARK
    SPACE = serial.PARITY_SPACE


class StopBits(Enum):
    """Number of stop bits. Values are pyserial stop bit constants."""

    ONE = serial.STOPBITS_ONE
    ONE_POINT_FIVE = serial.STOPBITS_ONE_POINT_FIVE
    TWO = serial.STOPBITS_TWO


class ConnectionState(Enum):
    """Lifecycle state of a managed port."""

    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    FAULTED = "faulted"


# Data bit counts accepted by pyserial
DATA_BITS = serial.Serial.BYTESIZES


class SerialLike(Protocol):
    """Protocol for the serial object owned by a PortHandle."""

    timeout: float | None
    write_timeout: float | None

    def write(self, data: bytes, /) -> int | None: ...
    def read(self, size: int = ..., /) -> bytes: ...
    def close(self) -> None: ...
    @property
    def in_waiting(self) -> int: ...
    @property
    def is_open(self) -> bool: ...


SerialFactory = Callable[..., SerialLike]
PortResolver = Callable[[int], str]


class Com(Protocol):
    """Contract of a managed COM port.

    Implemented by com.port.ComPort (real device) and com.fake.FakeComPort
    (in-memory test double). Callers should depend on this Protocol only.
    """

    tag: Any

    @property
    def read_timeout(self) -> int: ...
    @read_timeout.setter
    def read_timeout(self, value: int) -> None: ...
    @property
    def write_timeout(self) -> int: ...
    @write_timeout.setter
    def write_timeout(self, value: int) -> None: ...
    @property
    def is_open(self) -> bool: ...
    @property
    def data_received(self) -> Any: ...
    @property
    def open_state_changed(self) -> Any: ...

    def change_com_num(self, new_num: int) -> bool: ...
    def change_com_baud_rate(self, new_baud_rate: int) -> bool: ...
    def change_com_parity(self, new_parity: Parity) -> bool: ...
    def change_com_data_bits(self, new_data_bits: int) -> bool: ...
    def change_com_stop_bits(self, new_stop_bits: StopBits) -> bool: ...
    def get_num(self) -> int: ...
    def get_baud_rate(self) -> int: ...
    def get_parity(self) -> Parity: ...
    def get_data_bits(self) -> int: ...
    def get_stop_bits(self) -> StopBits: ...
    def get_read_bytes(self) -> bytes: ...
    def close(self) -> None: ...
    def resume(self) -> None: ...
    def reset_connection(self) -> None: ...
    def send_message(self, message: bytes) -> bool: ...
    def dispose(self) -> None: ...
