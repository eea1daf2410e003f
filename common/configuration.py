"""Port configuration and timeout settings for comlink.

Contains:
- PortConfiguration: immutable line settings of a port
- TimeoutSettings: read/write timeouts in milliseconds
- validate_* helpers used before a configuration change is attempted
"""

from dataclasses import dataclass, fields, replace
from typing import Any

from common.errors import ValidationError
from common.protocol import DATA_BITS, Parity, StopBits
from common.settings import DEFAULT_BAUDRATE, DEFAULT_READ_TIMEOUT_MS, DEFAULT_WRITE_TIMEOUT_MS


def validate_port_number(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"Invalid port number: {value!r}")
    return value


def validate_baud_rate(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid baud rate: {value!r}")
    return value


def validate_parity(value: Any) -> Parity:
    """Accept a Parity member or its pyserial spelling ("N", "E", ...)."""
    if isinstance(value, Parity):
        return value
    try:
        return Parity(value)
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid parity: {value!r}")


def validate_data_bits(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value not in DATA_BITS:
        raise ValidationError(
            f"Invalid data bits: {value!r}, expected one of {list(DATA_BITS)}"
        )
    return value


def validate_stop_bits(value: Any) -> StopBits:
    """Accept a StopBits member or its pyserial value (1, 1.5, 2)."""
    if isinstance(value, StopBits):
        return value
    try:
        return StopBits(value)
    except (ValueError, TypeError):
        raise ValidationError(f"Invalid stop bits: {value!r}")


_VALIDATORS = {
    "port_number": validate_port_number,
    "baud_rate": validate_baud_rate,
    "parity": validate_parity,
    "data_bits": validate_data_bits,
    "stop_bits": validate_stop_bits,
}


@dataclass(frozen=True)
class PortConfiguration:
    """Line settings of a port.

    Instances are immutable; a change produces a new instance through
    with_field(). Values are validated on construction.
    """

    port_number: int
    baud_rate: int = DEFAULT_BAUDRATE
    parity: Parity = Parity.NONE
    data_bits: int = 8
    stop_bits: StopBits = StopBits.ONE

    def __post_init__(self) -> None:
        """Validate and normalize every field."""
        for f in fields(self):
            normalized = _VALIDATORS[f.name](getattr(self, f.name))
            object.__setattr__(self, f.name, normalized)

    def with_field(self, name: str, value: Any) -> "PortConfiguration":
        """Return a copy with one field changed.

        Raises:
            ValidationError: If value is outside the accepted domain.
            KeyError: If name is not a configuration field.
        """
        return replace(self, **{name: validate_field(name, value)})

    def serial_kwargs(self) -> dict[str, Any]:
        """Return the line settings as pyserial keyword arguments."""
        return {
            "baudrate": self.baud_rate,
            "bytesize": self.data_bits,
            "parity": self.parity.value,
            "stopbits": self.stop_bits.value,
        }

    def describe(self) -> str:
        """Short form such as '9600 8N1'."""
        stop = {StopBits.ONE: "1", StopBits.ONE_POINT_FIVE: "1.5", StopBits.TWO: "2"}
        return f"{self.baud_rate} {self.data_bits}{self.parity.value}{stop[self.stop_bits]}"


@dataclass
class TimeoutSettings:
    """Read and write timeouts in milliseconds, applied to subsequent I/O."""

    read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS
    write_timeout_ms: int = DEFAULT_WRITE_TIMEOUT_MS

    def __post_init__(self) -> None:
        check_timeout(self.read_timeout_ms)
        check_timeout(self.write_timeout_ms)

    @property
    def read_timeout_s(self) -> float:
        return self.read_timeout_ms / 1000

    @property
    def write_timeout_s(self) -> float:
        return self.write_timeout_ms / 1000


def validate_field(name: str, value: Any) -> Any:
    """Validate value for configuration field name.

    Raises:
        ValidationError: If value is outside the accepted domain.
        KeyError: If name is not a configuration field.
    """
    return _VALIDATORS[name](value)


def check_timeout(value: Any) -> int:
    """Timeouts must be positive so that no I/O call blocks indefinitely."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"Timeout must be a positive number of milliseconds, got {value!r}")
    return value
