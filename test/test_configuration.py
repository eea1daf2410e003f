"""Unit tests for port configuration, timeouts and events."""

import pytest
import serial

from common.configuration import PortConfiguration, TimeoutSettings, check_timeout, validate_field
from common.errors import ValidationError
from common.events import EventHook
from common.protocol import Parity, StopBits
from common.settings import device_for


@pytest.mark.unit
class TestPortConfiguration:
    """Tests for PortConfiguration."""

    def test_defaults(self) -> None:
        config = PortConfiguration(port_number=3)
        assert config.parity is Parity.NONE
        assert config.data_bits == 8
        assert config.stop_bits is StopBits.ONE
        assert config.baud_rate > 0

    def test_pyserial_spellings_are_normalized(self) -> None:
        config = PortConfiguration(port_number=1, parity="E", stop_bits=2)
        assert config.parity is Parity.EVEN
        assert config.stop_bits is StopBits.TWO

    @pytest.mark.parametrize(
        "field, value",
        [
            ("port_number", -1),
            ("baud_rate", 0),
            ("baud_rate", -9600),
            ("baud_rate", "9600"),
            ("data_bits", 4),
            ("data_bits", 9),
            ("parity", "X"),
            ("stop_bits", 3),
        ],
    )
    def test_invalid_values_rejected(self, field: str, value: object) -> None:
        with pytest.raises(ValidationError):
            PortConfiguration(port_number=1).with_field(field, value)

    def test_with_field_returns_new_instance(self) -> None:
        config = PortConfiguration(port_number=1, baud_rate=9600)
        changed = config.with_field("baud_rate", 115200)
        assert changed.baud_rate == 115200
        assert config.baud_rate == 9600

    def test_frozen(self) -> None:
        config = PortConfiguration(port_number=1)
        with pytest.raises(AttributeError):
            config.baud_rate = 19200  # type: ignore[misc]

    def test_serial_kwargs(self) -> None:
        config = PortConfiguration(
            port_number=1,
            baud_rate=19200,
            parity=Parity.MARK,
            data_bits=7,
            stop_bits=StopBits.ONE_POINT_FIVE,
        )
        assert config.serial_kwargs() == {
            "baudrate": 19200,
            "bytesize": serial.SEVENBITS,
            "parity": serial.PARITY_MARK,
            "stopbits": serial.STOPBITS_ONE_POINT_FIVE,
        }

    def test_describe(self) -> None:
        assert PortConfiguration(port_number=1, baud_rate=9600).describe() == "9600 8N1"

    def test_validate_field_unknown_name(self) -> None:
        with pytest.raises(KeyError):
            validate_field("flow_control", True)


@pytest.mark.unit
class TestTimeoutSettings:
    """Tests for TimeoutSettings."""

    def test_seconds(self) -> None:
        timeouts = TimeoutSettings(read_timeout_ms=50, write_timeout_ms=1500)
        assert timeouts.read_timeout_s == pytest.approx(0.05)
        assert timeouts.write_timeout_s == pytest.approx(1.5)

    @pytest.mark.parametrize("value", [0, -1, 1.5, None])
    def test_non_positive_rejected(self, value: object) -> None:
        with pytest.raises(ValueError):
            check_timeout(value)


@pytest.mark.unit
class TestDeviceFor:
    """Tests for port number to device name mapping."""

    def test_template(self) -> None:
        assert device_for(4, "/dev/ttyUSB{num}") == "/dev/ttyUSB4"
        assert device_for(7, "COM{num}") == "COM7"


@pytest.mark.unit
class TestEventHook:
    """Tests for EventHook."""

    def test_emit_in_subscription_order(self) -> None:
        hook = EventHook("test")
        calls: list[tuple[str, int]] = []
        hook.subscribe(lambda n: calls.append(("a", n)))
        hook.subscribe(lambda n: calls.append(("b", n)))
        hook.emit(5)
        assert calls == [("a", 5), ("b", 5)]

    def test_unsubscribe(self) -> None:
        hook = EventHook("test")
        calls: list[int] = []
        handler = hook.subscribe(calls.append)
        hook.unsubscribe(handler)
        hook.unsubscribe(handler)
        hook.emit(1)
        assert calls == []
        assert len(hook) == 0

    def test_failing_handler_does_not_stop_others(self) -> None:
        hook = EventHook("test")
        calls: list[int] = []

        def broken(_n: int) -> None:
            raise RuntimeError("boom")

        hook.subscribe(broken)
        hook.subscribe(calls.append)
        hook.emit(7)
        assert calls == [7]
