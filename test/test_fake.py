"""Tests for FakeComPort and for the Com contract shared with ComPort."""

from collections.abc import Callable, Generator
from dataclasses import dataclass

import pytest

from com.fake import FakeComPort
from com.port import ComPort
from common.configuration import PortConfiguration, TimeoutSettings
from common.errors import ResourceDisposedError
from common.protocol import Com, ConnectionState, Parity
from test.conftest import MockSerialFactory, mock_device


@dataclass
class ContractHarness:
    """A Com implementation plus hooks to drive its device side."""

    com: Com
    inject: Callable[[bytes], None]
    make_unavailable: Callable[[int], None]


@pytest.fixture(params=["com_port", "fake"])
def harness(request: pytest.FixtureRequest, factory: MockSerialFactory) -> Generator[ContractHarness, None, None]:
    if request.param == "com_port":
        com: Com = ComPort(
            PortConfiguration(port_number=1),
            timeouts=TimeoutSettings(read_timeout_ms=20),
            serial_factory=factory,
            resolver=mock_device,
        )
        yield ContractHarness(
            com=com,
            inject=lambda data: factory.last.inject(data),
            make_unavailable=lambda num: factory.unavailable.add(mock_device(num)),
        )
    else:
        fake = FakeComPort(PortConfiguration(port_number=1))
        com = fake
        yield ContractHarness(
            com=com,
            inject=lambda data: fake.inject(data),
            make_unavailable=fake.unavailable_ports.add,
        )
    com.dispose()


@pytest.mark.unit
class TestComContract:
    """Behaviour every Com implementation must share."""

    def test_starts_closed(self, harness: ContractHarness) -> None:
        assert not harness.com.is_open
        assert harness.com.send_message(b"x") is False

    def test_resume_close_events(self, harness: ContractHarness) -> None:
        events: list[tuple[ConnectionState, ConnectionState]] = []
        harness.com.open_state_changed.subscribe(lambda old, new: events.append((old, new)))
        harness.com.resume()
        harness.com.resume()
        harness.com.close()
        harness.com.close()
        assert [new for _old, new in events] == [ConnectionState.OPEN, ConnectionState.CLOSED]

    def test_receive_and_drain(self, harness: ContractHarness, wait: Callable[..., bool]) -> None:
        harness.com.resume()
        received = bytearray()

        def drained() -> bool:
            received.extend(harness.com.get_read_bytes())
            return received == b"B1B2"

        harness.inject(b"B1")
        harness.inject(b"B2")
        assert wait(drained)
        assert harness.com.get_read_bytes() == b""

    def test_send_rejects_non_bytes(self, harness: ContractHarness) -> None:
        harness.com.resume()
        assert harness.com.send_message(3) is False  # type: ignore[arg-type]
        assert harness.com.send_message(b"\x03") is True

    def test_rollback(self, harness: ContractHarness) -> None:
        harness.com.resume()
        harness.make_unavailable(5)
        assert harness.com.change_com_num(5) is False
        assert harness.com.get_num() == 1

    def test_validation(self, harness: ContractHarness) -> None:
        assert harness.com.change_com_data_bits(3) is False
        assert harness.com.get_data_bits() == 8

    def test_change_parity(self, harness: ContractHarness) -> None:
        harness.com.resume()
        assert harness.com.change_com_parity(Parity.EVEN)
        assert harness.com.get_parity() is Parity.EVEN
        assert harness.com.is_open

    def test_disposed(self, harness: ContractHarness) -> None:
        harness.com.dispose()
        with pytest.raises(ResourceDisposedError):
            harness.com.resume()


@pytest.mark.unit
class TestFakeComPort:
    """Tests for the simulation hooks of FakeComPort."""

    def test_records_sent(self) -> None:
        with FakeComPort() as fake:
            fake.resume()
            assert fake.send_message(b"\x01\x02")
            assert fake.sent == [b"\x01\x02"]

    def test_fail_send(self) -> None:
        with FakeComPort() as fake:
            fake.resume()
            fake.fail_send = True
            assert fake.send_message(b"\x01") is False

    def test_fail_open(self) -> None:
        with FakeComPort() as fake:
            fake.fail_open = True
            fake.resume()
            assert fake.state is ConnectionState.FAULTED

    def test_fault(self) -> None:
        with FakeComPort() as fake:
            events: list[tuple[ConnectionState, ConnectionState]] = []
            fake.open_state_changed.subscribe(lambda old, new: events.append((old, new)))
            fake.resume()
            fake.fault()
            assert events[-1] == (ConnectionState.OPEN, ConnectionState.FAULTED)
            fake.resume()
            assert fake.is_open
            assert fake.open_count == 2

    def test_inject_ignored_when_closed(self) -> None:
        with FakeComPort() as fake:
            assert fake.inject(b"x") is False
            assert fake.get_read_bytes() == b""

    def test_reset_connection(self) -> None:
        with FakeComPort() as fake:
            fake.resume()
            fake.reset_connection()
            assert fake.is_open
            assert fake.open_count == 2
