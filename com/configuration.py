"""Configuration manager for comlink.

Applies single-field changes to the port configuration. A change on an open
(or faulted) port runs a full close/reopen under the transition lock; if the
reopen fails the previous configuration is kept and the port is left FAULTED.
"""

import logging
from typing import Any

from common.configuration import PortConfiguration, validate_field
from common.errors import ValidationError
from common.protocol import ConnectionState, Parity, StopBits
from port.state import ConnectionStateMachine

logger = logging.getLogger(__name__)


class ConfigurationManager:
    """Validates and applies port configuration changes."""

    def __init__(self, machine: ConnectionStateMachine) -> None:
        self._machine = machine

    @property
    def configuration(self) -> PortConfiguration:
        return self._machine.configuration

    def change(self, name: str, value: Any) -> bool:
        """Change one configuration field.

        Returns:
            True if the new value is in effect, False if it was rejected or
            the port could not be reopened with it.
        """
        current = self._machine.configuration
        try:
            value = validate_field(name, value)
        except ValidationError as e:
            logger.warning(f"Port {current.port_number}: rejected change of {name}: {e}")
            return False

        with self._machine.transition():
            self._machine.check_disposed()
            current = self._machine.configuration
            target = current.with_field(name, value)

            if target == current:
                logger.debug(f"Port {current.port_number}: {name} already {value!r}")
                return True

            if self._machine.state is ConnectionState.CLOSED:
                self._machine.set_configuration(target)
                logger.info(f"Port {current.port_number}: {name} set to {value!r} (closed)")
                return True

            if not self._machine.reopen(target):
                logger.warning(
                    f"Port {current.port_number}: reopen with {name}={value!r} failed, "
                    f"keeping {current.describe()}"
                )
                return False

            logger.info(f"Port {target.port_number}: {name} changed to {value!r}")
            return True

    def change_com_num(self, new_num: int) -> bool:
        return self.change("port_number", new_num)

    def change_com_baud_rate(self, new_baud_rate: int) -> bool:
        return self.change("baud_rate", new_baud_rate)

    def change_com_parity(self, new_parity: Parity) -> bool:
        return self.change("parity", new_parity)

    def change_com_data_bits(self, new_data_bits: int) -> bool:
        return self.change("data_bits", new_data_bits)

    def change_com_stop_bits(self, new_stop_bits: StopBits) -> bool:
        return self.change("stop_bits", new_stop_bits)
