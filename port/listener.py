"""Listener thread for comlink.

The listener is the only reader of an open PortHandle. It loops on a
timeout-bounded read, appends what arrives to the ReceiveBuffer and reports
it through on_data. A read timeout only makes it re-check its stop flag.
"""

import logging
import threading
from collections.abc import Callable

import serial

from common.configuration import TimeoutSettings
from common.settings import LISTENER_JOIN_SLACK_S
from port.buffer import ReceiveBuffer
from port.handle import PortHandle

logger = logging.getLogger(__name__)


class Listener:
    """Background read loop bound to one PortHandle."""

    def __init__(
        self,
        handle: PortHandle,
        buffer: ReceiveBuffer,
        timeouts: TimeoutSettings,
        on_data: Callable[[int], None],
        on_fault: Callable[["Listener", Exception], None],
    ) -> None:
        self.handle = handle
        self._buffer = buffer
        self._timeouts = timeouts
        self._on_data = on_data
        self._on_fault = on_fault
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name=f"listener-{handle.device}-{handle.generation}",
            daemon=True,
        )

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        self._thread.start()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def stop(self) -> None:
        """Stop the loop and wait for it, bounded by the read timeout.

        Safe to call from the listener thread itself (e.g. from a
        data_received handler); the join is skipped in that case.
        """
        self._stop.set()
        self.handle.cancel_read()
        if threading.current_thread() is self._thread or not self._thread.is_alive():
            return
        self._thread.join(self._timeouts.read_timeout_s + LISTENER_JOIN_SLACK_S)
        if self._thread.is_alive():
            logger.warning(f"{self._thread.name} did not stop in time")

    def _run(self) -> None:
        logger.debug(f"{self._thread.name} started")
        while not self._stop.is_set():
            try:
                data = self.handle.read(self._timeouts.read_timeout_s)
            except (serial.SerialException, OSError) as e:
                if self._stop.is_set():
                    break
                logger.warning(f"{self._thread.name}: read failed: {e}")
                self._on_fault(self, e)
                return
            except Exception as e:
                if self._stop.is_set():
                    break
                logger.exception(f"{self._thread.name}: unexpected read error")
                self._on_fault(self, e)
                return

            if data:
                self._on_data(self._buffer.append(data))
        logger.debug(f"{self._thread.name} stopped")
