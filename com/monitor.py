"""Reconnect monitor for comlink.

Calls resume() on a Com at a fixed interval while it is not open, so a
port that faulted (cable pulled, device rebooted) comes back on its own.
"""

import logging
import threading

from common.errors import ResourceDisposedError
from common.protocol import Com
from common.settings import RESUME_INTERVAL_S

logger = logging.getLogger(__name__)


class ReconnectMonitor:
    """Background retry loop around Com.resume()."""

    def __init__(self, com: Com, interval_s: float = RESUME_INTERVAL_S) -> None:
        if interval_s <= 0:
            raise ValueError(f"interval_s must be positive, got {interval_s}")
        self._com = com
        self._interval_s = interval_s
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.attempts = 0
        self.reconnects = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="reconnect-monitor", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None

    def __enter__(self) -> "ReconnectMonitor":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def check(self) -> bool:
        """Run one resume attempt if the port is not open.

        Returns True if the port is open afterwards.
        """
        if self._com.is_open:
            return True
        self.attempts += 1
        self._com.resume()
        if self._com.is_open:
            self.reconnects += 1
            logger.info(f"Port {self._com.get_num()} reconnected after {self.attempts} attempt(s)")
            self.attempts = 0
            return True
        logger.debug(f"Port {self._com.get_num()} still down (attempt {self.attempts})")
        return False

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.check()
            except ResourceDisposedError:
                logger.debug("Port disposed, reconnect monitor exiting")
                return
            except Exception:
                logger.exception(f"Reconnect attempt {self.attempts} failed")
            self._stop.wait(self._interval_s)
