"""Connection state machine for comlink.

ConnectionStateMachine owns the single PortHandle of a port together with
its Listener and ReceiveBuffer. Every transition runs under one re-entrant
transition lock. The externally visible status (state, configuration,
generation) is an immutable LinkStatus replaced at the end of each step, so
readers never take the lock and never see a half-applied transition.

Transitions:
    CLOSED  -> OPENING -> OPEN     open / resume
    OPEN    -> FAULTED             listener failure
    FAULTED -> OPENING -> OPEN     resume / reset_connection
    *       -> CLOSED              close / dispose

open_state_changed is queued when is_open flips and delivered once the
outermost transition has released the lock. Only one thread delivers at a
time and it drains the queue in transition order, so a handler never sees
a later flip before an earlier one.
"""

import logging
import threading
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace

from common.configuration import PortConfiguration, TimeoutSettings
from common.device import open_serial
from common.errors import ResourceDisposedError, TransportError
from common.events import EventHook
from common.protocol import ConnectionState, PortResolver, SerialFactory
from common.settings import FAULT_LOCK_POLL_S, device_for
from port.buffer import ReceiveBuffer
from port.handle import PortHandle
from port.listener import Listener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkStatus:
    """Snapshot of the last completed transition."""

    state: ConnectionState
    configuration: PortConfiguration
    generation: int = 0

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN


class ConnectionStateMachine:
    """Lifecycle of one serial port."""

    def __init__(
        self,
        configuration: PortConfiguration,
        timeouts: TimeoutSettings | None = None,
        serial_factory: SerialFactory | None = None,
        resolver: PortResolver | None = None,
    ) -> None:
        self.timeouts = timeouts or TimeoutSettings()
        self.buffer = ReceiveBuffer()
        self.data_received = EventHook("data_received")
        self.open_state_changed = EventHook("open_state_changed")

        self._factory: SerialFactory = serial_factory or open_serial
        self._resolver: PortResolver = resolver or device_for
        self._status = LinkStatus(ConnectionState.CLOSED, configuration)
        self._handle: PortHandle | None = None
        self._listener: Listener | None = None
        self._disposed = False

        self._lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._depth = 0
        self._pending: list[tuple[ConnectionState, ConnectionState]] = []

        self._events_lock = threading.Lock()
        self._events: deque[tuple[ConnectionState, ConnectionState]] = deque()
        self._delivering = False

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    @property
    def status(self) -> LinkStatus:
        self.check_disposed()
        return self._status

    @property
    def state(self) -> ConnectionState:
        return self.status.state

    @property
    def configuration(self) -> PortConfiguration:
        return self.status.configuration

    @property
    def is_open(self) -> bool:
        return self.status.is_open

    @property
    def disposed(self) -> bool:
        return self._disposed

    def check_disposed(self) -> None:
        if self._disposed:
            raise ResourceDisposedError("Port has been disposed")

    def _publish(
        self,
        state: ConnectionState,
        configuration: PortConfiguration | None = None,
        generation: int | None = None,
    ) -> None:
        old = self._status
        new = replace(
            old,
            state=state,
            configuration=configuration or old.configuration,
            generation=old.generation if generation is None else generation,
        )
        self._status = new
        if old.state is not new.state:
            logger.debug(f"Port {new.configuration.port_number}: {old.state.value} -> {new.state.value}")
        if old.is_open != new.is_open:
            self._pending.append((old.state, new.state))

    # -------------------------------------------------------------------------
    # Transition lock
    # -------------------------------------------------------------------------

    @contextmanager
    def transition(self, locked: bool = False) -> Iterator[None]:
        """Serialize a transition and deliver its notifications afterwards.

        Nested use from the same thread is allowed; notifications are
        queued when the outermost block exits and delivered after the lock
        is released. Pass locked=True when the caller already acquired the
        lock (it is released on exit).
        """
        if not locked:
            self._lock.acquire()
        try:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                if self._depth == 0 and self._pending:
                    with self._events_lock:
                        self._events.extend(self._pending)
                    self._pending = []
        finally:
            self._lock.release()
            self._deliver()

    def _deliver(self) -> None:
        """Emit queued notifications unless another thread is already doing so.

        A handler that triggers a transition only queues its notification;
        the delivering thread picks it up after the handler returns.
        """
        while True:
            with self._events_lock:
                if self._delivering or not self._events:
                    return
                self._delivering = True
                old, new = self._events.popleft()
            try:
                self.open_state_changed.emit(old, new)
            finally:
                with self._events_lock:
                    self._delivering = False

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def open(self, configuration: PortConfiguration | None = None) -> bool:
        """Open with configuration (default: the current one).

        An already open port is reopened when configuration differs.
        Returns True if the port is open afterwards.
        """
        with self.transition():
            self.check_disposed()
            target = configuration or self._status.configuration
            if self._status.is_open:
                if target == self._status.configuration:
                    return True
                self._teardown(ConnectionState.CLOSED)
            return self._open(target)

    def close(self) -> None:
        """Stop the listener, release the handle and go to CLOSED."""
        with self.transition():
            self.check_disposed()
            self._teardown(ConnectionState.CLOSED)

    def resume(self) -> bool:
        """Reopen with the last known-good configuration if not open.

        Returns True if the port is open afterwards.
        """
        with self.transition():
            self.check_disposed()
            if self._status.is_open:
                return True
            logger.debug(f"Resuming port {self._status.configuration.port_number}")
            return self._open(self._status.configuration)

    def reset_connection(self) -> bool:
        """Close and reopen even when open, keeping the configuration."""
        with self.transition():
            self.check_disposed()
            logger.info(f"Resetting port {self._status.configuration.port_number}")
            self._teardown(ConnectionState.CLOSED)
            return self._open(self._status.configuration)

    def reopen(self, configuration: PortConfiguration) -> bool:
        """Close, then open with configuration.

        On failure the previous configuration stays published and the state
        is FAULTED.
        """
        with self.transition():
            self.check_disposed()
            self._teardown(ConnectionState.CLOSED)
            return self._open(configuration)

    def set_configuration(self, configuration: PortConfiguration) -> None:
        """Replace the configuration without touching the port."""
        with self.transition():
            self.check_disposed()
            self._publish(self._status.state, configuration=configuration)

    def dispose(self) -> None:
        """Release every resource. Further calls raise ResourceDisposedError."""
        with self.transition():
            if self._disposed:
                return
            self._teardown(ConnectionState.CLOSED)
            discarded = self.buffer.clear()
            self._disposed = True
            logger.debug(f"Disposed port {self._status.configuration.port_number} ({discarded} unread bytes)")

    # -------------------------------------------------------------------------
    # Listener callbacks
    # -------------------------------------------------------------------------

    def _data_arrived(self, available: int) -> None:
        self.data_received.emit(available)

    def fault(self, listener: Listener, error: Exception) -> None:
        """Move OPEN -> FAULTED after a listener failure.

        Runs on the listener thread. The lock is polled so that a close
        waiting for this listener to exit is never blocked; a listener that
        is stopping or no longer current is ignored.
        """
        while not self._lock.acquire(timeout=FAULT_LOCK_POLL_S):
            if listener.stopping:
                return
        with self.transition(locked=True):
            if listener is not self._listener or listener.stopping:
                return
            logger.error(f"Port {self._status.configuration.port_number} faulted: {error}")
            self._teardown(ConnectionState.FAULTED)

    # -------------------------------------------------------------------------
    # Write access
    # -------------------------------------------------------------------------

    @contextmanager
    def write_access(self, generation: int) -> Iterator[PortHandle | None]:
        """Hold exclusive write access to the handle of generation.

        Yields None when that generation is no longer open. Teardown takes
        the same lock, so a yielded handle stays open until the block exits.
        """
        with self._write_lock:
            handle = self._handle
            if handle is None or handle.generation != generation:
                yield None
            else:
                yield handle

    # -------------------------------------------------------------------------
    # Internals (transition lock held)
    # -------------------------------------------------------------------------

    def _open(self, configuration: PortConfiguration) -> bool:
        self._publish(ConnectionState.OPENING)
        generation = self._status.generation + 1
        try:
            device = self._resolver(configuration.port_number)
            handle = PortHandle.open(
                self._factory,
                device,
                configuration,
                self.timeouts.read_timeout_s,
                self.timeouts.write_timeout_s,
                generation,
            )
        except TransportError as e:
            logger.warning(str(e))
            self._publish(ConnectionState.FAULTED)
            return False
        except BaseException:
            # No handle exists, so OPENING must not outlive this call
            self._publish(ConnectionState.FAULTED)
            raise

        self._handle = handle
        self._listener = Listener(handle, self.buffer, self.timeouts, self._data_arrived, self.fault)
        self._publish(ConnectionState.OPEN, configuration=configuration, generation=generation)
        self._listener.start()
        return True

    def _teardown(self, state: ConnectionState) -> None:
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.stop()
        handle = self._handle
        if handle is not None:
            handle.cancel_write()
        with self._write_lock:
            self._handle = None
        if handle is not None:
            handle.close()
        if self._status.state is not state:
            self._publish(state)
