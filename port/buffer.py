"""Receive buffer for comlink."""

import threading


class ReceiveBuffer:
    """Thread-safe append-only byte accumulator.

    The listener appends, callers drain. drain() swaps the underlying
    bytearray under the lock so that bytes appended concurrently land either
    in the returned chunk or in the next one, never nowhere.
    """

    def __init__(self) -> None:
        self._data = bytearray()
        self._lock = threading.Lock()

    def append(self, data: bytes) -> int:
        """Append data. Returns the number of bytes now available."""
        with self._lock:
            self._data.extend(data)
            return len(self._data)

    def drain(self) -> bytes:
        """Return everything accumulated since the previous drain and clear."""
        with self._lock:
            data, self._data = self._data, bytearray()
        return bytes(data)

    def snapshot(self) -> bytes:
        """Return a copy of the accumulated bytes without clearing."""
        with self._lock:
            return bytes(self._data)

    def clear(self) -> int:
        """Discard accumulated bytes. Returns the number discarded."""
        with self._lock:
            count = len(self._data)
            self._data = bytearray()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
