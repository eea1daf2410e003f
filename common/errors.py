"""Exceptions for comlink."""


class ComError(Exception):
    """Base class for comlink errors."""

    pass


class ValidationError(ComError, ValueError):
    """Raised when a port configuration value is outside the driver domain."""

    pass


class TransportError(ComError):
    """Raised when the serial device cannot be opened or fails during I/O."""

    pass


class ResourceDisposedError(ComError):
    """Raised when a disposed port is used."""

    pass
