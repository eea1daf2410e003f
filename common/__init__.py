"""Common modules for comlink.

This package contains definitions shared by the port and com packages:
- protocol: Parity, StopBits, ConnectionState enums, SerialLike and Com Protocols
- configuration: PortConfiguration, TimeoutSettings and validators
- errors: Exception hierarchy
- events: EventHook multicast notifications
- settings: Environment-driven defaults
- device: Port enumeration and the default serial factory
"""

from common.configuration import PortConfiguration, TimeoutSettings
from common.errors import ComError, ResourceDisposedError, TransportError, ValidationError
from common.events import EventHook
from common.protocol import TRACE, Com, ConnectionState, Parity, StopBits

__all__ = [
    # Protocol
    "Com",
    "ConnectionState",
    "Parity",
    "StopBits",
    "TRACE",
    # Configuration
    "PortConfiguration",
    "TimeoutSettings",
    # Events
    "EventHook",
    # Exceptions
    "ComError",
    "ResourceDisposedError",
    "TransportError",
    "ValidationError",
]
