"""Port package for comlink.

Contains the lifecycle of a single serial port:
- handle: PortHandle owning the pyserial object
- buffer: ReceiveBuffer accumulating inbound bytes
- listener: Listener thread feeding the buffer
- state: ConnectionStateMachine driving open/close/resume/reset
"""

from port.buffer import ReceiveBuffer
from port.handle import PortHandle
from port.listener import Listener
from port.state import ConnectionStateMachine, LinkStatus

__all__ = [
    "ConnectionStateMachine",
    "LinkStatus",
    "Listener",
    "PortHandle",
    "ReceiveBuffer",
]
