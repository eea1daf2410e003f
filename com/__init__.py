"""Com package for comlink.

Contains the public port API:
- port: ComPort, the managed serial port
- configuration: ConfigurationManager for line settings
- exchange: MessageExchanger for writes
- fake: FakeComPort in-memory test double
- monitor: ReconnectMonitor retry loop
"""

from com.configuration import ConfigurationManager
from com.exchange import MessageExchanger
from com.fake import FakeComPort
from com.monitor import ReconnectMonitor
from com.port import ComPort

__all__ = [
    "ComPort",
    "ConfigurationManager",
    "FakeComPort",
    "MessageExchanger",
    "ReconnectMonitor",
]
