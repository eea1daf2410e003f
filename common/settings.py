"""Default settings for comlink, overridable through environment variables."""

import os
import sys

DEFAULT_PORT_TEMPLATE = "COM{num}" if sys.platform == "win32" else "/dev/ttyS{num}"

# Device name template; "{num}" is replaced by the port number
PORT_TEMPLATE = os.environ.get("COM_PORT_TEMPLATE", DEFAULT_PORT_TEMPLATE)

DEFAULT_BAUDRATE = int(os.environ.get("COM_BAUDRATE", "9600"))
DEFAULT_READ_TIMEOUT_MS = int(os.environ.get("COM_READ_TIMEOUT_MS", "500"))
DEFAULT_WRITE_TIMEOUT_MS = int(os.environ.get("COM_WRITE_TIMEOUT_MS", "500"))

# Interval between resume attempts of a ReconnectMonitor
RESUME_INTERVAL_S = float(os.environ.get("COM_RESUME_INTERVAL_S", "2.0"))

# Extra time allowed for a listener to notice its stop flag
LISTENER_JOIN_SLACK_S = 1.0

# Poll interval of a faulting listener waiting for the transition lock
FAULT_LOCK_POLL_S = 0.05


def device_for(num: int, template: str | None = None) -> str:
    """Return the device name for port number num."""
    return (template or PORT_TEMPLATE).format(num=num)
