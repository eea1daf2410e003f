"""Serial device helpers for comlink.

Contains:
- PortInfo: Description of an enumerated port
- list_ports: Enumerate serial ports known to the OS
- log_device_info: Log information about a serial device
- open_serial: Default factory opening a device or pyserial URL
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

import serial
import serial.tools.list_ports

logger = logging.getLogger(__name__)


@dataclass
class PortInfo:
    """An enumerated serial port."""

    device: str
    description: str
    hwid: str


def list_ports() -> list[PortInfo]:
    """Return the serial ports known to the OS, sorted by device name."""
    return sorted(
        (
            PortInfo(device=p.device, description=p.description, hwid=p.hwid)
            for p in serial.tools.list_ports.comports()
        ),
        key=lambda info: info.device,
    )


def log_device_info(device: str) -> None:
    """Log information about a serial device."""
    if "://" in device:
        logger.debug(f"Device: {device} (url)")
        return
    real_path = os.path.realpath(device)
    if real_path.startswith("/dev/pts/"):
        logger.info(f"Device: {device} -> {real_path} (pty)")
        return

    ports = [p for p in serial.tools.list_ports.comports() if p.device == device]
    if len(ports) == 0:
        logger.info(f"Device: {device} (not in port list)")
        return

    info = ports[0]
    logger.info(f"Device: {info.device}")
    logger.info(f"Description: {info.description}")
    if info.vid is not None:
        logger.info(f"VID:PID: {info.vid:04x}:{info.pid:04x}")


def open_serial(device: str, **kwargs: Any) -> serial.SerialBase:
    """Open a serial device or pyserial URL (e.g. loop://)."""
    log_device_info(device)
    ser = serial.serial_for_url(device, xonxoff=False, rtscts=False, **kwargs)
    logger.debug(
        f"Serial port: {device} baudrate={ser.baudrate}, bytesize={ser.bytesize}, "
        f"parity={ser.parity}, stopbits={ser.stopbits}"
    )
    return ser
