"""
Opens and enumerates serial ports.
"""

import logging

import serial
from serial.tools import list_ports

logger = logging.getLogger(__name__)

# timeout used while opening the port
OPEN_TIMEOUT = 1.0
# timeout for each polling read once connected. Keeps the worker responsive to commands.
READ_TIMEOUT = 0.05
# the most bytes taken from the port in one read
READ_SIZE = 1024


def open_serial(port, baud_rate, timeout=OPEN_TIMEOUT) -> serial.SerialBase:
    """
    Opens a serial port. The port may be a device name ('/dev/ttyUSB0', 'COM3') or
    any URL understood by pyserial, such as 'loop://'.
    :raises serial.SerialException: if the port cannot be opened
    """
    ser = serial.serial_for_url(port, baudrate=baud_rate, timeout=timeout)
    logger.debug("opened %s at %d baud" % (port, baud_rate))
    return ser


def read_available(ser, size=READ_SIZE) -> bytes:
    """
    Reads whatever the port has available, waiting at most the port timeout for the first byte.
    :return: the bytes read, empty if the read timed out.
    """
    data = ser.read(1)
    if data:
        waiting = ser.in_waiting
        if waiting:
            data += ser.read(min(waiting, size - 1))
    return data


def serial_port_info():
    """
    :return: a tuple of the ListPortInfo for each port present.
    """
    return tuple(list_ports.comports())


def serial_ports():
    """
    Returns a generator for all available serial port device names.
    """
    for port in serial_port_info():
        yield port.device
