"""
The device worker owns one serial connection and runs on its own thread.

It pulls Commands from its command channel, performs the serial I/O and reports the outcome
as Status messages on its status channel. Failures never escape the worker: they are
reported as Error and Disconnected statuses and the worker returns to idle, ready for
another Connect.

The worker exits when it receives Stop, or when its command channel is closed by the owner.
On exit both channels are closed, so the owner can tell the worker has gone and further
commands are refused.
"""
import logging
import time

import serial

from tempsense.device.channel import Channel, ChannelClosedError
from tempsense.device.protocol import Connect, Connected, Disconnect, Disconnected, Error, Message, SendCommand, \
    Stop
from tempsense.device.serial_port import OPEN_TIMEOUT, READ_TIMEOUT, open_serial, read_available

logger = logging.getLogger(__name__)

# pause between iterations of the worker loop
LOOP_INTERVAL = 0.02

# errors raised by pyserial on I/O failure. SerialException derives from IOError.
TRANSPORT_ERRORS = (serial.SerialException, OSError)
# errors raised while opening a port. pyserial raises ValueError for an invalid baud rate or URL.
CONNECT_ERRORS = TRANSPORT_ERRORS + (ValueError,)

# received bytes held without a line terminator before they are discarded
MAX_LINE_LENGTH = 4096


class DeviceWorker:
    """
    Runs the command loop for a single device.

    :param commands:    the channel the owner posts commands to
    :param status:      the channel this worker posts status to
    :param name:        names the device in log messages
    :param opener:      callable(port, baud_rate, timeout) that opens a serial port
    :param loop_interval:   how long to sleep between loop iterations
    :param read_timeout:    the timeout of each polling read, once connected
    :param open_timeout:    the timeout used while opening the port
    """

    def __init__(self, commands: Channel, status: Channel, name="device", opener=open_serial,
                 loop_interval=LOOP_INTERVAL, read_timeout=READ_TIMEOUT, open_timeout=OPEN_TIMEOUT, log=logger):
        self.commands = commands
        self.status = status
        self.name = name
        self.opener = opener
        self.loop_interval = loop_interval
        self.read_timeout = read_timeout
        self.open_timeout = open_timeout
        self.logger = log
        self.port = None        # the open serial port, or None when idle
        self.failure = None     # the exception that ended the worker unexpectedly
        self._running = False
        self._buffer = bytearray()     # bytes received after the last complete line
        self._handlers = {
            Connect: self._connect,
            Disconnect: self._disconnect,
            SendCommand: self._send,
            Stop: self._stop,
        }

    @property
    def connected(self):
        return self.port is not None

    def run(self):
        """ The thread entry point. Loops until stopped or the owner goes away. """
        self._running = True
        try:
            while self._running:
                self.step()
                if self._running:
                    time.sleep(self.loop_interval)
        except Exception as e:
            self.failure = e
            self.logger.exception("%s worker failed: %s" % (self.name, e))
        finally:
            self._close_port()
            self.commands.close()
            self.status.close()
            self.logger.info("%s worker exiting" % self.name)

    def step(self):
        """ Runs one iteration of the loop: processes a pending command, or polls the port. """
        try:
            command = self.commands.try_receive()
        except ChannelClosedError:
            # the owner has gone, there is no one to notify
            self.logger.debug("%s command channel closed" % self.name)
            self._close_port()
            self._running = False
            return
        if command is not None:
            self.process(command)
        elif self.port is not None:
            self._read()

    def process(self, command):
        handler = self._handlers.get(type(command))
        if handler is None:
            self._post(Error("Unknown command: %r" % command))
        else:
            handler(command)

    def _post(self, status):
        try:
            self.status.send(status)
        except ChannelClosedError:
            self.logger.debug("%s status channel closed, dropped %r" % (self.name, status))

    def _connect(self, command: Connect):
        if self.port is not None:
            self._post(Error("Already connected or connection attempt in progress."))
            return
        try:
            self.port = self.opener(command.port, command.baud_rate, self.open_timeout)
            self.port.timeout = self.read_timeout
        except CONNECT_ERRORS as e:
            self._close_port()
            self._post(Error("Failed to connect to %s: %s" % (command.port, e)))
            return
        self.logger.info("%s connected to %s at %d baud" % (self.name, command.port, command.baud_rate))
        self._post(Connected())

    def _send(self, command: SendCommand):
        port = self.port
        if port is None:
            # not reported: after a transport failure the owner has already been told the link is down
            self.logger.warning("%s not connected, dropped command '%s'" % (self.name, command.text))
            return
        try:
            port.write((command.text + "\n").encode('utf-8'))
        except TRANSPORT_ERRORS as e:
            self._fail("Failed to send command: %s. Disconnecting." % e)
            return
        try:
            port.flush()
        except TRANSPORT_ERRORS as e:
            self._fail("Failed to flush serial port: %s. Disconnecting." % e)

    def _read(self):
        try:
            data = read_available(self.port)
        except serial.SerialTimeoutException:
            return
        except TRANSPORT_ERRORS as e:
            self._fail("Serial read error: %s. Disconnecting." % e)
            return
        self._buffer += data
        while True:
            line, sep, rest = self._buffer.partition(b"\n")
            if not sep:
                break
            self._buffer = rest
            text = line.decode('utf-8', errors='replace').strip()
            if text:
                self._post(Message(text))
        if len(self._buffer) > MAX_LINE_LENGTH:
            self.logger.warning("%s discarding %d bytes without a line end" % (self.name, len(self._buffer)))
            self._buffer = bytearray()

    def _disconnect(self, command=None):
        if self._close_port():
            self._post(Disconnected("Disconnected by user."))
        else:
            self._post(Message("Already disconnected."))

    def _stop(self, command=None):
        self._close_port()
        self._post(Disconnected("Worker stopped."))
        self._running = False

    def _fail(self, message):
        """ a transport failure: closes the port and reports the error followed by the disconnect. """
        self.logger.warning("%s %s" % (self.name, message))
        self._close_port()
        self._post(Error(message))
        self._post(Disconnected(message))

    def _close_port(self):
        """
        Closes the port if open.
        :return: True if a port was open.
        """
        port, self.port = self.port, None
        self._buffer = bytearray()
        if port is None:
            return False
        try:
            port.close()
        except TRANSPORT_ERRORS as e:
            self.logger.debug("%s error closing port: %s" % (self.name, e))
        return True
