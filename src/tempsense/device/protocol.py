"""
The messages exchanged between a device worker and its owner.

Commands flow from the owner to the worker, statuses flow back. Both are simple value objects
so they can be compared in tests and logged with a readable representation.
"""


class DeviceMessage:
    """  a value object compared by type and attributes. """

    def __eq__(self, other):
        return type(other) is type(self) and self.__dict__ == other.__dict__

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash((type(self), tuple(sorted(self.__dict__.items()))))

    def __repr__(self):
        args = ", ".join("%s=%r" % (k, v) for k, v in sorted(self.__dict__.items()))
        return "%s(%s)" % (type(self).__name__, args)


class Command(DeviceMessage):
    """ A request from the owner to the worker. """


class Connect(Command):
    """ Requests the worker open the serial link. """

    def __init__(self, port, baud_rate):
        """
        :param port: the serial port name or pyserial URL, e.g. '/dev/ttyUSB0' or 'COM3'
        :param baud_rate: a positive baud rate
        """
        self.port = port
        self.baud_rate = baud_rate


class Disconnect(Command):
    """ Closes the serial link. The worker keeps running. """


class SendCommand(Command):
    """ Writes a line of text to the device. The line terminator is added by the worker. """

    def __init__(self, text):
        self.text = text


class Stop(Command):
    """ Closes any open link and terminates the worker loop. """


class Status(DeviceMessage):
    """ A notification from the worker to the owner. """


class Connected(Status):
    pass


class Disconnected(Status):
    def __init__(self, reason=None):
        """
        :param reason: why the link was closed, such as a user request or a transport error.
        """
        self.reason = reason


class Error(Status):
    def __init__(self, message):
        self.message = message


class Message(Status):
    """ Text received from the device. """

    def __init__(self, text):
        self.text = text


# device wire commands
def set_temperature_command(temperature: int) -> str:
    """
    >>> set_temperature_command(10)
    'setTemp 10'
    """
    return "setTemp %d" % temperature


def temperature_active_command(active: bool) -> str:
    """
    >>> temperature_active_command(True)
    'tempActive 1'
    """
    return "tempActive %d" % (1 if active else 0)


PING_COMMAND = "PING"
