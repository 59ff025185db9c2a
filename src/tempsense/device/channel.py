"""
A one-way, unbounded FIFO message channel between two threads.

Either end may close the channel. Once closed, sending raises ChannelClosedError and
receiving returns whatever was already queued before raising ChannelClosedError.
This lets a worker notice that its owner has gone away, and the owner notice that a worker
has exited, without sharing any other state.
"""
import threading
from queue import Empty, Queue


class ChannelClosedError(Exception):
    """ Raised when the other end of a channel has gone away. """


class Channel:

    def __init__(self, name=None):
        self.name = name
        self._queue = Queue()
        self._closed = threading.Event()

    def send(self, message):
        """ posts a message to the channel.
        :raises ChannelClosedError: when the channel has been closed
        """
        if self._closed.is_set():
            raise ChannelClosedError("channel %s is closed" % (self.name or id(self)))
        self._queue.put(message)

    def try_receive(self):
        """ fetches the next message without blocking.
        :return: the next message, or None if nothing is queued.
        :raises ChannelClosedError: when the channel is closed and no messages remain.
        """
        try:
            return self._queue.get_nowait()
        except Empty:
            if self._closed.is_set():
                raise ChannelClosedError("channel %s is closed" % (self.name or id(self)))
            return None

    def close(self):
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __repr__(self):
        return "Channel(%s)" % self.name


def channel_pair(name):
    """
    Creates the command and status channels for one device worker.
    :return: a tuple (commands, statuses)
    """
    return Channel(name + ".commands"), Channel(name + ".status")
