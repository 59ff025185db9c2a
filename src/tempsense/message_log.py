"""
A capped, timestamped log of device and application messages for display to the user.
"""
import logging
from collections import deque
from datetime import datetime

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 200

# the source used for messages that don't concern a specific device
APP = "APP"


class MessageLog:
    """
    Keeps the most recent entries, oldest first. Each entry reads

        [12:01:02.345] [ESP1] Connected.

    Entries are also forwarded to the python logger at the given level.

    :param capacity: the maximum number of entries kept
    :param clock: returns the current datetime, used to timestamp entries
    """

    def __init__(self, capacity=DEFAULT_CAPACITY, clock=datetime.now, log=logger):
        self._entries = deque(maxlen=capacity)
        self.clock = clock
        self.logger = log

    @property
    def capacity(self):
        return self._entries.maxlen

    def add(self, source, message, level=logging.INFO):
        timestamp = self.clock().strftime("%H:%M:%S.%f")[:-3]
        entry = "[%s] [%s] %s" % (timestamp, source, message)
        self._entries.append(entry)
        self.logger.log(level, "[%s] %s" % (source, message))
        return entry

    def entries(self):
        return list(self._entries)

    def clear(self):
        self._entries.clear()

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(list(self._entries))
