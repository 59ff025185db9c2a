"""
Events fired by the orchestrator as device state changes, and the event source used to deliver them.

Events are fired on the thread that calls DeviceOrchestrator.reconcile(), so handlers may update
presentation state without further synchronization.
"""


class EventSource:
    """ A list of handlers called in registration order when an event is fired. """

    def __init__(self):
        self._handlers = []

    def __iadd__(self, handler):
        return self.add(handler)

    def __isub__(self, handler):
        return self.remove(handler)

    def add(self, handler):
        if handler not in self._handlers:
            self._handlers.append(handler)
        return self

    def remove(self, handler):
        if handler in self._handlers:
            self._handlers.remove(handler)
        return self

    def handlers(self):
        return tuple(self._handlers)

    def fire(self, event):
        for handler in tuple(self._handlers):
            handler(event)


class DeviceEvent:
    """ Notification about a device. """

    def __init__(self, device_id, name):
        self.device_id = device_id
        self.name = name

    def __eq__(self, other):
        return type(other) is type(self) and self.__dict__ == other.__dict__

    def __hash__(self):
        return hash((type(self), tuple(sorted(self.__dict__.items()))))

    def __repr__(self):
        return "%s(%r)" % (type(self).__name__, self.__dict__)


class DeviceConnectedEvent(DeviceEvent):
    """ The device's serial link is open. """


class DeviceDisconnectedEvent(DeviceEvent):
    def __init__(self, device_id, name, reason=None):
        super().__init__(device_id, name)
        self.reason = reason


class DeviceErrorEvent(DeviceEvent):
    def __init__(self, device_id, name, message):
        super().__init__(device_id, name)
        self.message = message


class TelemetryUpdatedEvent(DeviceEvent):
    def __init__(self, device_id, name, telemetry):
        super().__init__(device_id, name)
        self.telemetry = telemetry
