"""
The owner-side record for one device.
"""
from enum import Enum

from tempsense.telemetry import Telemetry


class SessionState(Enum):
    IDLE = "idle"                       # no worker thread, no channels
    SPAWNING = "spawning"               # worker started, waiting for the connection outcome
    CONNECTED = "connected"             # the worker reported Connected
    DISCONNECTING = "disconnecting"     # Disconnect sent, waiting for Disconnected


class DeviceConfig:
    """ Identifies a device and the serial port it is attached to. """

    def __init__(self, device_id: int, name: str, port: str, baud_rate: int=115200):
        self.device_id = device_id
        self.name = name
        self.port = port
        self.baud_rate = baud_rate

    def __repr__(self):
        return "DeviceConfig(%d, %r, %r, %d)" % (self.device_id, self.name, self.port, self.baud_rate)


class DeviceSession:
    """
    Holds the worker, thread and channels for a device together with the state last reported by the worker.

    The resources are only present while the session is not IDLE. The orchestrator is the only writer.
    """

    def __init__(self, device: DeviceConfig):
        self.device = device
        self.state = SessionState.IDLE
        self.commands = None        # Channel of Command, owner to worker
        self.status = None          # Channel of Status, worker to owner
        self.worker = None
        self.thread = None
        self.connected = False
        self.status_text = "%s: Not connected." % device.name
        self.last_sent_setpoint = None
        self.telemetry = Telemetry()

    @property
    def device_id(self):
        return self.device.device_id

    @property
    def name(self):
        return self.device.name

    @property
    def idle(self):
        return self.state is SessionState.IDLE

    def attach(self, worker, thread, commands, status):
        """ binds a newly spawned worker to this session. """
        self.worker = worker
        self.thread = thread
        self.commands = commands
        self.status = status
        self.state = SessionState.SPAWNING

    def detach(self):
        """
        Clears the worker resources and returns the session to IDLE.
        :return: the tuple (worker, thread, commands) that was attached, for the caller to tear down.
        """
        attached = self.worker, self.thread, self.commands
        self.worker = self.thread = self.commands = self.status = None
        self.connected = False
        self.state = SessionState.IDLE
        return attached

    def __repr__(self):
        return "DeviceSession(%s, %s)" % (self.device.name, self.state.name)
