"""
Manages the device sessions: spawns a worker thread per device on connect, forwards commands,
and reconciles the status reported by each worker into the state exposed to the user interface.

All methods are expected to be called from a single thread, typically the control loop.
Workers run on their own threads and communicate only through their command and status channels.

Session lifecycle:

    IDLE --connect()--> SPAWNING --Connected--> CONNECTED --disconnect()--> DISCONNECTING
      ^                     |                       |                           |
      +----- Error ---------+------ Disconnected ---+-------- Disconnected -----+

Whenever a session returns to IDLE its worker is stopped and joined, and its channels are dropped,
so an idle session never holds a thread or a channel.
"""
import logging
import threading
from collections import OrderedDict

from tempsense.device.channel import ChannelClosedError, channel_pair
from tempsense.device.protocol import Connect, Connected, Disconnect, Disconnected, Error, Message, PING_COMMAND, \
    SendCommand, Stop, set_temperature_command, temperature_active_command
from tempsense.device.session import DeviceConfig, DeviceSession, SessionState
from tempsense.device.worker import DeviceWorker
from tempsense.events import DeviceConnectedEvent, DeviceDisconnectedEvent, DeviceErrorEvent, EventSource, \
    TelemetryUpdatedEvent
from tempsense.message_log import APP, MessageLog
from tempsense.telemetry import parse_telemetry

logger = logging.getLogger(__name__)


class DeviceOrchestrator:
    """
    Owns one DeviceSession per device, keyed by device id.

    :param devices: the DeviceConfig for each device
    :param message_log: the rolling log that receives a line for every device state change
    :param worker_factory: callable(device, commands, status) returning a worker with a run() method
        and a failure attribute. Defaults to creating a DeviceWorker.
    :param worker_options: keyword arguments passed to DeviceWorker by the default factory
    """

    def __init__(self, devices, message_log: MessageLog=None, worker_factory=None, worker_options=None, log=logger):
        self._sessions = OrderedDict((d.device_id, DeviceSession(d)) for d in devices)
        self.message_log = message_log if message_log is not None else MessageLog()
        self.worker_options = worker_options or {}
        self.worker_factory = worker_factory or self._new_worker
        self.events = EventSource()
        self.logger = log

    @property
    def device_ids(self):
        return tuple(self._sessions.keys())

    @property
    def sessions(self):
        return dict(self._sessions)

    def session(self, device_id) -> DeviceSession:
        """
        :raises KeyError: if the device is not known.
        """
        return self._sessions[device_id]

    def is_connected(self, device_id) -> bool:
        return self.session(device_id).connected

    def status_text(self, device_id) -> str:
        return self.session(device_id).status_text

    def telemetry(self, device_id):
        return self.session(device_id).telemetry

    def configure(self, device_id, port=None, baud_rate=None):
        """
        Changes the port or baud rate used on the next connect. Only allowed while the device is idle.
        :return: True if the settings were applied.
        """
        session = self.session(device_id)
        if not session.idle:
            self._report(session, "Cannot change port settings while connected.", logging.WARNING)
            return False
        if baud_rate is not None and (not isinstance(baud_rate, int) or baud_rate < 1):
            self._report(session, "Invalid baud rate: %s" % (baud_rate,), logging.WARNING)
            return False
        if port is not None:
            session.device.port = port
        if baud_rate is not None:
            session.device.baud_rate = baud_rate
        return True

    # actions

    def connect(self, device_id) -> bool:
        """
        Spawns a worker for the device and asks it to open the serial port.
        The outcome is reported asynchronously and applied by reconcile().
        :return: True if the connect request was issued.
        """
        session = self.session(device_id)
        if not session.idle:
            self._report(session, "Already connected or connection attempt in progress.", logging.WARNING)
            return False
        device = session.device
        self._spawn(session)
        try:
            session.commands.send(Connect(device.port, device.baud_rate))
        except ChannelClosedError as e:
            self._report(session, "Failed to send connect cmd: %s" % e, logging.ERROR)
            self._release(session)
            return False
        self._report(session, "Attempting to connect to %s @ %s (%d baud)..." %
                     (device.name, device.port, device.baud_rate))
        return True

    def disconnect(self, device_id) -> bool:
        session = self.session(device_id)
        if session.commands is None:
            self._report(session, "Not connected.", logging.WARNING)
            return False
        if not self._send(session, Disconnect(), "disconnect cmd"):
            return False
        session.state = SessionState.DISCONNECTING
        self._report(session, "Disconnect command sent.")
        return True

    def send_command(self, device_id, text) -> bool:
        """
        Sends a line of text to the device.
        :return: True if the command was passed to the worker.
        """
        session = self.session(device_id)
        if session.commands is None:
            self._report(session, "Not connected. Cannot send '%s'." % text, logging.WARNING)
            return False
        if not self._send(session, SendCommand(text), "'%s'" % text):
            return False
        self.message_log.add(session.name, "Sent command: %s" % text)
        return True

    def send_setpoint(self, device_id, temperature: int) -> bool:
        session = self.session(device_id)
        if not session.connected:
            self._report(session, "Attempted to send setpoint %d while not connected." % temperature,
                         logging.WARNING)
            return False
        sent = self.send_command(device_id, set_temperature_command(temperature))
        if sent:
            session.last_sent_setpoint = temperature
        return sent

    def ping(self, device_id) -> bool:
        return self.send_command(device_id, PING_COMMAND)

    def set_active(self, active: bool):
        """
        Enables or disables temperature control on every connected device.
        :return: the ids of the devices the command was sent to
        """
        action = "START" if active else "STOP"
        sent = []
        for session in self._sessions.values():
            if not session.connected:
                self._report(session, "Cannot %s, not connected." % action, logging.WARNING)
            elif self._send(session, SendCommand(temperature_active_command(active)), action):
                self._report(session, "%s command sent." % action)
                sent.append(session.device_id)
        return sent

    # reconciliation

    def reconcile(self):
        """
        Applies all status messages queued by the workers. Never blocks on device I/O.
        Called once per control loop iteration.
        """
        for session in list(self._sessions.values()):
            self._drain(session)

    def _drain(self, session: DeviceSession):
        status_channel = session.status
        # stops once the session is released, discarding the rest of the old channel
        while status_channel is not None and session.status is status_channel:
            try:
                status = status_channel.try_receive()
            except ChannelClosedError:
                self._report(session, "Worker exited unexpectedly.", logging.ERROR)
                self._release(session)
                self.events.fire(DeviceDisconnectedEvent(session.device_id, session.name, "worker exited"))
                return
            if status is None:
                return
            self._handle(session, status)

    def _handle(self, session, status):
        if isinstance(status, Connected):
            self._on_connected(session)
        elif isinstance(status, Disconnected):
            self._on_disconnected(session, status)
        elif isinstance(status, Error):
            self._on_error(session, status)
        elif isinstance(status, Message):
            self._on_message(session, status)
        else:
            self.logger.warning("%s: ignoring unknown status %r" % (session.name, status))

    def _on_connected(self, session):
        session.connected = True
        if session.state is SessionState.SPAWNING:
            session.state = SessionState.CONNECTED
        self._report(session, "Connected.")
        self.events.fire(DeviceConnectedEvent(session.device_id, session.name))

    def _on_disconnected(self, session, status: Disconnected):
        reason = status.reason or "Disconnected by worker."
        self._report(session, reason)
        self._release(session)
        self.events.fire(DeviceDisconnectedEvent(session.device_id, session.name, reason))

    def _on_error(self, session, status: Error):
        self._report(session, "Error: %s" % status.message, logging.WARNING)
        self.events.fire(DeviceErrorEvent(session.device_id, session.name, status.message))
        if not session.connected and session.state in (SessionState.SPAWNING, SessionState.DISCONNECTING):
            # the connection attempt failed, the worker is idle
            self._release(session)

    def _on_message(self, session, status: Message):
        self.message_log.add(session.name, "MSG: %s" % status.text, logging.DEBUG)
        reading = parse_telemetry(status.text, session.name)
        for error in reading.errors:
            self.message_log.add(session.name, "Telemetry parse error: %s" % error, logging.WARNING)
        if reading:
            session.telemetry.update(reading)
            self.events.fire(TelemetryUpdatedEvent(session.device_id, session.name, session.telemetry))

    # lifecycle

    def shutdown(self):
        """ Stops and joins every worker. Each device that was still active is reported as stopped. """
        active = [session for session in self._sessions.values() if not session.idle]
        if active:
            self.message_log.add(APP, "Stopping device workers.")
        for session in active:
            self._release(session)
            self._report(session, "Worker stopped.")
            self.events.fire(DeviceDisconnectedEvent(session.device_id, session.name, "Worker stopped."))
        self.logger.info("all device workers stopped")

    def _new_worker(self, device: DeviceConfig, commands, status):
        return DeviceWorker(commands, status, name=device.name, **self.worker_options)

    def _spawn(self, session: DeviceSession):
        commands, status = channel_pair(session.name)
        worker = self.worker_factory(session.device, commands, status)
        thread = threading.Thread(target=worker.run, name="%s-worker" % session.name, daemon=True)
        session.attach(worker, thread, commands, status)
        thread.start()

    def _send(self, session, command, description):
        try:
            session.commands.send(command)
            return True
        except ChannelClosedError as e:
            self._report(session, "Failed to send %s: %s" % (description, e), logging.ERROR)
            self._release(session)
            return False

    def _release(self, session: DeviceSession):
        """
        Returns the session to IDLE: asks the worker to stop, waits for its thread to end and drops the channels.
        """
        worker, thread, commands = session.detach()
        if commands is not None:
            try:
                commands.send(Stop())
            except ChannelClosedError:
                pass    # the worker has already gone
            commands.close()
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        failure = getattr(worker, 'failure', None)
        if failure is not None:
            self.message_log.add(session.name, "Worker thread failed: %r" % failure, logging.ERROR)

    def _report(self, session, text, level=logging.INFO):
        session.status_text = "%s: %s" % (session.name, text)
        self.message_log.add(session.name, text, level)
