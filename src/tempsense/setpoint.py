"""
Turns external setpoint events into per-device target temperatures.

External events arrive as (device_id, value) tuples on a queue, typically produced by an OSC listener.
Each device can be put under manual override, in which case external events for it are ignored and
its target only changes through manual_set().

Targets are forwarded to the devices by dispatch(), which only sends a device its target when the
target differs from the last value forwarded.
"""
import logging
import re
from queue import Empty

from tempsense.message_log import APP, MessageLog

logger = logging.getLogger(__name__)

# what to do with events for an unknown device
FALLBACK = "fallback"   # apply to the fallback device
DROP = "drop"           # discard
UNKNOWN_DEVICE_POLICIES = (FALLBACK, DROP)

# the signed 8 bit range used by the device firmware
MIN_SETPOINT = -128
MAX_SETPOINT = 127

OSC_SCALE = 100
_osc_address = re.compile(r"^/Pelt(\d+)$")


def setpoint_from_osc(address, value, scale=OSC_SCALE):
    """
    Maps an OSC address and float argument to a setpoint event.
    '/Pelt1' addresses device 0, '/Pelt2' device 1 and so on. The value is scaled, truncated
    and saturated to the setpoint range.

    >>> setpoint_from_osc('/Pelt2', 0.25)
    (1, 25)

    :return: the tuple (device_id, value). device_id is None if the address isn't recognised.
    """
    match = _osc_address.match(address)
    device_id = int(match.group(1)) - 1 if match and int(match.group(1)) > 0 else None
    if device_id is None:
        logger.warning("OSC address '%s' is not a /PeltN address" % address)
    scaled = int(value * scale)
    return device_id, max(MIN_SETPOINT, min(MAX_SETPOINT, scaled))


class SetpointState:
    def __init__(self, target_temperature=0):
        self.target_temperature = target_temperature
        self.previous_sent_temperature = target_temperature
        self.manual_override = False

    @property
    def changed(self):
        return self.target_temperature != self.previous_sent_temperature

    def __repr__(self):
        return "SetpointState(target=%d, sent=%d, override=%s)" % (
            self.target_temperature, self.previous_sent_temperature, self.manual_override)


class SetpointPipeline:
    """
    :param device_ids: the known devices
    :param message_log: receives user visible messages
    :param fallback_device: the device that receives events addressed to an unknown device
    :param unknown_device_policy: FALLBACK or DROP
    """

    def __init__(self, device_ids, message_log: MessageLog=None, fallback_device=0, unknown_device_policy=FALLBACK):
        if unknown_device_policy not in UNKNOWN_DEVICE_POLICIES:
            raise ValueError("unknown device policy '%s'" % unknown_device_policy)
        self._states = {device_id: SetpointState() for device_id in device_ids}
        if unknown_device_policy == FALLBACK and fallback_device not in self._states:
            raise ValueError("fallback device %s is not a known device" % fallback_device)
        self.message_log = message_log if message_log is not None else MessageLog()
        self.fallback_device = fallback_device
        self.unknown_device_policy = unknown_device_policy

    def state(self, device_id) -> SetpointState:
        return self._states[device_id]

    def target(self, device_id) -> int:
        return self._states[device_id].target_temperature

    def ingest(self, device_id, value) -> bool:
        """
        Applies an external setpoint event.
        :return: True if a device target was updated.
        """
        if device_id not in self._states:
            if self.unknown_device_policy == DROP:
                self.message_log.add(APP, "Setpoint %s for unknown device %s dropped." % (value, device_id),
                                     logging.WARNING)
                return False
            self.message_log.add(APP, "Invalid device id: %s. Defaulting to device %s." %
                                 (device_id, self.fallback_device), logging.WARNING)
            device_id = self.fallback_device
        state = self._states[device_id]
        if state.manual_override:
            logger.debug("device %s under manual override, ignoring setpoint %s" % (device_id, value))
            return False
        state.target_temperature = int(value)
        logger.debug("setpoint update for device %s: %s" % (device_id, value))
        return True

    def drain(self, source) -> int:
        """
        Applies every event currently queued without blocking.
        :param source: a queue.Queue of (device_id, value) tuples
        :return: the number of events read
        """
        count = 0
        while True:
            try:
                device_id, value = source.get_nowait()
            except Empty:
                return count
            count += 1
            self.ingest(device_id, value)

    def set_override(self, device_id, enabled: bool):
        state = self._states[device_id]
        if state.manual_override != enabled:
            state.manual_override = enabled
            self.message_log.add(APP, "Manual override %s for device %s." % ("enabled" if enabled else "disabled",
                                                                           device_id))

    def manual_set(self, device_id, value: int):
        """ Sets the target directly. Allowed whether or not the device is under override. """
        self._states[device_id].target_temperature = int(value)
        self.message_log.add(APP, "Manual override: device %s target directly set to %d°C" % (device_id, value))

    def manual_set_text(self, device_id, text) -> bool:
        """
        Sets the target from user input.
        :return: False if the text is not an integer in the setpoint range. The target is then unchanged.
        """
        try:
            value = int(text.strip())
        except ValueError:
            value = None
        if value is None or not MIN_SETPOINT <= value <= MAX_SETPOINT:
            self.message_log.add(APP, "Invalid temperature input for device %s: '%s'" % (device_id, text),
                                 logging.WARNING)
            return False
        self.manual_set(device_id, value)
        return True

    def dispatch(self, orchestrator):
        """
        Sends each changed target to its device. A change for a disconnected device is reported as
        a failed delivery and is not retried.
        :return: the ids of the devices a setpoint was sent to
        """
        sent = []
        for device_id, state in self._states.items():
            if not state.changed:
                continue
            # a disconnected device is reported by send_setpoint
            if orchestrator.send_setpoint(device_id, state.target_temperature):
                sent.append(device_id)
            state.previous_sent_temperature = state.target_temperature
        return sent
