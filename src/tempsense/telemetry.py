"""
Parses the status lines reported by a device.

A status line is a comma separated list of key:value pairs, for example

    Skin_Temp_Smoothed:12.12,Exterior_Temp:18.73

Keys listed in TELEMETRY_FIELDS are converted to floats and stored under the mapped attribute name.
Other keys are ignored so that newer firmware can add fields.
"""
import logging

logger = logging.getLogger(__name__)

# maps the device key to the telemetry attribute
TELEMETRY_FIELDS = {
    'Skin_Temp_Smoothed': 'skin_temperature',
    'Exterior_Temp': 'exterior_temperature',
}


class TelemetryParseError(ValueError):
    """ A recognised telemetry field with a value that isn't a number. """

    def __init__(self, device, key, value):
        super().__init__("%s: invalid value '%s' for %s" % (device, value, key))
        self.device = device
        self.key = key
        self.value = value


class TelemetryReading:
    """ The result of parsing one line: the fields that parsed, and the errors for those that didn't. """

    def __init__(self, device, values=None, errors=None):
        self.device = device
        self.values = values if values is not None else {}
        self.errors = errors if errors is not None else []

    def __bool__(self):
        return bool(self.values)

    def __repr__(self):
        return "TelemetryReading(%r, %r, %r)" % (self.device, self.values, self.errors)


def parse_telemetry(line: str, device, fields=TELEMETRY_FIELDS) -> TelemetryReading:
    """
    Parses a single status line from the named device.

    >>> parse_telemetry("Skin_Temp_Smoothed:12.12, Unknown:3", "A").values
    {'skin_temperature': 12.12}

    :param line:    the text received from the device
    :param device:  the device name, used in error reports
    :param fields:  maps recognised keys to attribute names
    :return: a TelemetryReading. A value that cannot be parsed is reported in the errors list
        and does not prevent other fields from being parsed.
    """
    reading = TelemetryReading(device)
    for part in line.split(','):
        key, sep, value = part.partition(':')
        if not sep:
            continue
        name = fields.get(key.strip())
        if name is None:
            continue
        value = value.strip()
        try:
            reading.values[name] = float(value)
        except ValueError:
            reading.errors.append(TelemetryParseError(device, key.strip(), value))
    return reading


class Telemetry:
    """
    The latest telemetry for a device. Fields retain their last good value.
    """

    def __init__(self):
        self.values = {}

    @property
    def skin_temperature(self):
        return self.values.get('skin_temperature')

    @property
    def exterior_temperature(self):
        return self.values.get('exterior_temperature')

    def get(self, name, default=None):
        return self.values.get(name, default)

    def update(self, reading: TelemetryReading):
        """ applies the successfully parsed values from a reading. """
        self.values.update(reading.values)
