"""
Loads the application settings.

Settings are layered from several configuration files, each optional except the schema:

- <name>.default.cfg    shipped defaults
- <name>.<os>.cfg       platform specialization, e.g. serial port names on windows
- ~/<name>.cfg          the user's overrides
- a local file          given explicitly, e.g. on the command line

The merged configuration is validated against <name>.schema.cfg, which also supplies
defaults and converts values to their declared types.
"""
import logging
import os
import platform

from configobj import ConfigObj, ConfigObjError, flatten_errors
from validate import Validator

from tempsense.device.session import DeviceConfig

logger = logging.getLogger(__name__)

# The default extension for configuration files
config_extension = '.cfg'

config_name = 'tempsense'
config_directory = os.path.dirname(__file__)


class ConfigError(ConfigObjError):
    """ The configuration could not be read or is invalid. """


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('tempsense', 'windows')
    'tempsense.windows'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file_base(file, must_exist=True) -> ConfigObj:
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file, empty if the file doesn't exist.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise ConfigError(str(e) + ' at ' + file) from e


def config_flavor_file(name, directory, flavor=None) -> ConfigObj:
    return load_config_file_base(config_filename(config_flavor(name, flavor), directory), must_exist=False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def user_config_file(name=config_name):
    return os.path.expanduser('~/' + name + config_extension)


def load_config(name=config_name, directory=config_directory, user_file=None, local_file=None) -> ConfigObj:
    """
    Loads and validates the layered configuration.
    :param name:        the base name of the configuration files
    :param directory:   the directory holding the default, platform and schema files
    :param user_file:   the user's override file. Defaults to ~/<name>.cfg
    :param local_file:  an additional override file applied last. It must exist if given.
    :raises ConfigError: if a file can't be parsed or the result fails validation
    """
    schema_file = config_filename(config_flavor(name, 'schema'), directory)
    config = ConfigObj(configspec=schema_file)
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(load_config_file_base(user_file or user_config_file(name), must_exist=False))
    if local_file:
        config.merge(load_config_file_base(local_file))

    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        errors = []
        for sections, key, error in flatten_errors(config, result):
            location = '/'.join(sections + ([key] if key else []))
            errors.append("%s: %s" % (location, error or 'missing'))
        raise ConfigError("the config %s failed validation: %s" % (name, "; ".join(errors)))
    return config


class Settings:
    """ The validated application settings. """

    def __init__(self, config):
        self.osc_host = config['osc']['host']
        self.osc_port = config['osc']['port']
        self.loop_interval = config['loop']['interval']
        self.log_capacity = config['loop']['log_capacity']
        serial_conf = config['serial']
        self.worker_options = {
            'open_timeout': serial_conf['open_timeout'],
            'read_timeout': serial_conf['read_timeout'],
            'loop_interval': serial_conf['loop_interval'],
        }
        self.fallback_device = config['setpoint']['fallback_device']
        self.unknown_device_policy = config['setpoint']['unknown_device_policy']
        self.devices = [DeviceConfig(i, name, section['port'], section['baud_rate'])
                        for i, (name, section) in enumerate(config['devices'].items())]
        if not self.devices:
            raise ConfigError("no devices configured")


def load_settings(**kwargs) -> Settings:
    """ Loads the configuration and builds the settings. Takes the same arguments as load_config. """
    settings = Settings(load_config(**kwargs))
    logger.info("configured devices: %s" % ", ".join("%s=%s" % (d.name, d.port) for d in settings.devices))
    return settings
