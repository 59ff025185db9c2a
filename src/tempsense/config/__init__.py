from .config import ConfigError, Settings, load_config, load_settings

__all__ = [
    'ConfigError',
    'Settings',
    'load_config',
    'load_settings',
]
