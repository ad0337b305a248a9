"""Configuration loading and validation."""

from fipcontroller.config.loader import CONFIG_PATH_ENV, ENV_FIELDS, Config, load_config

__all__ = [
    "load_config",
    "Config",
    "CONFIG_PATH_ENV",
    "ENV_FIELDS",
]
