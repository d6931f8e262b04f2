"""Configuration module for capslap."""

from capslap.config.loader import clear_config_cache, get_config, get_config_path, load_config, save_config
from capslap.config.schema import Config, LoggingConfig, SidecarConfig

__all__ = [
    "Config",
    "LoggingConfig",
    "SidecarConfig",
    "load_config",
    "save_config",
    "get_config_path",
    "get_config",
    "clear_config_cache",
]
