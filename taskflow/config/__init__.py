"""Configuration module for taskflow."""

from taskflow.config.loader import get_config_path, load_config
from taskflow.config.schema import Config

__all__ = ["Config", "load_config", "get_config_path"]
