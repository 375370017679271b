"""Configuration module."""

from promptloop.core.config.loader import load_config
from promptloop.core.config.schema import Config

__all__ = ["Config", "load_config"]
