"""Configuration module for the advisor backend."""

from advisor.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
