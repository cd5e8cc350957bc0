"""Configuration module for settings and constants."""

from triarb.config.settings import Settings, get_settings


__all__ = ["Settings", "get_settings"]
