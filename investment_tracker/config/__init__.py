"""Configuration package for the investment tracker service."""

from .settings import TrackerSettings, get_settings

__all__ = ["TrackerSettings", "get_settings"]
