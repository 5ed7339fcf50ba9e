"""Configuration module for the RWA index fund engine."""

from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
