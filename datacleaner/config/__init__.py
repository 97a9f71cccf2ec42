"""
Configuration Module
====================

Environment-based settings via pydantic-settings.
"""

from datacleaner.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
