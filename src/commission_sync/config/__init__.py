"""Configuration module for the commission sync engine."""

from commission_sync.config.logging import configure_logging
from commission_sync.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "configure_logging"]
