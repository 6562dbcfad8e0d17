"""
Configuration management for the tunnel.
"""

from .loader import ConfigLoader
from .models import ApplicationConfig, LoggingConfig, SSHTunnelConfig

__all__ = [
    "ConfigLoader",
    "ApplicationConfig",
    "LoggingConfig",
    "SSHTunnelConfig",
]
