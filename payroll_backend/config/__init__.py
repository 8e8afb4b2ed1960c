"""
Configuration Package

Centralized configuration management for the payroll backend.
"""

from .app_config import get_app_config, reload_app_config, AppConfig
from .thresholds import LiquidationThresholds

__all__ = [
    'get_app_config',
    'reload_app_config',
    'AppConfig',
    'LiquidationThresholds',
]
