"""
Application Configuration Module

Centralized configuration management for the payroll backend including
database, remote payroll computation, store deadlines and the consistency
monitor.
"""

import os
from typing import Dict, Any, Optional, List
import logging

from dotenv import load_dotenv

logger = logging.getLogger("payroll.config.app")

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class AppConfig:
    """Main application configuration manager."""

    def __init__(self):
        """Initialize configuration with environment variables and defaults."""
        self._load_config()

    def _load_config(self):
        """Load configuration from environment variables with fallbacks."""

        # Database configuration
        # SECURITY: No default credentials - DATABASE_URL must be explicitly configured
        database_url = os.getenv("DATABASE_URL", "")
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        self.database_url = database_url
        self.sql_nullpool = _env_bool("SQL_NULLPOOL", "true")
        self.sql_pool_size = int(os.getenv("SQL_POOL_SIZE", "5"))
        self.sql_max_overflow = int(os.getenv("SQL_MAX_OVERFLOW", "10"))
        self.sql_pool_timeout = int(os.getenv("SQL_POOL_TIMEOUT", "30"))
        self.sql_pool_recycle = int(os.getenv("SQL_POOL_RECYCLE", "1800"))
        self.sql_echo = _env_bool("SQL_ECHO", "false")

        # Remote payroll computation
        self.payroll_calculations_url = os.getenv(
            "PAYROLL_CALCULATIONS_URL", "http://127.0.0.1:54321/functions/v1/payroll-calculations"
        )
        self.payroll_calculations_token = os.getenv("PAYROLL_CALCULATIONS_TOKEN", "")
        self.payroll_calculations_timeout = float(os.getenv("PAYROLL_CALCULATIONS_TIMEOUT", "30"))
        self.payroll_calculations_max_attempts = int(os.getenv("PAYROLL_CALCULATIONS_MAX_ATTEMPTS", "3"))

        # Per-call deadline for store round-trips (0 = unbounded)
        self.store_call_timeout = float(os.getenv("STORE_CALL_TIMEOUT", "0"))

        # Server configuration
        self.host = os.getenv("HOST", "localhost")
        self.port = int(os.getenv("PORT", "8000"))
        self.debug = _env_bool("DEBUG", "false")
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_structured = _env_bool("LOG_STRUCTURED", "true")

        # Consistency monitor
        self.monitor_enabled = _env_bool("CONSISTENCY_MONITOR_ENABLED", "false")
        self.monitor_interval_seconds = int(os.getenv("CONSISTENCY_MONITOR_INTERVAL_SECONDS", "900"))
        self.monitor_auto_repair = _env_bool("CONSISTENCY_MONITOR_AUTO_REPAIR", "false")
        self.monitor_actor_id = os.getenv("CONSISTENCY_MONITOR_ACTOR_ID", "consistency-monitor")
        companies_raw = os.getenv("CONSISTENCY_MONITOR_COMPANY_IDS", "").strip()
        self.monitor_company_ids: Optional[List[str]] = (
            [c.strip() for c in companies_raw.split(",") if c.strip()] if companies_raw else None
        )

        logger.info("Application configuration loaded successfully")
        logger.debug(f"Payroll calculations endpoint: {self.payroll_calculations_url}")

    def get_database_config(self) -> Dict[str, Any]:
        """Get database configuration."""
        return {
            "url": self.database_url,
            "nullpool": self.sql_nullpool,
            "pool_size": self.sql_pool_size,
            "max_overflow": self.sql_max_overflow,
            "pool_timeout": self.sql_pool_timeout,
            "pool_recycle": self.sql_pool_recycle,
            "echo": self.sql_echo,
        }

    def get_calculations_config(self) -> Dict[str, Any]:
        """Get remote payroll computation configuration."""
        return {
            "url": self.payroll_calculations_url,
            "token": self.payroll_calculations_token,
            "timeout": self.payroll_calculations_timeout,
            "max_attempts": self.payroll_calculations_max_attempts,
        }

    def get_monitor_config(self) -> Dict[str, Any]:
        """Get consistency monitor configuration."""
        return {
            "enabled": self.monitor_enabled,
            "interval_seconds": self.monitor_interval_seconds,
            "auto_repair": self.monitor_auto_repair,
            "actor_id": self.monitor_actor_id,
            "company_ids": self.monitor_company_ids,
        }

    def validate_config(self) -> bool:
        """
        Validate the current configuration.

        Problems are logged rather than raised so a misconfigured optional
        component does not prevent startup.

        Returns:
            True if configuration is valid, False otherwise
        """
        validation_errors = []

        if not self.database_url:
            validation_errors.append("DATABASE_URL is required")
        elif not self.database_url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            validation_errors.append(
                "DATABASE_URL must use an async driver (postgresql+asyncpg:// or sqlite+aiosqlite://)"
            )

        if not self.payroll_calculations_url.startswith(("http://", "https://")):
            validation_errors.append("PAYROLL_CALCULATIONS_URL must start with http:// or https://")

        if self.payroll_calculations_timeout <= 0:
            validation_errors.append("PAYROLL_CALCULATIONS_TIMEOUT must be positive")

        if self.payroll_calculations_max_attempts < 1:
            validation_errors.append("PAYROLL_CALCULATIONS_MAX_ATTEMPTS must be at least 1")

        if self.store_call_timeout < 0:
            validation_errors.append("STORE_CALL_TIMEOUT must be >= 0 (0 = unbounded)")

        if self.sql_pool_size < 1:
            validation_errors.append("SQL_POOL_SIZE must be at least 1")

        if self.monitor_interval_seconds < 1:
            validation_errors.append("CONSISTENCY_MONITOR_INTERVAL_SECONDS must be at least 1")

        if self.port < 1 or self.port > 65535:
            validation_errors.append("PORT must be between 1 and 65535")

        for error in validation_errors:
            logger.error(f"Configuration error: {error}")

        return not validation_errors


# Global configuration instance
_app_config: Optional[AppConfig] = None


def get_app_config() -> AppConfig:
    """
    Get the global application configuration instance.

    Returns:
        AppConfig instance
    """
    global _app_config
    if _app_config is None:
        _app_config = AppConfig()
        if not _app_config.validate_config():
            logger.warning("Application configuration validation failed, using defaults")
    return _app_config


def reload_app_config() -> AppConfig:
    """
    Reload the application configuration from environment variables.

    Returns:
        New AppConfig instance
    """
    global _app_config
    _app_config = AppConfig()
    if not _app_config.validate_config():
        logger.warning("Application configuration validation failed after reload")
    return _app_config
