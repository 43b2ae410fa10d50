"""
Static configuration management for Questline.

Purpose
-------
Provides centralized static configuration loaded from environment variables
with sensible defaults, type validation, and bounds checking. This module
handles settings that are fixed at process startup: connection strings, pool
sizes, logging switches, and the lock backend.

Responsibilities
----------------
- Load configuration from environment variables with .env support
- Provide type-safe access to all static configuration values
- Validate critical settings on startup
- Create required directories (logs, data)
- Track which values came from the environment versus defaults

Non-Responsibilities
--------------------
- Gameplay tunables such as reward XP or quest content (ConfigManager)
- Runtime configuration changes (except safe reload)
- Secrets management (use environment variables)

Architecture Notes
------------------
- Singleton pattern via class methods (no instantiation)
- Auto-loads on module import via Config.validate()
- Directory paths relative to project root for portability

Environment Variables
---------------------
- ENVIRONMENT: development | testing | staging | production
- DEBUG, LOG_LEVEL, LOG_JSON, LOG_TO_FILE
- DATABASE_URL (default: local SQLite file via aiosqlite)
- DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW, DATABASE_POOL_RECYCLE,
  DATABASE_POOL_TIMEOUT, DATABASE_STATEMENT_TIMEOUT_MS, DATABASE_ECHO,
  DATABASE_AUTO_CREATE
- REDIS_URL, REDIS_MAX_CONNECTIONS, REDIS_SOCKET_TIMEOUT
- LOCK_BACKEND: redis | memory
- API_HOST, API_PORT
- CONFIG_DIR: directory holding the YAML tunables
"""

import logging
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


# ============================================================================
# Enums
# ============================================================================


class Environment(Enum):
    """Deployment environment types."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """
        Parse environment string safely with fallback.

        Example
        -------
        >>> Environment.from_string("production") == Environment.PRODUCTION
        True
        >>> Environment.from_string("invalid") == Environment.DEVELOPMENT
        True
        """
        try:
            return cls(value.lower())
        except ValueError:
            # Structured logger is not initialized during bootstrap
            logging.warning(f"Unknown environment '{value}', defaulting to development")
            return cls.DEVELOPMENT


class LockBackend(Enum):
    """Backends available for per-user mutation locks."""

    REDIS = "redis"
    MEMORY = "memory"


# ============================================================================
# Configuration Metrics Tracker
# ============================================================================


class _ConfigLoadMetrics:
    """
    Internal metrics tracker for configuration loading.

    Tracks which configuration values came from environment variables
    versus defaults, and any validation errors encountered.
    """

    def __init__(self):
        self.env_vars_loaded: Dict[str, bool] = {}
        self.validation_errors: Dict[str, str] = {}
        self.defaults_used: Dict[str, Any] = {}
        self.last_reload: Optional[str] = None

    def record_env_load(self, key: str, from_env: bool, default: Any):
        self.env_vars_loaded[key] = from_env
        if not from_env:
            self.defaults_used[key] = default

    def record_validation_error(self, key: str, error: str):
        self.validation_errors[key] = error

    def get_summary(self) -> Dict[str, Any]:
        return {
            "total_configs": len(self.env_vars_loaded),
            "from_environment": sum(1 for v in self.env_vars_loaded.values() if v),
            "from_defaults": sum(1 for v in self.env_vars_loaded.values() if not v),
            "validation_errors": len(self.validation_errors),
            "last_reload": self.last_reload,
        }


# ============================================================================
# Main Configuration Class
# ============================================================================


class Config:
    """
    Centralized static configuration for the Questline service.

    Usage
    -----
    >>> db_url = Config.DATABASE_URL
    >>> if Config.is_production():
    ...     logger.info("Running in production mode")
    >>> summary = Config.get_config_summary()
    """

    # =========================================================================
    # Internal State
    # =========================================================================

    _metrics: Optional[_ConfigLoadMetrics] = None
    _validated: bool = False

    # =========================================================================
    # Database Configuration
    # =========================================================================

    DATABASE_URL: str = "sqlite+aiosqlite:///./data/questline.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 10
    DATABASE_POOL_RECYCLE: int = 1800
    DATABASE_POOL_TIMEOUT: int = 30
    DATABASE_STATEMENT_TIMEOUT_MS: int = 30_000
    DATABASE_ECHO: bool = False
    DATABASE_AUTO_CREATE: bool = True

    # =========================================================================
    # Redis / Locking Configuration
    # =========================================================================

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 50
    REDIS_SOCKET_TIMEOUT: int = 5
    LOCK_BACKEND: str = LockBackend.MEMORY.value

    # =========================================================================
    # Environment Configuration
    # =========================================================================

    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: Optional[bool] = None
    LOG_TO_FILE: bool = False

    # =========================================================================
    # Paths
    # =========================================================================

    PROJECT_ROOT = Path(__file__).resolve().parents[3]
    LOGS_DIR = PROJECT_ROOT / "logs"
    DATA_DIR = PROJECT_ROOT / "data"
    CONFIG_DIR = PROJECT_ROOT / "config"

    # =========================================================================
    # HTTP API
    # =========================================================================

    APP_NAME: str = "Questline"
    APP_VERSION: str = "1.0.0"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000

    # =========================================================================
    # Helper Methods
    # =========================================================================

    @classmethod
    def _init_metrics(cls):
        if cls._metrics is None:
            cls._metrics = _ConfigLoadMetrics()

    @classmethod
    def _record_error(cls, key: str, error: str) -> None:
        logging.warning(error)
        if cls._metrics:
            cls._metrics.record_validation_error(key, error)

    @classmethod
    def _safe_int(
        cls,
        key: str,
        default: int,
        min_val: Optional[int] = None,
        max_val: Optional[int] = None,
    ) -> int:
        """
        Safely parse integer from environment with validation.

        Parameters
        ----------
        key:
            Environment variable name.
        default:
            Default value if not set or invalid.
        min_val:
            Minimum allowed value (inclusive).
        max_val:
            Maximum allowed value (inclusive).

        Example
        -------
        >>> Config._safe_int("DATABASE_POOL_SIZE", 10, min_val=1, max_val=200)
        10
        """
        cls._init_metrics()
        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default)
            return default

        try:
            value = int(raw_value)
        except ValueError:
            cls._record_error(
                key, f"{key}='{raw_value}' is not a valid integer, using default {default}"
            )
            return default

        if min_val is not None and value < min_val:
            cls._record_error(
                key, f"{key}={value} is below minimum {min_val}, using default {default}"
            )
            return default

        if max_val is not None and value > max_val:
            cls._record_error(
                key, f"{key}={value} exceeds maximum {max_val}, using default {default}"
            )
            return default

        if cls._metrics:
            cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_bool(cls, key: str, default: Optional[bool]) -> Optional[bool]:
        """
        Safely parse boolean from environment.

        Recognizes: true/false, yes/no, 1/0, on/off (case-insensitive).
        """
        cls._init_metrics()
        raw_value = os.getenv(key)

        if raw_value is None:
            if cls._metrics:
                cls._metrics.record_env_load(key, False, default)
            return default

        normalized = raw_value.lower().strip()
        if normalized in {"true", "yes", "1", "on"}:
            value = True
        elif normalized in {"false", "no", "0", "off"}:
            value = False
        else:
            cls._record_error(
                key, f"{key}='{raw_value}' is not a valid boolean, using default {default}"
            )
            return default

        if cls._metrics:
            cls._metrics.record_env_load(key, True, default)
        return value

    @classmethod
    def _safe_str(cls, key: str, default: str, choices: Optional[set] = None) -> str:
        """
        Safely get string from environment, optionally restricted to choices.
        """
        cls._init_metrics()
        value = os.getenv(key, default)
        from_env = key in os.environ

        if choices is not None and value.lower() not in choices:
            cls._record_error(
                key, f"{key}='{value}' is not one of {sorted(choices)}, using default {default}"
            )
            value = default
            from_env = False

        if cls._metrics:
            cls._metrics.record_env_load(key, from_env, default)
        return value

    @classmethod
    def _safe_path(cls, key: str, default: Path) -> Path:
        raw_value = os.getenv(key)
        if not raw_value:
            return default
        return Path(raw_value).expanduser().resolve()

    # =========================================================================
    # Configuration Loading
    # =========================================================================

    @classmethod
    def load(cls) -> None:
        """
        Load all configuration from environment variables with validation.

        Called automatically on import; call again to pick up environment
        changes (tests set variables and reload).
        """
        cls._init_metrics()

        # Database
        cls.DATABASE_URL = cls._safe_str(
            "DATABASE_URL", "sqlite+aiosqlite:///./data/questline.db"
        )
        cls.DATABASE_POOL_SIZE = cls._safe_int(
            "DATABASE_POOL_SIZE", 10, min_val=1, max_val=200
        )
        cls.DATABASE_MAX_OVERFLOW = cls._safe_int(
            "DATABASE_MAX_OVERFLOW", 10, min_val=0, max_val=200
        )
        cls.DATABASE_POOL_RECYCLE = cls._safe_int("DATABASE_POOL_RECYCLE", 1800, min_val=60)
        cls.DATABASE_POOL_TIMEOUT = cls._safe_int(
            "DATABASE_POOL_TIMEOUT", 30, min_val=1, max_val=600
        )
        cls.DATABASE_STATEMENT_TIMEOUT_MS = cls._safe_int(
            "DATABASE_STATEMENT_TIMEOUT_MS", 30_000, min_val=100
        )
        cls.DATABASE_ECHO = bool(cls._safe_bool("DATABASE_ECHO", False))
        cls.DATABASE_AUTO_CREATE = bool(cls._safe_bool("DATABASE_AUTO_CREATE", True))

        # Redis / locking
        cls.REDIS_URL = cls._safe_str("REDIS_URL", "redis://localhost:6379/0")
        cls.REDIS_MAX_CONNECTIONS = cls._safe_int(
            "REDIS_MAX_CONNECTIONS", 50, min_val=1, max_val=500
        )
        cls.REDIS_SOCKET_TIMEOUT = cls._safe_int(
            "REDIS_SOCKET_TIMEOUT", 5, min_val=1, max_val=60
        )
        cls.LOCK_BACKEND = cls._safe_str(
            "LOCK_BACKEND",
            LockBackend.MEMORY.value,
            choices={backend.value for backend in LockBackend},
        ).lower()

        # Environment
        cls.ENVIRONMENT = cls._safe_str("ENVIRONMENT", "development")
        cls.DEBUG = bool(cls._safe_bool("DEBUG", False))
        cls.LOG_LEVEL = cls._safe_str("LOG_LEVEL", "INFO")
        cls.LOG_JSON = cls._safe_bool("LOG_JSON", None)
        cls.LOG_TO_FILE = bool(cls._safe_bool("LOG_TO_FILE", False))

        # Paths
        cls.LOGS_DIR = cls._safe_path("LOGS_DIR", cls.PROJECT_ROOT / "logs")
        cls.DATA_DIR = cls._safe_path("DATA_DIR", cls.PROJECT_ROOT / "data")
        cls.CONFIG_DIR = cls._safe_path("CONFIG_DIR", cls.PROJECT_ROOT / "config")

        # HTTP
        cls.API_HOST = cls._safe_str("API_HOST", "127.0.0.1")
        cls.API_PORT = cls._safe_int("API_PORT", 8000, min_val=1, max_val=65535)

        if cls._metrics:
            cls._metrics.last_reload = datetime.now(timezone.utc).isoformat()

    @classmethod
    def validate(cls, force: bool = False) -> None:
        """
        Validate critical configuration values on startup.

        Raises
        ------
        ValueError
            If required values are missing or invalid in production.
        """
        if cls._validated and not force:
            return

        logger = logging.getLogger(__name__)
        cls.load()

        try:
            if not cls.DATABASE_URL:
                raise ValueError("DATABASE_URL environment variable is required")

            if cls.LOG_LEVEL.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
                logger.warning(f"Invalid LOG_LEVEL '{cls.LOG_LEVEL}', using INFO")
                cls.LOG_LEVEL = "INFO"

            if cls.DATABASE_URL.startswith("sqlite"):
                cls.DATA_DIR.mkdir(parents=True, exist_ok=True)

            if cls.is_production():
                if cls.DATABASE_URL.startswith("sqlite"):
                    logger.warning("Production environment using SQLite database")
                if cls.LOCK_BACKEND == LockBackend.MEMORY.value:
                    logger.warning(
                        "Production environment using in-process locks; "
                        "multiple instances will not be serialized"
                    )
                if cls.DEBUG:
                    logger.warning("DEBUG mode enabled in production")

            cls._validated = True

            if cls._metrics and cls._metrics.validation_errors:
                logger.warning(f"Configuration warnings: {cls._metrics.validation_errors}")

        except Exception as e:
            logger.warning(f"Config validation warning: {e}")
            if cls.is_production():
                raise

    # =========================================================================
    # Environment Checks
    # =========================================================================

    @classmethod
    def is_production(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def is_development(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "development"

    @classmethod
    def is_testing(cls) -> bool:
        return cls.ENVIRONMENT.lower() == "testing"

    # =========================================================================
    # Metrics & Summary
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Optional[_ConfigLoadMetrics]:
        return cls._metrics

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Non-sensitive configuration summary for debugging and /health."""
        return {
            "environment": cls.ENVIRONMENT,
            "debug": cls.DEBUG,
            "log_level": cls.LOG_LEVEL,
            "database_scheme": cls.DATABASE_URL.split(":", 1)[0],
            "database_pool_size": cls.DATABASE_POOL_SIZE,
            "lock_backend": cls.LOCK_BACKEND,
            "app_version": cls.APP_VERSION,
        }


# Auto-validate on import
Config.validate()
