"""
Core infrastructure layer for Questline.

Purpose
-------
A single import surface for the infrastructure subsystems:

- Configuration (Config, ConfigManager)
- Database (DatabaseService, retry policy)
- Redis (RedisService for distributed locking)
- Logging (structured logging, logger factory)
- Infrastructure exceptions

Design Decisions
----------------
- Thin module: re-exports only, no logic and no I/O.
- Feature modules still import from their own packages; this surface is
  for the application entry points.
"""

from __future__ import annotations

from questline.core.config import Config, ConfigManager
from questline.core.database import DatabaseRetryPolicy, DatabaseService
from questline.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    ErrorSeverity,
    LockBackendError,
    QuestlineInfrastructureException,
)
from questline.core.logging import LogContext, get_logger, setup_logging
from questline.core.redis import RedisService

__all__ = [
    "Config",
    "ConfigManager",
    "DatabaseService",
    "DatabaseRetryPolicy",
    "RedisService",
    "LogContext",
    "get_logger",
    "setup_logging",
    "ErrorSeverity",
    "QuestlineInfrastructureException",
    "ConfigurationError",
    "DatabaseError",
    "LockBackendError",
]
