"""
Questline Logging Infrastructure

Exports the structured logging subsystem, log context helpers,
and configuration interface.

This module provides:
- JSON logging for production, colored text for development
- ContextVar-based contextual logging (`LogContext`)
- Setup and teardown helpers for the global logging system
"""

from questline.core.logging.logger import (
    LogContext,
    LoggerConfig,
    clear_log_context,
    get_log_context,
    get_logger,
    get_logging_health,
    set_log_context,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "get_logging_health",
    "LogContext",
    "set_log_context",
    "get_log_context",
    "clear_log_context",
    "LoggerConfig",
]
