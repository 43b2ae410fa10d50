"""
Database subsystem for Questline.

Provides the async SQLAlchemy engine, session management, the retry policy,
and the ORM base classes and mixins for model definitions.
"""

from questline.core.database.base import (
    Base,
    IdMixin,
    TimestampMixin,
    utc_now,
)
from questline.core.database.retry_policy import (
    DatabaseRetryConfig,
    DatabaseRetryPolicy,
)
from questline.core.database.service import DatabaseService

__all__ = [
    # ORM Base & Mixins
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    # Main service
    "DatabaseService",
    # Retry
    "DatabaseRetryConfig",
    "DatabaseRetryPolicy",
]
