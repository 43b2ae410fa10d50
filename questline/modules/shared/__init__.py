"""
Questline Shared Module

Purpose
-------
Domain-level foundations for feature modules:
- Domain exceptions and error handling
- Base service and repository patterns
- The per-user mutation lock

Usage
-----
    from questline.modules.shared import (
        BaseService,
        BaseRepository,
        InvalidStateError,
        UserLockManager,
    )
"""

from __future__ import annotations

# Base patterns
from .base_repository import BaseRepository
from .base_service import BaseService

# Domain exceptions
from .exceptions import (
    AlreadyClaimedError,
    ConcurrentUpdateError,
    ErrorSeverity,
    InsufficientPassesError,
    InvalidStateError,
    NotFoundError,
    NotMissedError,
    NotReadyError,
    QuestDomainException,
    ValidationError,
)

# Concurrency
from .user_lock import UserLockManager

__all__ = [
    "BaseRepository",
    "BaseService",
    "QuestDomainException",
    "ErrorSeverity",
    "NotFoundError",
    "ValidationError",
    "InvalidStateError",
    "AlreadyClaimedError",
    "InsufficientPassesError",
    "NotMissedError",
    "NotReadyError",
    "ConcurrentUpdateError",
    "UserLockManager",
]
