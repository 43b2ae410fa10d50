"""
Audit Trail Logger for Questline.

Purpose
-------
Event-driven audit trail for every quest state mutation (answers, resets,
duty-pass claims and uses, reward claims, rollovers). Publishes structured
audit events to the EventBus for decoupled persistence.

This module is a **pure event producer**: it shapes and validates audit
events, then publishes them. Persistence belongs to whichever consumer
subscribes to "audit.transaction.logged".

Responsibilities
----------------
- Accept transaction context (user_id, type, details, context)
- Validate and normalize into the canonical audit event shape
- Publish to EventBus: "audit.transaction.logged"
- Track audit production metrics (counts, errors, timings)

Non-Responsibilities
--------------------
- Database persistence (handled by a consumer)
- Audit history queries or retention

Canonical Event Shape
---------------------
Event name: "audit.transaction.logged"

Payload (EventPayload):
{
    "timestamp": str,          # ISO8601 UTC timestamp
    "user_id": str,            # Learner id
    "transaction_type": str,   # e.g. "weekly_quest.reward_claimed"
    "details": dict,           # Structured transaction data
    "context": str,            # Operation / route origin
    "meta": dict,              # Optional metadata (request_id, ...)
}

Design Decisions
----------------
**Non-Blocking**:
    Publish failures are logged and counted but never raised; an audit
    outage must not fail a learner's reward claim.

**Validation-First**:
    Empty user ids or transaction types raise `ValidationError` before
    anything is published.

Usage
-----
    await AuditLogger.log(
        user_id="u-42",
        transaction_type="weekly_quest.reward_claimed",
        details={"reward_xp": 300, "week_start": "2025-01-06"},
        context="claim_reward",
    )
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from questline.core.event import EventPayload, event_bus
from questline.core.logging.logger import get_log_context, get_logger
from questline.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# AUDIT METRICS
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class AuditMetrics:
    """
    In-memory metrics for audit event production.

    Attributes
    ----------
    events_emitted : int
        Total events successfully emitted
    validation_errors : int
        Count of validation failures
    publish_errors : int
        Count of publish failures (EventBus errors)
    total_log_time_ms : float
        Cumulative time spent in audit logging operations
    """

    events_emitted: int = 0
    validation_errors: int = 0
    publish_errors: int = 0
    total_log_time_ms: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        total_events = max(self.events_emitted, 1)
        error_events = self.validation_errors + self.publish_errors
        return {
            "events_emitted": self.events_emitted,
            "validation_errors": self.validation_errors,
            "publish_errors": self.publish_errors,
            "total_errors": error_events,
            "error_rate_percent": round((error_events / total_events) * 100.0, 2),
            "avg_log_time_ms": round(self.total_log_time_ms / total_events, 3),
        }


_metrics = AuditMetrics()


# ═════════════════════════════════════════════════════════════════════════════
# AUDIT LOGGER
# ═════════════════════════════════════════════════════════════════════════════


class AuditLogger:
    """
    Write-only audit trail producer.

    All audit events flow through this class to ensure a consistent event
    shape, validation before emission and error isolation.
    """

    EVENT_NAME: str = "audit.transaction.logged"

    @classmethod
    async def log(
        cls,
        *,
        user_id: str,
        transaction_type: str,
        details: Mapping[str, Any],
        context: Optional[str] = None,
        meta: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Publish a canonical audit transaction event.

        Parameters
        ----------
        user_id : str
            Learner associated with this transaction
        transaction_type : str
            Logical type of transaction (e.g. "weekly_quest.duty_pass_used")
        details : Mapping[str, Any]
            Structured transaction data (deltas, identifiers, flags)
        context : Optional[str]
            Logical origin (operation name, route)
        meta : Optional[Mapping[str, Any]]
            Additional metadata; the current request id is added when bound

        Raises
        ------
        ValidationError
            If user_id or transaction_type is empty.
        """
        if not str(user_id or "").strip():
            _metrics.validation_errors += 1
            raise ValidationError("user_id", "must be a non-empty string")
        if not str(transaction_type or "").strip():
            _metrics.validation_errors += 1
            raise ValidationError("transaction_type", "must be a non-empty string")

        start_time = time.perf_counter()

        merged_meta: Dict[str, Any] = dict(meta) if meta is not None else {}
        request_id = get_log_context().get("request_id")
        if request_id and "request_id" not in merged_meta:
            merged_meta["request_id"] = request_id

        payload: EventPayload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user_id": str(user_id),
            "transaction_type": transaction_type,
            "details": dict(details),
            "context": context or "unknown",
            "meta": merged_meta,
        }

        try:
            await event_bus.publish(cls.EVENT_NAME, payload)
        except Exception:
            # Audit must never fail the operation it describes
            _metrics.publish_errors += 1
            logger.error(
                "Failed to publish audit event",
                extra={
                    "audit_user_id": user_id,
                    "transaction_type": transaction_type,
                    "audit_context": context,
                },
                exc_info=True,
            )
            return

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        _metrics.events_emitted += 1
        _metrics.total_log_time_ms += elapsed_ms

        logger.info(
            "Audit event emitted",
            extra={
                "event_name": cls.EVENT_NAME,
                "transaction_type": transaction_type,
                "audit_context": context,
                "log_time_ms": round(elapsed_ms, 3),
            },
        )

    @staticmethod
    def get_metrics() -> Dict[str, Any]:
        return _metrics.as_dict()

    @staticmethod
    def reset_metrics() -> None:
        global _metrics
        _metrics = AuditMetrics()
