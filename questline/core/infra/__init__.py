"""
Infrastructure services for Questline.

Module Contents
---------------
**Audit Logging**:
    - AuditLogger: event-driven audit trail for every quest mutation
    - AuditMetrics: counters for audit production

Usage
-----
    from questline.core.infra import AuditLogger

    await AuditLogger.log(
        user_id="u-42",
        transaction_type="weekly_quest.duty_pass_used",
        details={"day": "tuesday", "duty_passes": 0},
        context="use_duty_pass",
    )
"""

from questline.core.infra.audit_logger import AuditLogger, AuditMetrics

__all__ = ["AuditLogger", "AuditMetrics"]
