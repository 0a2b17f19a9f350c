"""
Audit Recorder - one entry per successful mutation

The business change has already committed by the time the recorder runs,
so a failed audit write is logged and counted but never raised.
"""

from typing import Any

from alicerce.audit.log import SQLiteAuditLog
from alicerce.audit.models import AuditAction, AuditEntry
from alicerce.kernel.identity import CurrentUser
from alicerce.kernel.ids import generate_id
from alicerce.kernel.logging import get_logger
from alicerce.kernel.metrics import audit_entries_total, audit_failures_total
from alicerce.kernel.time import TimeProvider

logger = get_logger(__name__)


class AuditRecorder:
    """Builds AuditEntry values and appends them to the audit log"""

    def __init__(self, audit_log: SQLiteAuditLog, time_provider: TimeProvider) -> None:
        self.audit_log = audit_log
        self.time_provider = time_provider

    def record(
        self,
        user: CurrentUser,
        action: AuditAction,
        resource_type: str,
        resource_id: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        """
        Append an audit entry for a committed operation

        Args:
            user: Acting user
            action: Action name
            resource_type: "demand", "supplier", "group"
            resource_id: Id of the affected record
            details: JSON-serializable context

        Returns:
            The stored entry, or None when the write failed
        """
        entry = AuditEntry(
            entry_id=generate_id(),
            user_id=user.user_id,
            user_name=user.name,
            user_role=user.role.value,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details or {},
            timestamp=self.time_provider.now(),
        )
        try:
            self.audit_log.append(entry)
        except Exception as e:
            audit_failures_total.labels(action=action.value).inc()
            logger.error(
                "audit_record_failed",
                action=action.value,
                resource_type=resource_type,
                resource_id=resource_id,
                error=str(e),
                exc_info=True,
            )
            return None

        audit_entries_total.labels(action=action.value).inc()
        return entry

    def entries(
        self,
        resource_id: str | None = None,
        action: AuditAction | str | None = None,
        limit: int | None = None,
    ) -> list[AuditEntry]:
        """Query the audit trail (see SQLiteAuditLog.entries)"""
        return self.audit_log.entries(resource_id=resource_id, action=action, limit=limit)
