"""
Audit - append-only trail of every successful mutation
"""

from alicerce.audit.log import SQLiteAuditLog
from alicerce.audit.models import AuditAction, AuditEntry
from alicerce.audit.recorder import AuditRecorder

__all__ = ["AuditAction", "AuditEntry", "AuditRecorder", "SQLiteAuditLog"]
