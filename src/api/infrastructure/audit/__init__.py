"""Audit trigger engine.

Records one append-only audit entry for every insert, update and delete of
a sensitive table, inside the same flush as the mutation.
"""

from infrastructure.audit.capabilities import describe_table, resolve_capabilities
from infrastructure.audit.engine import AuditTriggerEngine
from infrastructure.audit.models import AuditLogModel
from infrastructure.audit.repository import AuditLogRepository

__all__ = [
    "AuditLogModel",
    "AuditLogRepository",
    "AuditTriggerEngine",
    "describe_table",
    "resolve_capabilities",
]
