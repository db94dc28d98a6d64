"""Audit trail primitives shared across bounded contexts.

The audit trigger engine (``infrastructure.audit``) records one entry per
mutation of a sensitive table. This package holds the pieces callers and
tests touch directly: the acting-principal context, the entry value object,
the capability descriptor and the errors raised by the engine.
"""

from shared_kernel.audit.context import audit_actor, current_actor
from shared_kernel.audit.exceptions import (
    AuditWriteFailedError,
    UnknownAuditTableError,
)
from shared_kernel.audit.observability import (
    AuditTriggerProbe,
    DefaultAuditTriggerProbe,
)
from shared_kernel.audit.value_objects import (
    AuditEntry,
    AuditOperation,
    TableCapability,
)

__all__ = [
    "AuditEntry",
    "AuditOperation",
    "AuditTriggerProbe",
    "AuditWriteFailedError",
    "DefaultAuditTriggerProbe",
    "TableCapability",
    "UnknownAuditTableError",
    "audit_actor",
    "current_actor",
]
