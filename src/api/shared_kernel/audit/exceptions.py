"""Errors raised by the audit trigger engine."""


class AuditWriteFailedError(Exception):
    """Raised when an audit entry could not be built or appended.

    The flush that carried the audited mutation is aborted, so the mutation
    fails together with its audit entry.
    """

    def __init__(self, table_name: str, operation: str, reason: str) -> None:
        self.table_name = table_name
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Audit write failed for {operation} on {table_name}: {reason}"
        )


class UnknownAuditTableError(Exception):
    """Raised at startup when an audited table is not in the schema."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(f"Audited table does not exist: {table_name}")
