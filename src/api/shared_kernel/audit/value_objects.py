"""Value objects for the audit trail."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any, Mapping


class AuditOperation(StrEnum):
    """Kind of row mutation being recorded."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class TableCapability:
    """What the audit engine may read from one table.

    Resolved once from the schema when the engine starts. The engine only
    dereferences columns listed here, so tables with different shapes can
    share a single trigger implementation.

    Attributes:
        table_name: Name of the audited table
        primary_key: Columns identifying the row, in key order
        columns: Every column of the table
        status_column: Column holding a lifecycle status, if the table has one
        tenant_column: Column scoping the row to a tenant, if any
    """

    table_name: str
    primary_key: tuple[str, ...]
    columns: frozenset[str]
    status_column: str | None = None
    tenant_column: str | None = None

    def has_column(self, name: str) -> bool:
        """Check whether the table declares ``name``."""
        return name in self.columns

    def row_id(self, row: Mapping[str, Any]) -> str:
        """Render the primary key of ``row``; composite keys are joined by ':'."""
        return ":".join(str(row[column]) for column in self.primary_key)

    def project(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Copy the declared columns out of ``row``.

        Raises:
            KeyError: If ``row`` lacks a declared column
        """
        return {column: row[column] for column in sorted(self.columns)}


@dataclass(frozen=True)
class AuditEntry:
    """One recorded mutation of a sensitive row.

    Attributes:
        id: ULID of the entry
        table_name: Table the mutated row belongs to
        row_id: Primary key of the mutated row
        actor: Principal responsible for the mutation
        operation: insert, update or delete
        before: Row image before the mutation (None for inserts)
        after: Row image after the mutation (None for deletes)
        tenant_id: Tenant the row is scoped to, when the table has one
        row_status: Lifecycle status after the mutation, when the table has one
        occurred_at: When the mutation was flushed
    """

    id: str
    table_name: str
    row_id: str
    actor: str
    operation: AuditOperation
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    tenant_id: str | None
    row_status: str | None
    occurred_at: datetime
