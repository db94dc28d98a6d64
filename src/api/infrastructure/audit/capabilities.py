"""Capability descriptors for audited tables.

A descriptor lists what the audit engine may read from a table. Descriptors
are built from the SQLAlchemy schema once, when the engine is created, so a
table without a ``status`` or ``tenant_id`` column is known not to have one
before the first write is audited.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import MetaData, Table

from shared_kernel.audit.exceptions import UnknownAuditTableError
from shared_kernel.audit.value_objects import TableCapability

STATUS_COLUMN = "status"
TENANT_COLUMN = "tenant_id"

# Tables whose own primary key is the tenant id.
TENANT_ROOT_TABLES = frozenset({"tenants"})


def describe_table(table: Table) -> TableCapability:
    """Build the capability descriptor for ``table``."""
    columns = frozenset(column.name for column in table.columns)
    primary_key = tuple(column.name for column in table.primary_key.columns)

    if table.name in TENANT_ROOT_TABLES and len(primary_key) == 1:
        tenant_column: str | None = primary_key[0]
    elif TENANT_COLUMN in columns:
        tenant_column = TENANT_COLUMN
    else:
        tenant_column = None

    return TableCapability(
        table_name=table.name,
        primary_key=primary_key,
        columns=columns,
        status_column=STATUS_COLUMN if STATUS_COLUMN in columns else None,
        tenant_column=tenant_column,
    )


def resolve_capabilities(
    metadata: MetaData, table_names: Iterable[str]
) -> dict[str, TableCapability]:
    """Describe every table in ``table_names``.

    Raises:
        UnknownAuditTableError: If a name is not a table in ``metadata``
    """
    capabilities: dict[str, TableCapability] = {}
    for name in table_names:
        table = metadata.tables.get(name)
        if table is None:
            raise UnknownAuditTableError(name)
        capabilities[name] = describe_table(table)
    return capabilities
