"""Session-level audit trigger.

The engine listens to ``before_flush`` on the sessions it is attached to.
For every pending insert, update or delete of an audited table it adds an
``AuditLogModel`` row to the same flush, so the audit entry commits with the
mutation or not at all. Any failure while building the entry aborts the
flush with ``AuditWriteFailedError``.

Row images are read through the table's capability descriptor only. A
table without a ``status`` column is never asked for one.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy import MetaData, event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstanceState, Session, UOWTransaction
from ulid import ULID

from infrastructure.audit.capabilities import resolve_capabilities
from infrastructure.audit.models import AuditLogModel
from infrastructure.database.models import utc_now
from shared_kernel.audit.context import current_actor
from shared_kernel.audit.exceptions import AuditWriteFailedError
from shared_kernel.audit.observability import (
    AuditTriggerProbe,
    DefaultAuditTriggerProbe,
)
from shared_kernel.audit.value_objects import (
    AuditEntry,
    AuditOperation,
    TableCapability,
)


class AuditTriggerEngine:
    """Writes audit entries for mutations of sensitive tables.

    Usage:
        engine = AuditTriggerEngine.from_metadata(Base.metadata, ["tenants"])
        engine.attach(session)
        async with session.begin():
            session.add(TenantModel(...))  # audit row joins this flush
    """

    def __init__(
        self,
        capabilities: Mapping[str, TableCapability],
        probe: AuditTriggerProbe | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._capabilities = dict(capabilities)
        self._probe = probe or DefaultAuditTriggerProbe()
        self._clock = clock

    @classmethod
    def from_metadata(
        cls,
        metadata: MetaData,
        table_names: Iterable[str],
        probe: AuditTriggerProbe | None = None,
    ) -> AuditTriggerEngine:
        """Resolve capability descriptors from the schema and build an engine.

        Raises:
            UnknownAuditTableError: If a configured table is not in the schema
        """
        probe = probe or DefaultAuditTriggerProbe()
        capabilities = resolve_capabilities(metadata, table_names)
        probe.capabilities_resolved(sorted(capabilities))
        return cls(capabilities, probe=probe)

    @property
    def audited_tables(self) -> list[str]:
        """Names of the tables this engine audits, sorted."""
        return sorted(self._capabilities)

    def capability_for(self, table_name: str) -> TableCapability | None:
        """Return the descriptor of ``table_name``, if it is audited."""
        return self._capabilities.get(table_name)

    def attach(self, session: AsyncSession | Session) -> None:
        """Audit every flush of ``session``. Attaching twice is a no-op."""
        target = _sync_session(session)
        if not event.contains(target, "before_flush", self._before_flush):
            event.listen(target, "before_flush", self._before_flush)

    def detach(self, session: AsyncSession | Session) -> None:
        """Stop auditing ``session``."""
        target = _sync_session(session)
        if event.contains(target, "before_flush", self._before_flush):
            event.remove(target, "before_flush", self._before_flush)

    def build_entry(
        self,
        table_name: str,
        operation: AuditOperation,
        before: Mapping[str, Any] | None,
        after: Mapping[str, Any] | None,
        actor: str | None = None,
    ) -> AuditEntry:
        """Build the audit entry for one row mutation.

        ``before`` and ``after`` are row images keyed by column name; only
        the columns named by the table's descriptor are read from them.

        Raises:
            AuditWriteFailedError: If the table is not audited or an image
                lacks a column the descriptor lists
        """
        capability = self._capabilities.get(table_name)
        if capability is None:
            raise AuditWriteFailedError(
                table_name, operation.value, "table is not audited"
            )

        try:
            before_image = (
                _jsonable_row(capability.project(before))
                if before is not None
                else None
            )
            after_image = (
                _jsonable_row(capability.project(after)) if after is not None else None
            )
            current = after_image if after_image is not None else before_image
            if current is None:
                raise ValueError("mutation has neither a before nor an after image")

            row_id = capability.row_id(current)
            tenant_id = (
                _as_optional_str(current[capability.tenant_column])
                if capability.tenant_column
                else None
            )
            row_status = (
                _as_optional_str(current[capability.status_column])
                if capability.status_column
                else None
            )
        except (KeyError, ValueError, TypeError) as e:
            raise AuditWriteFailedError(table_name, operation.value, repr(e)) from e

        return AuditEntry(
            id=str(ULID()),
            table_name=table_name,
            row_id=row_id,
            actor=actor or current_actor(),
            operation=operation,
            before=before_image,
            after=after_image,
            tenant_id=tenant_id,
            row_status=row_status,
            occurred_at=self._clock(),
        )

    def _before_flush(
        self,
        session: Session,
        flush_context: UOWTransaction,
        instances: object,
    ) -> None:
        pending: list[tuple[object, AuditOperation]] = [
            *((obj, AuditOperation.INSERT) for obj in session.new),
            *(
                (obj, AuditOperation.UPDATE)
                for obj in session.dirty
                if session.is_modified(obj, include_collections=False)
            ),
            *((obj, AuditOperation.DELETE) for obj in session.deleted),
        ]

        for obj, operation in pending:
            state = inspect(obj)
            table_name = state.mapper.local_table.name
            capability = self._capabilities.get(table_name)
            if capability is None:
                continue

            try:
                before, after = _row_images(state, capability)
                entry = self.build_entry(
                    table_name,
                    operation,
                    before=None if operation is AuditOperation.INSERT else before,
                    after=None if operation is AuditOperation.DELETE else after,
                )
                session.add(AuditLogModel.from_entry(entry))
            except AuditWriteFailedError as e:
                self._probe.entry_failed(table_name, operation.value, e.reason)
                raise
            except Exception as e:
                self._probe.entry_failed(table_name, operation.value, repr(e))
                raise AuditWriteFailedError(table_name, operation.value, repr(e)) from e

            self._probe.entry_recorded(
                table_name=table_name,
                operation=operation.value,
                row_id=entry.row_id,
                actor=entry.actor,
            )


def _sync_session(session: AsyncSession | Session) -> Session:
    if isinstance(session, AsyncSession):
        return session.sync_session
    return session


def _row_images(
    state: InstanceState, capability: TableCapability
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Previous and pending values of the descriptor's columns.

    Values come from attribute history, so nothing is loaded from the
    database while the flush is being prepared.
    """
    mapper = state.mapper
    before: dict[str, Any] = {}
    after: dict[str, Any] = {}
    for column_name in capability.columns:
        column = mapper.local_table.c[column_name]
        key = mapper.get_property_by_column(column).key
        history = state.attrs[key].history
        current = history.added or history.unchanged
        previous = history.deleted or history.unchanged
        after[column_name] = current[0] if current else None
        before[column_name] = previous[0] if previous else None
    return before, after


def _jsonable_row(row: Mapping[str, Any]) -> dict[str, Any]:
    return {column: _jsonable(value) for column, value in row.items()}


def _jsonable(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def _as_optional_str(value: Any) -> str | None:
    return None if value is None else str(value)
