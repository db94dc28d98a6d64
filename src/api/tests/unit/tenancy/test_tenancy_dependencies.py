"""Unit tests for tenancy dependency wiring."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from infrastructure.audit import AuditTriggerEngine
from infrastructure.settings import get_provisioning_settings
from shared_kernel.audit import UnknownAuditTableError
from tenancy.application.services import (
    AccessRoleService,
    InvariantService,
    ProvisioningService,
    RepairSweepService,
)
from tenancy.dependencies import build_services, get_audit_engine, sweep_lock_for
from tenancy.infrastructure.locks import InProcessSweepLock


@pytest.fixture
def clear_settings_cache():
    get_provisioning_settings.cache_clear()
    get_audit_engine.cache_clear()
    yield
    get_provisioning_settings.cache_clear()
    get_audit_engine.cache_clear()


def test_build_services_shares_one_invariant_service(
    mock_session, sweep_lock, provisioning_settings
):
    services = build_services(mock_session, sweep_lock, provisioning_settings)

    assert isinstance(services.provisioning, ProvisioningService)
    assert isinstance(services.sweep, RepairSweepService)
    assert isinstance(services.invariants, InvariantService)
    assert isinstance(services.access_roles, AccessRoleService)
    assert services.sweep._invariants is services.invariants
    assert services.sweep._stale_pending_after == timedelta(hours=1)


def test_sqlite_engine_gets_process_lock(database_url):
    engine = create_async_engine(database_url)

    assert isinstance(sweep_lock_for(engine), InProcessSweepLock)
    engine.sync_engine.dispose()


def test_audit_engine_covers_configured_tables(clear_settings_cache):
    engine = get_audit_engine()

    assert isinstance(engine, AuditTriggerEngine)
    assert engine.audited_tables == sorted(
        get_provisioning_settings().audit_sensitive_tables
    )
    assert get_audit_engine() is engine


def test_unknown_audit_table_fails_at_startup(clear_settings_cache, monkeypatch):
    monkeypatch.setenv("TENANCY_AUDIT_SENSITIVE_TABLES", "tenants,bookings")

    with pytest.raises(UnknownAuditTableError):
        get_audit_engine()
