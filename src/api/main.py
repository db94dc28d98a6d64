"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.dependencies import (
    close_database_connections,
    get_read_session,
)
from infrastructure.logging import configure_logging
from infrastructure.observability import DefaultConnectionProbe, DefaultStartupProbe
from infrastructure.settings import get_database_settings, get_settings
from infrastructure.version import __version__
from tenancy.dependencies import get_audit_engine
from tenancy.presentation import router as tenancy_router


@asynccontextmanager
async def tenancy_lifespan(app: FastAPI):
    """Application lifespan context.

    Manages:
    - Logging configuration
    - Audit capability resolution (fails startup on an unknown table)
    - Engine disposal on shutdown
    """
    settings = get_settings()
    configure_logging(level="DEBUG" if settings.debug else "INFO")
    probe = DefaultStartupProbe()
    probe.application_starting(settings.app_name, __version__)

    audit_engine = get_audit_engine()
    probe.audit_tables_resolved(audit_engine.audited_tables)

    yield

    await close_database_connections()
    probe.application_stopped()


app = FastAPI(
    title="Tenancy Integrity API",
    description="Tenant ownership, provisioning and integrity repair",
    version=__version__,
    lifespan=tenancy_lifespan,
)

app.include_router(tenancy_router)


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "ok"}


@app.get("/health/db")
async def health_db(
    session: Annotated[AsyncSession, Depends(get_read_session)],
) -> dict:
    """Check database connection health."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ok", "connected": True}
    except SQLAlchemyError as e:
        db = get_database_settings()
        DefaultConnectionProbe().connection_failed(
            host=db.host, database=db.database, error=e
        )
        return {"status": "error", "connected": False, "error": str(e)}
