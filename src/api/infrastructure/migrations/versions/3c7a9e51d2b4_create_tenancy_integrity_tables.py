"""create tenancy integrity tables

Revision ID: 3c7a9e51d2b4
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3c7a9e51d2b4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "identities",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("confirmed", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_identities"),
        sa.UniqueConstraint("email", name="uq_identities_email"),
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=26), nullable=False),  # ULID
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=False),
        sa.Column("owner_identity_id", sa.String(length=255), nullable=True),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_tenants"),
    )
    op.create_index(
        "ix_tenants_owner_identity_id", "tenants", ["owner_identity_id"]
    )
    # Slugs are unique among active tenants only
    op.create_index(
        "uq_tenants_active_slug",
        "tenants",
        ["slug"],
        unique=True,
        postgresql_where=sa.text("deactivated_at IS NULL"),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=26), nullable=False),
        sa.Column("identity_id", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
        sa.UniqueConstraint("identity_id", name="uq_profiles_identity_id"),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"])

    op.create_table(
        "provisioning_records",
        sa.Column("id", sa.String(length=26), nullable=False),
        sa.Column("tenant_id", sa.String(length=26), nullable=False),
        sa.Column("identity_id", sa.String(length=255), nullable=True),
        sa.Column("restaurant_name", sa.String(length=255), nullable=False),
        sa.Column("restaurant_slug", sa.String(length=100), nullable=False),
        sa.Column("owner_email", sa.String(length=320), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_provisioning_records"),
    )
    op.create_index(
        "ix_provisioning_records_tenant_id", "provisioning_records", ["tenant_id"]
    )
    op.create_index(
        "ix_provisioning_records_status", "provisioning_records", ["status"]
    )
    op.create_index(
        "ix_provisioning_records_idempotency_key",
        "provisioning_records",
        ["idempotency_key"],
    )
    # At most one completed record per tenant
    op.create_index(
        "uq_provisioning_records_completed_tenant",
        "provisioning_records",
        ["tenant_id"],
        unique=True,
        postgresql_where=sa.text("status = 'completed'"),
    )

    op.create_table(
        "access_roles",
        sa.Column("identity_id", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("granted_by", sa.String(length=255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("identity_id", "role", name="pk_access_roles"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=26), nullable=False),
        sa.Column("table_name", sa.String(length=63), nullable=False),
        sa.Column("row_id", sa.String(length=255), nullable=False),
        sa.Column("actor", sa.String(length=255), nullable=False),
        sa.Column("operation", sa.String(length=16), nullable=False),
        sa.Column("before", postgresql.JSONB(), nullable=True),
        sa.Column("after", postgresql.JSONB(), nullable=True),
        sa.Column("tenant_id", sa.String(length=26), nullable=True),
        sa.Column("row_status", sa.String(length=32), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index(
        "ix_audit_logs_table_row", "audit_logs", ["table_name", "row_id"]
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_audit_logs_table_row", table_name="audit_logs")
    op.drop_index("ix_audit_logs_tenant_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_table("access_roles")

    op.drop_index(
        "uq_provisioning_records_completed_tenant",
        table_name="provisioning_records",
    )
    op.drop_index(
        "ix_provisioning_records_idempotency_key",
        table_name="provisioning_records",
    )
    op.drop_index("ix_provisioning_records_status", table_name="provisioning_records")
    op.drop_index(
        "ix_provisioning_records_tenant_id", table_name="provisioning_records"
    )
    op.drop_table("provisioning_records")

    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_table("profiles")

    op.drop_index("uq_tenants_active_slug", table_name="tenants")
    op.drop_index("ix_tenants_owner_identity_id", table_name="tenants")
    op.drop_table("tenants")

    op.drop_table("identities")
