"""Application settings using pydantic-settings.

Settings are loaded from environment variables with sensible defaults
for development. Production deployments should set all values explicitly.
"""

from functools import lru_cache
from typing import Annotated

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database connection settings.

    Environment variables:
        TENANCY_DB_HOST: Database host (default: localhost)
        TENANCY_DB_PORT: Database port (default: 5432)
        TENANCY_DB_DATABASE: Database name (default: tenancy)
        TENANCY_DB_USERNAME: Database user (default: tenancy)
        TENANCY_DB_PASSWORD: Database password (required in production)
        TENANCY_DB_URL: Full SQLAlchemy URL, overrides the fields above
            (e.g. sqlite+aiosqlite:///./tenancy.db for local runs)
        TENANCY_DB_POOL_MIN_CONNECTIONS: Minimum connections in pool (default: 2)
        TENANCY_DB_POOL_MAX_CONNECTIONS: Maximum connections in pool (default: 10)
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANCY_DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    database: str = Field(default="tenancy", description="Database name")
    username: str = Field(default="tenancy", description="Database username")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Database password",
    )
    url: str | None = Field(
        default=None,
        description="Full SQLAlchemy URL overriding host/port/database/credentials",
    )
    pool_min_connections: int = Field(
        default=2,
        description="Minimum connections in pool",
        ge=1,
        le=100,
    )
    pool_max_connections: int = Field(
        default=10,
        description="Maximum connections in pool",
        ge=1,
        le=100,
    )

    @model_validator(mode="after")
    def validate_pool_settings(self) -> "DatabaseSettings":
        """Validate pool max >= min."""
        if self.pool_max_connections < self.pool_min_connections:
            raise ValueError(
                f"pool_max_connections ({self.pool_max_connections}) must be >= "
                f"pool_min_connections ({self.pool_min_connections})"
            )
        return self

    @property
    def connection_string(self) -> str:
        """Generate a connection string (without password for logging)."""
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


class ProvisioningSettings(BaseSettings):
    """Tenant provisioning and integrity settings.

    Environment variables:
        TENANCY_SWEEP_LOCK_KEY: Advisory lock key serialising repair sweeps
        TENANCY_STALE_PENDING_AFTER_SECONDS: Age after which a pending ledger
            record is considered abandoned by the repair sweep (default: 3600)
        TENANCY_AUDIT_SENSITIVE_TABLES: Comma-separated tables audited on write
        TENANCY_ADMINISTRATOR_ROLE: Access role exempt from single ownership
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANCY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    sweep_lock_key: int = Field(
        default=7_310_452_118,
        description="PostgreSQL advisory lock key for the repair sweep",
    )
    stale_pending_after_seconds: int = Field(
        default=3600,
        description="Seconds before a pending provisioning record is abandoned",
        ge=1,
    )
    audit_sensitive_tables: Annotated[tuple[str, ...], NoDecode] = Field(
        default=("tenants", "profiles", "provisioning_records", "access_roles"),
        description="Tables whose mutations are written to the audit log",
    )
    administrator_role: str = Field(
        default="administrator",
        description=(
            "Access role allowed to own several tenants; only an active grant "
            "of this role exempts an owner, holders of other roles do not"
        ),
    )

    @field_validator("audit_sensitive_tables", mode="before")
    @classmethod
    def split_table_list(cls, value: object) -> object:
        """Accept a comma-separated string from the environment."""
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value


class Settings(BaseSettings):
    """Main application settings aggregating all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(
        default="Tenancy Integrity API", description="Application name"
    )
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def database(self) -> DatabaseSettings:
        """Get database settings."""
        return get_database_settings()

    @property
    def provisioning(self) -> ProvisioningSettings:
        """Get provisioning settings."""
        return get_provisioning_settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return DatabaseSettings()


@lru_cache
def get_provisioning_settings() -> ProvisioningSettings:
    """Get cached provisioning settings.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return ProvisioningSettings()
