"""Service settings for judicial-core.

All settings use the JUDICIAL_ environment prefix and cover:
- Primary database (cases, decisions, documents, pseudonym map)
- Audit Wall database (append-only audit events, may share the primary server)
- Pseudonym HMAC key, resolved once at startup and passed to the directory
- Signing credential and signed artifact storage locations
- Bearer token verification
"""

import os
import socket

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_instance_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


class Settings(BaseSettings):
    """Settings for judicial-core.

    Environment variable prefix: JUDICIAL_
    """

    service_name: str = "judicial-core"
    environment: str = Field(
        default="production",
        description="production renders JSON logs; anything else renders console logs.",
    )
    log_level: str = Field(default="INFO", description="Root log level.")
    instance_id: str = Field(
        default_factory=_default_instance_id,
        description="Identifier stamped on every audit event written by this process.",
    )

    # -------------------------------------------------------------------------
    # Primary database
    # -------------------------------------------------------------------------

    database_url: str = Field(
        description="SQLAlchemy async URL for the primary database, e.g. postgresql+asyncpg://...",
    )
    database_pool_size: int = Field(default=10, description="Primary DB connection pool size.")
    database_max_overflow: int = Field(default=5, description="Primary DB overflow connections.")

    # -------------------------------------------------------------------------
    # Audit Wall
    # -------------------------------------------------------------------------

    audit_db_url: str | None = Field(
        default=None,
        description="SQLAlchemy async URL for the audit database. Defaults to database_url. "
        "The DB role should only hold INSERT and SELECT on jc_audit_events.",
    )
    audit_db_pool_size: int = Field(
        default=5,
        description="Connection pool size for the audit DB. Audit writes are sequential per instance.",
    )
    audit_db_max_overflow: int = Field(default=2, description="Audit DB overflow connections.")
    audit_export_limit: int = Field(
        default=10_000,
        description="Maximum number of rows returned by a CSV export.",
    )
    audit_record_timeout_seconds: float = Field(
        default=5.0,
        description="Seconds a caller waits for its audit write before carrying on without the event id.",
    )

    # -------------------------------------------------------------------------
    # Pseudonym directory
    # -------------------------------------------------------------------------

    pseudonym_hmac_secret: SecretStr = Field(
        description="HMAC-SHA256 key used to derive judge pseudonyms. Never logged.",
    )
    pseudonym_prefix: str = Field(default="JUD", description="Prefix of every public judge code.")
    pseudonym_max_attempts: int = Field(
        default=10,
        description="Collision retries before a pseudonym issuance gives up.",
    )

    # -------------------------------------------------------------------------
    # Decision signing
    # -------------------------------------------------------------------------

    signing_keys_path: str = Field(
        default="./pki/signing",
        description="Directory holding <subject_id>.key and <subject_id>.json signing credentials.",
    )
    artifact_storage_path: str = Field(
        default="./storage/signed_decisions",
        description="Root directory for signed decision artifacts.",
    )
    minimum_draft_length: int = Field(
        default=50,
        description="Minimum stripped draft length before a decision can be prepared for signature.",
    )

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    jwt_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Key used to verify bearer tokens issued by the identity service.",
    )
    jwt_algorithm: str = Field(default="HS256", description="Bearer token signature algorithm.")

    model_config = SettingsConfigDict(env_prefix="JUDICIAL_")

    @property
    def effective_audit_db_url(self) -> str:
        """Audit database URL, falling back to the primary database."""
        return self.audit_db_url or self.database_url
