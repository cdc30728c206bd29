"""SQLAlchemy ORM models for judicial-core.

All models use the `jc_` table prefix. Business models extend TimestampedModel
for automatic id (UUID), created_at and updated_at fields.

Models:
- Subject             — Court official with a role and an account status
- Case                — Judicial case assigned to exactly one judge
- Decision            — Judicial decision moving DRAFT -> READY_TO_SIGN -> SIGNED
- DecisionHistory     — IMMUTABLE pre-image of a decision before each mutation
- Document            — IMMUTABLE signed artifact bound to a decision
- CaseTimelineEntry   — Public procedural timeline of a case
- PseudonymMapping    — IMMUTABLE real subject id -> public judge code
- AuditEvent          — IMMUTABLE hash-chained audit log (lives on the audit DB)

IMPORTANT: AuditEvent is defined here for ORM mapping purposes but it is
written ONLY via AuditEventRepository, which connects to the audit database.
Never write to jc_audit_events via the primary DB session.

Column types are portable (Uuid, JSON with a JSONB variant) so the same models
map onto PostgreSQL in production and SQLite in tests.
"""

import enum
import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


class SubjectRole(enum.StrEnum):
    ADMINISTRATOR = "ADMINISTRATOR"
    JUDGE = "JUDGE"
    CLERK = "CLERK"
    AUDITOR = "AUDITOR"


class SubjectStatus(enum.StrEnum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    INACTIVE = "INACTIVE"


class ProceduralState(enum.StrEnum):
    OPENED = "OPENED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"
    ARCHIVED = "ARCHIVED"
    SUSPENDED = "SUSPENDED"


class DecisionType(enum.StrEnum):
    INTERLOCUTORY_ORDER = "INTERLOCUTORY_ORDER"
    PROCEDURAL_ORDER = "PROCEDURAL_ORDER"
    JUDGMENT = "JUDGMENT"


class DecisionState(enum.StrEnum):
    DRAFT = "DRAFT"
    READY_TO_SIGN = "READY_TO_SIGN"
    SIGNED = "SIGNED"
    VOIDED = "VOIDED"


# States in which a decision may still be signed or voided.
SIGNABLE_STATES = (DecisionState.DRAFT, DecisionState.READY_TO_SIGN)


class Severity(enum.StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Base(DeclarativeBase):
    """Declarative base shared by every judicial-core table."""


class TimestampedModel(Base):
    """Abstract base adding a UUID primary key and audit timestamps."""

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )


class Subject(TimestampedModel):
    """Court official who can act on cases and decisions.

    Identity is immutable; role and status may change. Role and status are
    re-read on every request so a suspension takes effect immediately.
    """

    __tablename__ = "jc_subjects"

    role: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    judicial_unit: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subject_matter: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SubjectStatus.ACTIVE,
        comment="ACTIVE | SUSPENDED | INACTIVE",
    )


class Case(TimestampedModel):
    """Judicial case.

    assigned_judge_id changes only through reassignment; the public pseudonym
    is kept next to it so listings never need the real id.
    """

    __tablename__ = "jc_cases"

    case_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    assigned_judge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jc_subjects.id"), nullable=False, index=True
    )
    assigned_judge_pseudonym: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_by_clerk_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("jc_subjects.id"), nullable=True, index=True
    )
    procedural_state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ProceduralState.OPENED,
        comment="OPENED | IN_PROGRESS | RESOLVED | ARCHIVED | SUSPENDED",
    )
    judicial_unit: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_matter: Mapped[str] = mapped_column(String(100), nullable=False)


class Decision(TimestampedModel):
    """Judicial decision authored by the case's assigned judge.

    Signature fields are populated in a single UPDATE at signing time. Once the
    state is SIGNED or VOIDED the row is immutable (enforced by a trigger in
    PostgreSQL and by state checks in DecisionService).

    Attributes:
        version: Starts at 1 and increments on every content-changing update.
        content_hash: SHA-256 of the stored signed artifact.
        pre_signature_hash: SHA-256 of the final text that was signed.
        signer_pseudonym: Public code embedded in the signed text.
    """

    __tablename__ = "jc_decisions"

    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jc_cases.id"), nullable=False, index=True
    )
    author_judge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jc_subjects.id"), nullable=False, index=True
    )
    author_pseudonym: Mapped[str] = mapped_column(String(20), nullable=False)
    decision_type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    draft_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DecisionState.DRAFT,
        index=True,
        comment="DRAFT | READY_TO_SIGN | SIGNED | VOIDED",
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    document_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("jc_documents.id"), nullable=True
    )
    artifact_path: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    pre_signature_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    signer_pseudonym: Mapped[str | None] = mapped_column(String(20), nullable=True)
    signature_algorithm: Mapped[str | None] = mapped_column(String(50), nullable=True)
    certificate_serial: Mapped[str | None] = mapped_column(String(100), nullable=True)
    signature_b64: Mapped[str | None] = mapped_column(Text, nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class DecisionHistory(Base):
    """Pre-image of a decision taken before each mutating update.

    decision_id is not a foreign key; history rows outlive the
    hard delete of a draft.
    """

    __tablename__ = "jc_decision_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    decision_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    previous_version: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_title: Mapped[str] = mapped_column(String(500), nullable=False)
    previous_content: Mapped[str] = mapped_column(Text, nullable=False)
    previous_state: Mapped[str] = mapped_column(String(20), nullable=False)
    modified_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    change_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class Document(Base):
    """Signed artifact registered exactly once per successful signing."""

    __tablename__ = "jc_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jc_cases.id"), nullable=False, index=True
    )
    bound_decision_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False, unique=True, comment="Decision this artifact seals"
    )
    document_type: Mapped[str] = mapped_column(String(30), nullable=False)
    path: Mapped[str] = mapped_column(String(1000), nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class CaseTimelineEntry(Base):
    """Public procedural timeline entry. Carries pseudonyms only."""

    __tablename__ = "jc_case_timeline"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    case_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("jc_cases.id"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reference_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class PseudonymMapping(Base):
    """Forward-only mapping from a real subject id to its public code."""

    __tablename__ = "jc_pseudonym_map"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    real_subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, unique=True)
    public_code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class AuditEvent(Base):
    """IMMUTABLE hash-chained audit event.

    Each row's hash covers its own fields plus previous_hash, so editing,
    deleting or reordering rows is detectable by AuditLog.verify(). sequence
    is unique per table and defines chain order.

    This table has no updated_at column: rows are never modified.
    """

    __tablename__ = "jc_audit_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    actor_role: Mapped[str | None] = mapped_column(String(30), nullable=True)
    event_type: Mapped[str] = mapped_column(String(60), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    module: Mapped[str] = mapped_column(String(60), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    case_reference: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    source_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    instance_id: Mapped[str] = mapped_column(String(255), nullable=False)
    previous_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)
