"""Pydantic request and response schemas for the judicial-core API.

All API inputs and outputs use Pydantic models, never raw dicts.
Schemas are grouped by resource type.

Resources:
- Decision — lifecycle, history and integrity verification
- Case — public case view and reassignment
- Document — signed document metadata
- AuditEvent — audit log query, chain verification and statistics

Public views carry judge pseudonyms only; real subject ids never appear in a
decision or case response returned to a non-administrator.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from judicial_core.core.models import DecisionType


class ErrorResponse(BaseModel):
    """Body returned for every JudicialCoreError."""

    error_code: str = Field(description="Stable machine-readable error code")
    message: str = Field(description="Human-readable message, safe to display")


# ---------------------------------------------------------------------------
# Decision schemas
# ---------------------------------------------------------------------------


class DecisionCreateRequest(BaseModel):
    """Request body for drafting a new decision."""

    case_id: uuid.UUID = Field(description="Case the decision belongs to")
    decision_type: DecisionType = Field(
        description="INTERLOCUTORY_ORDER | PROCEDURAL_ORDER | JUDGMENT",
    )
    title: str = Field(description="Decision title", min_length=5, max_length=500)
    draft_content: str = Field(default="", description="Initial draft text")


class DecisionUpdateRequest(BaseModel):
    """Request body for editing a DRAFT decision. Omitted fields stay unchanged."""

    title: str | None = Field(default=None, min_length=5, max_length=500, description="New title")
    draft_content: str | None = Field(default=None, description="New draft text")
    change_reason: str | None = Field(default=None, max_length=1000, description="Why the draft changed")


class DecisionVoidRequest(BaseModel):
    """Request body for voiding an unsigned decision."""

    reason: str = Field(min_length=5, max_length=1000, description="Why the decision is voided")


class DecisionResponse(BaseModel):
    """Full decision view for officials.

    draft_content is None when the caller is a judge other than the author.
    """

    id: uuid.UUID = Field(description="Decision UUID")
    case_id: uuid.UUID = Field(description="Owning case UUID")
    author_pseudonym: str = Field(description="Public code of the authoring judge")
    decision_type: str = Field(description="Decision type")
    title: str = Field(description="Decision title")
    draft_content: str | None = Field(description="Draft text, redacted for non-authors")
    state: str = Field(description="DRAFT | READY_TO_SIGN | SIGNED | VOIDED")
    version: int = Field(description="Content version, starting at 1")
    content_hash: str | None = Field(default=None, description="SHA-256 of the signed artifact")
    signer_pseudonym: str | None = Field(default=None, description="Pseudonym embedded in the signed text")
    signature_algorithm: str | None = Field(default=None, description="Signature algorithm")
    certificate_serial: str | None = Field(default=None, description="Signing credential serial")
    signed_at: datetime | None = Field(default=None, description="Signing timestamp (UTC)")
    document_id: uuid.UUID | None = Field(default=None, description="Registered signed document")
    void_reason: str | None = Field(default=None, description="Reason recorded when voided")
    created_at: datetime = Field(description="Creation timestamp")
    updated_at: datetime = Field(description="Last modification timestamp")


class DecisionSummaryResponse(BaseModel):
    """Public list item for a decision."""

    id: uuid.UUID
    case_id: uuid.UUID
    author_pseudonym: str
    decision_type: str
    title: str
    state: str
    version: int
    signed_at: datetime | None = None
    created_at: datetime


class DecisionListResponse(BaseModel):
    """Paginated list of decisions."""

    items: list[DecisionSummaryResponse]
    total: int = Field(description="Total matching decisions")
    page: int
    page_size: int


class DecisionHistoryEntryResponse(BaseModel):
    """One pre-image snapshot."""

    id: uuid.UUID
    previous_version: int
    previous_title: str
    previous_content: str
    previous_state: str
    change_reason: str | None
    created_at: datetime


class DecisionHistoryResponse(BaseModel):
    """Decision history, newest first."""

    decision_id: uuid.UUID
    entries: list[DecisionHistoryEntryResponse]


class IntegrityReportResponse(BaseModel):
    """Result of re-hashing a signed artifact."""

    decision_id: uuid.UUID
    matches: bool = Field(description="True when the stored artifact hashes to the recorded value")
    stored_hash: str | None
    actual_hash: str | None
    signature_valid: bool | None = Field(
        default=None,
        description="Signature check over the embedded content; None when it could not be run",
    )
    signer_pseudonym: str | None
    signature_algorithm: str | None
    certificate_serial: str | None
    signed_at: datetime | None
    error: str | None = Field(default=None, description="Why the artifact could not be checked")


# ---------------------------------------------------------------------------
# Case schemas
# ---------------------------------------------------------------------------


class CaseResponse(BaseModel):
    """Case view. assigned_judge_id is populated for administrators only."""

    id: uuid.UUID
    case_number: str
    assigned_judge_pseudonym: str | None
    assigned_judge_id: uuid.UUID | None = None
    procedural_state: str
    judicial_unit: str
    subject_matter: str


class CaseReassignRequest(BaseModel):
    """Request body for reassigning a case to another judge."""

    new_judge_id: uuid.UUID = Field(description="Subject id of the new judge")
    reason: str = Field(min_length=5, max_length=1000, description="Why the case is reassigned")


# ---------------------------------------------------------------------------
# Document schemas
# ---------------------------------------------------------------------------


class DocumentResponse(BaseModel):
    """Signed document metadata. The storage path and signer id are not exposed."""

    id: uuid.UUID
    case_id: uuid.UUID
    bound_decision_id: uuid.UUID = Field(description="Decision this document seals")
    document_type: str
    content_hash: str = Field(description="SHA-256 of the stored artifact, hex encoded")
    size_bytes: int
    created_at: datetime


# ---------------------------------------------------------------------------
# Audit schemas
# ---------------------------------------------------------------------------


class AuditEventResponse(BaseModel):
    """One audit log row."""

    id: uuid.UUID
    sequence: int
    timestamp: datetime
    actor_id: uuid.UUID | None
    actor_role: str | None
    event_type: str
    severity: str
    module: str
    description: str
    details: dict[str, Any]
    case_reference: str | None
    source_ip: str | None
    instance_id: str
    hash: str

    model_config = {"from_attributes": True}


class AuditEventListResponse(BaseModel):
    """Paginated audit events, newest first."""

    items: list[AuditEventResponse]
    total: int
    page: int
    page_size: int


class AuditChainReportResponse(BaseModel):
    """Result of verifying the audit hash chain."""

    intact: bool
    total_rows: int
    valid_rows: int
    tampered_ids: list[uuid.UUID]
    broken_link_ids: list[uuid.UUID]
    first_error_id: uuid.UUID | None


class AuditStatisticsResponse(BaseModel):
    """Audit event counts by outcome."""

    total: int
    denied: int
    failed: int
    succeeded: int
