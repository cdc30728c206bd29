"""Abstract interfaces (Protocol classes) for judicial-core.

Defines the contracts between the service layer and the adapter layer using
Python's typing.Protocol. Services depend on these protocols, never on
concrete adapter implementations, so tests can swap in mocks.

Protocols defined:
- ISubjectRepository
- ICaseRepository
- IDecisionRepository
- IDecisionHistoryRepository
- IDocumentRepository
- ICaseTimelineRepository
- IPseudonymRepository
- ISigningProvider
- IArtifactRenderer
- IArtifactStore

Value types:
- SignatureMetadata — what a signing provider returns for one signature
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from judicial_core.core.models import (
    Case,
    CaseTimelineEntry,
    Decision,
    DecisionHistory,
    Document,
    PseudonymMapping,
    Subject,
)


@dataclass(frozen=True)
class SignatureMetadata:
    """Result of one signing operation.

    Attributes:
        algorithm: Signature algorithm name, e.g. Ed25519.
        certificate_serial: Serial of the credential that produced the signature.
        key_id: Public identifier of the signing key.
        signature_b64: Base64 signature over the signed bytes.
        content_hash: SHA-256 hex digest of the signed bytes.
        signed_at: Signing timestamp (UTC).
    """

    algorithm: str
    certificate_serial: str
    key_id: str
    signature_b64: str
    content_hash: str
    signed_at: datetime


class ISubjectRepository(Protocol):
    """Repository contract for Subject persistence."""

    async def get_or_none(self, subject_id: uuid.UUID) -> Subject | None:
        """Return the subject, or None when it does not exist."""
        ...

    async def create(
        self,
        role: str,
        full_name: str,
        email: str,
        judicial_unit: str | None = None,
        subject_matter: str | None = None,
    ) -> Subject:
        """Create and persist a subject."""
        ...


class ICaseRepository(Protocol):
    """Repository contract for Case persistence."""

    async def get_or_none(self, case_id: uuid.UUID) -> Case | None:
        """Return the case, or None when it does not exist."""
        ...

    async def get_by_id(self, case_id: uuid.UUID) -> Case:
        """Return the case.

        Raises:
            NotFoundError: If no case exists with the given ID.
        """
        ...

    async def create(
        self,
        case_number: str,
        assigned_judge_id: uuid.UUID,
        judicial_unit: str,
        subject_matter: str,
        created_by_clerk_id: uuid.UUID | None = None,
        assigned_judge_pseudonym: str | None = None,
    ) -> Case:
        """Create and persist a case."""
        ...

    async def update_assignment(self, case_id: uuid.UUID, judge_id: uuid.UUID, pseudonym: str) -> Case:
        """Point the case at a new judge and pseudonym."""
        ...

    async def update_procedural_state(self, case_id: uuid.UUID, procedural_state: str) -> None:
        """Set the case's procedural state."""
        ...


class IDecisionRepository(Protocol):
    """Repository contract for Decision persistence.

    Every state or content transition is a conditional UPDATE guarded by the
    expected version and the allowed source states. Callers inspect the
    returned row count to detect lost races.
    """

    async def create(
        self,
        case_id: uuid.UUID,
        author_judge_id: uuid.UUID,
        author_pseudonym: str,
        decision_type: str,
        title: str,
        draft_content: str,
    ) -> Decision:
        """Create a DRAFT decision at version 1."""
        ...

    async def get_or_none(self, decision_id: uuid.UUID) -> Decision | None:
        """Return a freshly loaded decision, or None."""
        ...

    async def get_for_update(self, decision_id: uuid.UUID) -> Decision | None:
        """Return the decision with a row lock held until the transaction ends."""
        ...

    async def list_filtered(
        self,
        case_id: uuid.UUID | None = None,
        author_judge_id: uuid.UUID | None = None,
        decision_type: str | None = None,
        state: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Decision], int]:
        """Return one page of decisions (newest first) and the total match count."""
        ...

    async def conditional_update(
        self,
        decision_id: uuid.UUID,
        expected_version: int,
        allowed_states: Sequence[str],
        values: dict[str, Any],
    ) -> int:
        """Apply values only if version and state still match. Returns the row count."""
        ...

    async def delete_draft(self, decision_id: uuid.UUID) -> int:
        """Hard-delete the decision if it is still a DRAFT. Returns the row count."""
        ...


class IDecisionHistoryRepository(Protocol):
    """Append-only repository contract for DecisionHistory."""

    async def snapshot(
        self,
        decision: Decision,
        modified_by_id: uuid.UUID,
        change_reason: str | None,
    ) -> DecisionHistory:
        """Record the decision's current pre-image."""
        ...

    async def list_for_decision(self, decision_id: uuid.UUID) -> list[DecisionHistory]:
        """Return the decision's history, newest first."""
        ...


class IDocumentRepository(Protocol):
    """Repository contract for signed Document records."""

    async def create(
        self,
        case_id: uuid.UUID,
        bound_decision_id: uuid.UUID,
        document_type: str,
        path: str,
        content_hash: str,
        size_bytes: int,
        created_by_id: uuid.UUID,
    ) -> Document:
        """Register a signed artifact."""
        ...

    async def get_or_none(self, document_id: uuid.UUID) -> Document | None:
        """Return the document, or None."""
        ...


class ICaseTimelineRepository(Protocol):
    """Repository contract for the public case timeline."""

    async def add_entry(
        self,
        case_id: uuid.UUID,
        event_type: str,
        description: str,
        reference_id: uuid.UUID | None = None,
    ) -> CaseTimelineEntry:
        """Append a timeline entry."""
        ...

    async def list_for_case(self, case_id: uuid.UUID) -> list[CaseTimelineEntry]:
        """Return the case timeline, oldest first."""
        ...


class IPseudonymRepository(Protocol):
    """Repository contract for the forward-only pseudonym map.

    Deliberately offers no lookup by public code.
    """

    async def get_by_subject(self, subject_id: uuid.UUID) -> PseudonymMapping | None:
        """Return the mapping for a real subject id, or None."""
        ...

    async def code_exists(self, public_code: str) -> bool:
        """Return True if the public code is already taken."""
        ...

    async def insert(self, subject_id: uuid.UUID, public_code: str) -> PseudonymMapping:
        """Persist a new mapping."""
        ...

    async def count(self) -> int:
        """Return the number of issued pseudonyms."""
        ...


class ISigningProvider(Protocol):
    """Contract for the external signing collaborator."""

    async def has_valid_credential(self, subject_id: uuid.UUID) -> bool:
        """Return True if the subject holds a credential valid right now."""
        ...

    async def sign(self, subject_id: uuid.UUID, content: bytes) -> SignatureMetadata:
        """Sign content on behalf of the subject.

        Raises:
            CredentialError: If no usable credential exists or signing fails.
        """
        ...

    async def verify(self, subject_id: uuid.UUID, content: bytes, signature_b64: str) -> bool:
        """Return True if the signature over content was made by the subject's key."""
        ...


class IArtifactRenderer(Protocol):
    """Contract for turning signed content into stored artifact bytes."""

    def render(self, content: str, metadata: SignatureMetadata) -> bytes:
        """Render the signed artifact."""
        ...

    def extract_content(self, data: bytes) -> str | None:
        """Return the signed content embedded in an artifact, or None if unparseable."""
        ...


class IArtifactStore(Protocol):
    """Contract for signed artifact storage."""

    async def save(self, data: bytes, path: str) -> str:
        """Store bytes under a relative path and return the location."""
        ...

    async def read(self, location: str) -> bytes:
        """Read stored bytes.

        Raises:
            OSError: If the artifact cannot be read.
        """
        ...

    async def discard(self, location: str) -> None:
        """Remove an artifact. Best-effort; never raises."""
        ...
