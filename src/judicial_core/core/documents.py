"""Signed document reads.

Documents are registered by DecisionService.sign() and never change. Access
goes through the ownership guard as kind "document": the case's assigned judge
and the clerk who opened the case may read it, administrators always may.
Content is served only after its SHA-256 matches the hash recorded at signing.
"""

import hashlib
import uuid

from judicial_core.api.schemas import DocumentResponse
from judicial_core.auth import Caller
from judicial_core.core.audit import AuditLog, AuditRecord
from judicial_core.core.authorization import OwnershipGuard
from judicial_core.core.interfaces import IArtifactStore, IDocumentRepository
from judicial_core.core.models import Document, Severity
from judicial_core.errors import IntegrityMismatchError, NotFoundError
from judicial_core.observability import get_logger

logger = get_logger(__name__)

MODULE = "documents"


def _to_response(document: Document) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        case_id=document.case_id,
        bound_decision_id=document.bound_decision_id,
        document_type=document.document_type,
        content_hash=document.content_hash,
        size_bytes=document.size_bytes,
        created_at=document.created_at,
    )


class DocumentService:
    """Guarded metadata and content reads for signed documents.

    Args:
        document_repo: Document persistence.
        guard: Ownership guard with a "document" descriptor registered.
        artifact_store: Storage holding the signed artifacts.
        audit_log: Audit log.
    """

    def __init__(
        self,
        document_repo: IDocumentRepository,
        guard: OwnershipGuard,
        artifact_store: IArtifactStore,
        audit_log: AuditLog,
    ) -> None:
        self._document_repo = document_repo
        self._guard = guard
        self._artifact_store = artifact_store
        self._audit_log = audit_log

    async def _load(self, document_id: uuid.UUID, caller: Caller) -> Document:
        await self._guard.authorize("document", document_id, caller)
        document = await self._document_repo.get_or_none(document_id)
        if document is None:
            raise NotFoundError(resource="document", resource_id=str(document_id))
        return document

    async def get_document(self, document_id: uuid.UUID, caller: Caller) -> DocumentResponse:
        """Return a document's metadata. The storage path is never exposed."""
        return _to_response(await self._load(document_id, caller))

    async def get_document_content(self, document_id: uuid.UUID, caller: Caller) -> bytes:
        """Return the document bytes after checking them against the recorded hash.

        Raises:
            NotFoundError: If the document does not exist.
            ForbiddenError: If the caller may not read the document's case.
            IntegrityMismatchError: If the artifact is unreadable or its hash diverged.
        """
        document = await self._load(document_id, caller)

        try:
            data = await self._artifact_store.read(document.path)
        except OSError as exc:
            logger.error("Document artifact unreadable", document_id=str(document_id))
            await self._record_mismatch(caller, document, actual_hash=None)
            raise IntegrityMismatchError("Document could not be read", stored_hash=document.content_hash) from exc

        actual_hash = hashlib.sha256(data).hexdigest()
        if actual_hash != document.content_hash:
            logger.error("Document hash mismatch", document_id=str(document_id))
            await self._record_mismatch(caller, document, actual_hash=actual_hash)
            raise IntegrityMismatchError(
                "Document no longer matches its recorded hash",
                stored_hash=document.content_hash,
                actual_hash=actual_hash,
            )

        await self._audit_log.record(
            AuditRecord(
                event_type="DOCUMENT_DOWNLOADED",
                severity=Severity.LOW,
                module=MODULE,
                description="Signed document downloaded",
                actor_id=caller.subject_id,
                actor_role=caller.role,
                details={
                    "document_id": str(document.id),
                    "bound_decision_id": str(document.bound_decision_id),
                    "content_hash": document.content_hash,
                },
                source_ip=caller.source_ip,
            )
        )
        return data

    async def _record_mismatch(self, caller: Caller, document: Document, actual_hash: str | None) -> None:
        await self._audit_log.record(
            AuditRecord(
                event_type="DOCUMENT_INTEGRITY_FAILED",
                severity=Severity.CRITICAL,
                module=MODULE,
                description="Signed document no longer matches its recorded hash",
                actor_id=caller.subject_id,
                actor_role=caller.role,
                details={
                    "document_id": str(document.id),
                    "bound_decision_id": str(document.bound_decision_id),
                    "stored_hash": document.content_hash,
                    "actual_hash": actual_hash,
                },
                source_ip=caller.source_ip,
            )
        )
