"""Tests for DocumentService: guarded reads of signed documents.

Tests verify:
- Only the case's judge, its clerk and administrators can read a document
- A cross-judge read is denied through the ownership guard and audited HIGH
- Content is served only while its hash matches the recorded one
"""

import hashlib
import uuid
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_core.adapters.repositories import DocumentRepository
from judicial_core.api.router import build_decision_service, build_document_service
from judicial_core.core.audit import AuditLog
from judicial_core.core.models import Severity
from judicial_core.errors import ForbiddenError, IntegrityMismatchError, NotFoundError
from judicial_core.settings import Settings
from tests.conftest import Court, audit_events_of_type, draft_decision


@pytest.fixture()
async def document_id(
    session_factory: async_sessionmaker[AsyncSession],
    audit_log: AuditLog,
    settings: Settings,
    court: Court,
    signing_keys: dict[uuid.UUID, str],
) -> uuid.UUID:
    """Sign one decision on case one and return its registered document id."""
    decision_id = await draft_decision(
        session_factory, audit_log, settings, court.judge_one, court.case_one_id, prepare=True
    )
    async with session_factory() as session:
        signed = await build_decision_service(session, audit_log, settings).sign(decision_id, court.judge_one)
    assert signed.document_id is not None
    return signed.document_id


async def stored_path(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    document_id: uuid.UUID,
) -> Path:
    async with session_factory() as session:
        document = await DocumentRepository(session).get_or_none(document_id)
    assert document is not None
    return Path(settings.artifact_storage_path) / document.path


class TestDocumentAccess:
    """Tests for get_document() through the ownership guard."""

    @pytest.mark.asyncio()
    async def test_assigned_judge_reads_metadata(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
        document_id: uuid.UUID,
    ) -> None:
        """Metadata names the sealed decision and omits the storage path."""
        async with session_factory() as session:
            document = await build_document_service(session, audit_log, settings).get_document(
                document_id, court.judge_one
            )

        assert document.id == document_id
        assert document.case_id == court.case_one_id
        assert len(document.content_hash) == 64
        assert "path" not in document.model_dump()

        grants = await audit_events_of_type(audit_log, "RESOURCE_ACCESS_GRANTED")
        document_grants = [event for event in grants if event.details["resource_kind"] == "document"]
        assert len(document_grants) == 1
        assert document_grants[0].case_reference == court.case_one_number

    @pytest.mark.asyncio()
    async def test_cross_judge_read_is_denied_and_audited(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
        document_id: uuid.UUID,
    ) -> None:
        """Judge two cannot read a document on judge one's case."""
        async with session_factory() as session:
            service = build_document_service(session, audit_log, settings)
            with pytest.raises(ForbiddenError):
                await service.get_document(document_id, court.judge_two)
            with pytest.raises(ForbiddenError):
                await service.get_document_content(document_id, court.judge_two)

        events = await audit_events_of_type(audit_log, "RESOURCE_ACCESS_DENIED")
        assert len(events) == 2
        assert all(event.severity == Severity.HIGH for event in events)
        assert all(event.details["resource_kind"] == "document" for event in events)
        assert all(event.details["real_owner_id"] == str(court.judge_one.subject_id) for event in events)
        assert await audit_events_of_type(audit_log, "DOCUMENT_DOWNLOADED") == []

    @pytest.mark.asyncio()
    async def test_case_clerk_and_administrator_are_granted(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
        document_id: uuid.UUID,
    ) -> None:
        """The clerk who opened the case and any administrator may read the document."""
        async with session_factory() as session:
            service = build_document_service(session, audit_log, settings)
            by_clerk = await service.get_document(document_id, court.clerk)
            by_admin = await service.get_document(document_id, court.admin)

        assert by_clerk.id == by_admin.id == document_id

    @pytest.mark.asyncio()
    async def test_auditor_is_denied(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
        document_id: uuid.UUID,
    ) -> None:
        async with session_factory() as session:
            with pytest.raises(ForbiddenError):
                await build_document_service(session, audit_log, settings).get_document(document_id, court.auditor)

    @pytest.mark.asyncio()
    async def test_missing_document(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
    ) -> None:
        async with session_factory() as session:
            with pytest.raises(NotFoundError):
                await build_document_service(session, audit_log, settings).get_document(uuid.uuid4(), court.admin)

        events = await audit_events_of_type(audit_log, "RESOURCE_NOT_FOUND")
        assert events[0].details["resource_kind"] == "document"


class TestDocumentContent:
    """Tests for get_document_content() hash checking."""

    @pytest.mark.asyncio()
    async def test_content_matches_recorded_hash(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
        document_id: uuid.UUID,
    ) -> None:
        """The clerk downloads the exact signed bytes and the download is audited."""
        async with session_factory() as session:
            service = build_document_service(session, audit_log, settings)
            metadata = await service.get_document(document_id, court.clerk)
            data = await service.get_document_content(document_id, court.clerk)

        assert hashlib.sha256(data).hexdigest() == metadata.content_hash
        assert len(data) == metadata.size_bytes
        events = await audit_events_of_type(audit_log, "DOCUMENT_DOWNLOADED")
        assert len(events) == 1
        assert events[0].actor_id == court.clerk.subject_id

    @pytest.mark.asyncio()
    async def test_tampered_content_is_refused(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
        document_id: uuid.UUID,
    ) -> None:
        """Edited bytes on disk raise IntegrityMismatchError and are audited CRITICAL."""
        path = await stored_path(session_factory, settings, document_id)
        path.write_bytes(path.read_bytes().replace(b"admissible", b"inadmissible"))

        async with session_factory() as session:
            with pytest.raises(IntegrityMismatchError) as exc_info:
                await build_document_service(session, audit_log, settings).get_document_content(
                    document_id, court.judge_one
                )

        assert exc_info.value.actual_hash is not None
        events = await audit_events_of_type(audit_log, "DOCUMENT_INTEGRITY_FAILED")
        assert len(events) == 1
        assert events[0].severity == Severity.CRITICAL
        assert await audit_events_of_type(audit_log, "DOCUMENT_DOWNLOADED") == []

    @pytest.mark.asyncio()
    async def test_missing_content_is_a_mismatch(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        settings: Settings,
        court: Court,
        document_id: uuid.UUID,
    ) -> None:
        (await stored_path(session_factory, settings, document_id)).unlink()

        async with session_factory() as session:
            with pytest.raises(IntegrityMismatchError) as exc_info:
                await build_document_service(session, audit_log, settings).get_document_content(
                    document_id, court.admin
                )

        assert exc_info.value.actual_hash is None
        events = await audit_events_of_type(audit_log, "DOCUMENT_INTEGRITY_FAILED")
        assert events[0].details["actual_hash"] is None
