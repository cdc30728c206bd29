"""SQLAlchemy repositories for the judicial-core primary database.

Each repository implements the corresponding interface from core/interfaces.py.
Repositories flush but never commit; transaction boundaries belong to services.

Repositories:
- SubjectRepository          — Subject reads and provisioning
- CaseRepository             — Case reads, assignment and procedural state
- DecisionRepository         — Decision CRUD with version-guarded transitions
- DecisionHistoryRepository  — Append-only decision pre-images
- DocumentRepository         — Signed artifact registry
- CaseTimelineRepository     — Public case timeline
- PseudonymRepository        — Forward-only pseudonym map

NOTE: AuditEventRepository lives in audit_wall.py, not here. It uses a
separate database session.
"""

import uuid
from collections.abc import Sequence
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from judicial_core.core.models import (
    Case,
    CaseTimelineEntry,
    Decision,
    DecisionHistory,
    DecisionState,
    Document,
    PseudonymMapping,
    Subject,
    SubjectStatus,
    utcnow,
)
from judicial_core.errors import NotFoundError
from judicial_core.observability import get_logger

logger = get_logger(__name__)


class SubjectRepository:
    """Repository for Subject persistence.

    Args:
        session: The primary DB async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_or_none(self, subject_id: uuid.UUID) -> Subject | None:
        """Load a subject fresh from the database.

        Args:
            subject_id: The subject UUID.

        Returns:
            The Subject, or None if it does not exist.
        """
        stmt = select(Subject).where(Subject.id == subject_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        role: str,
        full_name: str,
        email: str,
        judicial_unit: str | None = None,
        subject_matter: str | None = None,
        status: str = SubjectStatus.ACTIVE,
    ) -> Subject:
        """Provision a subject.

        Args:
            role: One of SubjectRole.
            full_name: Display name, never shown publicly.
            email: Unique login email.
            judicial_unit: Optional court unit.
            subject_matter: Optional subject matter.
            status: Initial account status.

        Returns:
            The persisted Subject.
        """
        subject = Subject(
            role=role,
            full_name=full_name,
            email=email,
            judicial_unit=judicial_unit,
            subject_matter=subject_matter,
            status=status,
        )
        self._session.add(subject)
        await self._session.flush()
        logger.info("Subject provisioned", subject_id=str(subject.id), role=role)
        return subject


class CaseRepository:
    """Repository for Case persistence.

    Args:
        session: The primary DB async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_or_none(self, case_id: uuid.UUID) -> Case | None:
        """Load a case fresh from the database, or None."""
        stmt = select(Case).where(Case.id == case_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, case_id: uuid.UUID) -> Case:
        """Load a case.

        Raises:
            NotFoundError: If no case exists with the given ID.
        """
        case = await self.get_or_none(case_id)
        if case is None:
            raise NotFoundError(resource="Case", resource_id=str(case_id))
        return case

    async def create(
        self,
        case_number: str,
        assigned_judge_id: uuid.UUID,
        judicial_unit: str,
        subject_matter: str,
        created_by_clerk_id: uuid.UUID | None = None,
        assigned_judge_pseudonym: str | None = None,
    ) -> Case:
        """Create a case in the OPENED procedural state."""
        case = Case(
            case_number=case_number,
            assigned_judge_id=assigned_judge_id,
            assigned_judge_pseudonym=assigned_judge_pseudonym,
            created_by_clerk_id=created_by_clerk_id,
            judicial_unit=judicial_unit,
            subject_matter=subject_matter,
        )
        self._session.add(case)
        await self._session.flush()
        logger.info("Case created", case_id=str(case.id), case_number=case_number)
        return case

    async def update_assignment(self, case_id: uuid.UUID, judge_id: uuid.UUID, pseudonym: str) -> Case:
        """Point the case at a new judge.

        Raises:
            NotFoundError: If the case does not exist.
        """
        await self._session.execute(
            update(Case)
            .where(Case.id == case_id)
            .values(assigned_judge_id=judge_id, assigned_judge_pseudonym=pseudonym, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return await self.get_by_id(case_id)

    async def update_procedural_state(self, case_id: uuid.UUID, procedural_state: str) -> None:
        """Set the case's procedural state."""
        await self._session.execute(
            update(Case)
            .where(Case.id == case_id)
            .values(procedural_state=procedural_state, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )


class DecisionRepository:
    """Repository for Decision persistence.

    Transitions go through conditional_update(), which compiles to a single
    UPDATE ... WHERE id = :id AND version = :expected AND state IN (...).
    A zero row count means another writer got there first.

    Args:
        session: The primary DB async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

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
        decision = Decision(
            case_id=case_id,
            author_judge_id=author_judge_id,
            author_pseudonym=author_pseudonym,
            decision_type=decision_type,
            title=title,
            draft_content=draft_content,
            state=DecisionState.DRAFT,
            version=1,
        )
        self._session.add(decision)
        await self._session.flush()
        return decision

    async def get_or_none(self, decision_id: uuid.UUID) -> Decision | None:
        """Load a decision fresh from the database, or None."""
        stmt = select(Decision).where(Decision.id == decision_id).execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, decision_id: uuid.UUID) -> Decision | None:
        """Load a decision with SELECT ... FOR UPDATE.

        The row lock is held until the surrounding transaction ends. Dialects
        without row locks render a plain SELECT; the version guard in
        conditional_update() still detects lost races there.
        """
        stmt = (
            select(Decision)
            .where(Decision.id == decision_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_filtered(
        self,
        case_id: uuid.UUID | None = None,
        author_judge_id: uuid.UUID | None = None,
        decision_type: str | None = None,
        state: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Decision], int]:
        """List decisions with optional filters.

        Args:
            case_id: Optional case filter.
            author_judge_id: Optional author filter.
            decision_type: Optional type filter.
            state: Optional state filter.
            page: Page number (1-indexed).
            page_size: Records per page.

        Returns:
            Tuple of (decisions newest first, total match count).
        """
        conditions = []
        if case_id:
            conditions.append(Decision.case_id == case_id)
        if author_judge_id:
            conditions.append(Decision.author_judge_id == author_judge_id)
        if decision_type:
            conditions.append(Decision.decision_type == decision_type)
        if state:
            conditions.append(Decision.state == state)

        count_stmt = select(func.count()).select_from(Decision).where(*conditions)
        total = (await self._session.execute(count_stmt)).scalar_one()

        stmt = (
            select(Decision)
            .where(*conditions)
            .order_by(Decision.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all()), total

    async def conditional_update(
        self,
        decision_id: uuid.UUID,
        expected_version: int,
        allowed_states: Sequence[str],
        values: dict[str, Any],
    ) -> int:
        """Apply values only if the row still has the expected version and state.

        Args:
            decision_id: The decision UUID.
            expected_version: Version the caller validated against.
            allowed_states: States the row may be in for the update to apply.
            values: Column values to set; updated_at is always refreshed.

        Returns:
            Number of rows updated (0 or 1).
        """
        stmt = (
            update(Decision)
            .where(
                Decision.id == decision_id,
                Decision.version == expected_version,
                Decision.state.in_([str(s) for s in allowed_states]),
            )
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount

    async def delete_draft(self, decision_id: uuid.UUID) -> int:
        """Hard-delete a decision that is still a DRAFT. Returns the row count."""
        stmt = (
            delete(Decision)
            .where(Decision.id == decision_id, Decision.state == DecisionState.DRAFT)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount


class DecisionHistoryRepository:
    """Append-only repository for DecisionHistory. No update or delete.

    Args:
        session: The primary DB async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def snapshot(
        self,
        decision: Decision,
        modified_by_id: uuid.UUID,
        change_reason: str | None,
    ) -> DecisionHistory:
        """Record the decision's current values as a pre-image."""
        entry = DecisionHistory(
            decision_id=decision.id,
            previous_version=decision.version,
            previous_title=decision.title,
            previous_content=decision.draft_content,
            previous_state=decision.state,
            modified_by_id=modified_by_id,
            change_reason=change_reason,
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_for_decision(self, decision_id: uuid.UUID) -> list[DecisionHistory]:
        """Return the decision's history, newest first."""
        stmt = (
            select(DecisionHistory)
            .where(DecisionHistory.decision_id == decision_id)
            .order_by(DecisionHistory.created_at.desc(), DecisionHistory.previous_version.desc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class DocumentRepository:
    """Repository for signed Document records. Insert and read only.

    Args:
        session: The primary DB async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

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
        document = Document(
            case_id=case_id,
            bound_decision_id=bound_decision_id,
            document_type=document_type,
            path=path,
            content_hash=content_hash,
            size_bytes=size_bytes,
            created_by_id=created_by_id,
        )
        self._session.add(document)
        await self._session.flush()
        return document

    async def get_or_none(self, document_id: uuid.UUID) -> Document | None:
        """Return the document, or None."""
        result = await self._session.execute(select(Document).where(Document.id == document_id))
        return result.scalar_one_or_none()

    async def list_for_decision(self, decision_id: uuid.UUID) -> list[Document]:
        """Return the documents bound to a decision."""
        result = await self._session.execute(select(Document).where(Document.bound_decision_id == decision_id))
        return list(result.scalars().all())


class CaseTimelineRepository:
    """Repository for the public case timeline.

    Args:
        session: The primary DB async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_entry(
        self,
        case_id: uuid.UUID,
        event_type: str,
        description: str,
        reference_id: uuid.UUID | None = None,
    ) -> CaseTimelineEntry:
        """Append a timeline entry."""
        entry = CaseTimelineEntry(
            case_id=case_id,
            event_type=event_type,
            description=description,
            reference_id=reference_id,
        )
        self._session.add(entry)
        await self._session.flush()
        return entry

    async def list_for_case(self, case_id: uuid.UUID) -> list[CaseTimelineEntry]:
        """Return the case timeline, oldest first."""
        stmt = (
            select(CaseTimelineEntry)
            .where(CaseTimelineEntry.case_id == case_id)
            .order_by(CaseTimelineEntry.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class PseudonymRepository:
    """Forward-only pseudonym map. No lookup by public code, no update or delete.

    Args:
        session: The primary DB async session.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_subject(self, subject_id: uuid.UUID) -> PseudonymMapping | None:
        """Return the mapping for a real subject id, or None."""
        stmt = select(PseudonymMapping).where(PseudonymMapping.real_subject_id == subject_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def code_exists(self, public_code: str) -> bool:
        """Return True if the public code is already taken."""
        stmt = select(func.count()).select_from(PseudonymMapping).where(PseudonymMapping.public_code == public_code)
        return (await self._session.execute(stmt)).scalar_one() > 0

    async def insert(self, subject_id: uuid.UUID, public_code: str) -> PseudonymMapping:
        """Persist a new mapping."""
        mapping = PseudonymMapping(real_subject_id=subject_id, public_code=public_code)
        self._session.add(mapping)
        await self._session.flush()
        return mapping

    async def count(self) -> int:
        """Return the number of issued pseudonyms."""
        return (await self._session.execute(select(func.count()).select_from(PseudonymMapping))).scalar_one()
