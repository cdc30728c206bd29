"""Tests for the ownership guard.

Tests verify:
- The pure is_allowed() rule (property-based with hypothesis)
- Cross-judge access is denied and audited HIGH with the real owner
- Grants are audited LOW, missing resources MEDIUM
- Clerks are matched against the case's creating clerk, and a clerk denial
  records that clerk attribute as the owner
- Inactive callers are denied regardless of ownership
"""

import dataclasses
import uuid

import pytest
from hypothesis import given
from hypothesis import strategies as st
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_core.adapters.repositories import CaseRepository
from judicial_core.api.router import build_guard
from judicial_core.auth import Caller
from judicial_core.core.audit import AuditLog
from judicial_core.core.authorization import OwnedResource, is_allowed
from judicial_core.core.models import Severity, SubjectRole, SubjectStatus
from judicial_core.errors import ForbiddenError, NotFoundError
from tests.conftest import Court, audit_events_of_type

SUBJECT_POOL = [uuid.UUID(int=n) for n in range(1, 5)]

subject_ids = st.sampled_from(SUBJECT_POOL)
optional_subject_ids = st.one_of(st.none(), subject_ids)


class TestIsAllowed:
    """Property tests for the pure ownership rule."""

    @given(
        caller_id=subject_ids,
        role=st.sampled_from(list(SubjectRole)),
        status=st.sampled_from(list(SubjectStatus)),
        owner_id=optional_subject_ids,
        clerk_owner_id=optional_subject_ids,
    )
    def test_rule(
        self,
        caller_id: uuid.UUID,
        role: SubjectRole,
        status: SubjectStatus,
        owner_id: uuid.UUID | None,
        clerk_owner_id: uuid.UUID | None,
    ) -> None:
        """Inactive is denied, administrators pass, everyone else must own the resource."""
        resource = OwnedResource(
            kind="case",
            resource_id=uuid.uuid4(),
            owner_id=owner_id,
            role_owners={SubjectRole.CLERK: clerk_owner_id},
        )
        caller = Caller(subject_id=caller_id, role=role, status=status)

        allowed = is_allowed(resource, caller)

        if status != SubjectStatus.ACTIVE:
            assert allowed is False
        elif role == SubjectRole.ADMINISTRATOR:
            assert allowed is True
        elif role == SubjectRole.CLERK:
            assert allowed is (clerk_owner_id == caller_id)
        else:
            assert allowed is (owner_id == caller_id)

    @given(caller_id=subject_ids, role=st.sampled_from([SubjectRole.JUDGE, SubjectRole.AUDITOR]))
    def test_unowned_resource_is_never_allowed_to_non_administrators(
        self, caller_id: uuid.UUID, role: SubjectRole
    ) -> None:
        """A resource without an owner only admits administrators."""
        resource = OwnedResource(kind="document", resource_id=uuid.uuid4(), owner_id=None)

        assert not is_allowed(resource, Caller(subject_id=caller_id, role=role))


class TestOwnershipGuard:
    """Tests for OwnershipGuard against seeded cases and decisions."""

    @pytest.mark.asyncio()
    async def test_assigned_judge_is_granted(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """The assigned judge gets a grant with a fresh snapshot; the grant is audited LOW."""
        async with session_factory() as session:
            grant = await build_guard(session, audit_log).authorize("case", court.case_one_id, court.judge_one)

        assert grant.snapshot["case_number"] == court.case_one_number
        events = await audit_events_of_type(audit_log, "RESOURCE_ACCESS_GRANTED")
        assert len(events) == 1
        assert events[0].severity == Severity.LOW
        assert events[0].case_reference == court.case_one_number

    @pytest.mark.asyncio()
    async def test_cross_judge_access_is_denied_and_audited(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """A judge reading another judge's case is refused; the real owner is recorded."""
        async with session_factory() as session:
            with pytest.raises(ForbiddenError):
                await build_guard(session, audit_log).authorize("case", court.case_one_id, court.judge_two)

        events = await audit_events_of_type(audit_log, "RESOURCE_ACCESS_DENIED")
        assert len(events) == 1
        event = events[0]
        assert event.severity == Severity.HIGH
        assert event.actor_id == court.judge_two.subject_id
        assert event.details["real_owner_id"] == str(court.judge_one.subject_id)
        assert event.details["role_specific_owner"] is False
        assert event.details["intruder_id"] == str(court.judge_two.subject_id)
        assert event.details["intruder_email"] == court.judge_two.email
        assert event.source_ip == court.judge_two.source_ip

    @pytest.mark.asyncio()
    async def test_administrator_bypasses_ownership(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """Administrators are granted on every case, and the bypass is noted."""
        async with session_factory() as session:
            guard = build_guard(session, audit_log)
            await guard.authorize("case", court.case_one_id, court.admin)
            await guard.authorize("case", court.case_two_id, court.admin)

        events = await audit_events_of_type(audit_log, "RESOURCE_ACCESS_GRANTED")
        assert len(events) == 2
        assert all(event.details["bypass"] is True for event in events)

    @pytest.mark.asyncio()
    async def test_clerk_is_matched_against_creating_clerk(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """The clerk who opened case one may access it but not case two."""
        async with session_factory() as session:
            guard = build_guard(session, audit_log)
            await guard.authorize("case", court.case_one_id, court.clerk)
            with pytest.raises(ForbiddenError):
                await guard.authorize("case", court.case_two_id, court.clerk)

        events = await audit_events_of_type(audit_log, "RESOURCE_ACCESS_DENIED")
        assert len(events) == 1
        assert events[0].details["real_owner_id"] is None
        assert events[0].details["role_specific_owner"] is True

    @pytest.mark.asyncio()
    async def test_inactive_owner_is_denied(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """A suspended judge loses access to their own case."""
        suspended = dataclasses.replace(court.judge_one, status=SubjectStatus.SUSPENDED)

        async with session_factory() as session:
            with pytest.raises(ForbiddenError):
                await build_guard(session, audit_log).authorize("case", court.case_one_id, suspended)

        events = await audit_events_of_type(audit_log, "RESOURCE_ACCESS_DENIED")
        assert events[0].details["caller_active"] is False

    @pytest.mark.asyncio()
    async def test_missing_resource_is_not_found(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """An unknown id raises NotFoundError and is audited MEDIUM."""
        missing = uuid.uuid4()
        async with session_factory() as session:
            with pytest.raises(NotFoundError):
                await build_guard(session, audit_log).authorize("decision", missing, court.judge_one)

        events = await audit_events_of_type(audit_log, "RESOURCE_NOT_FOUND")
        assert len(events) == 1
        assert events[0].severity == Severity.MEDIUM
        assert events[0].details == {"resource_kind": "decision", "resource_id": str(missing)}

    @pytest.mark.asyncio()
    async def test_unknown_kind_raises_key_error(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """Only registered resource kinds can be authorized."""
        async with session_factory() as session:
            with pytest.raises(KeyError):
                await build_guard(session, audit_log).authorize("courtroom", uuid.uuid4(), court.admin)

    @pytest.mark.asyncio()
    async def test_ownership_is_read_fresh(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audit_log: AuditLog,
        court: Court,
    ) -> None:
        """Reassigning a case takes effect on the very next check in the same session."""
        async with session_factory() as session:
            guard = build_guard(session, audit_log)
            await guard.authorize("case", court.case_one_id, court.judge_one)

            await CaseRepository(session).update_assignment(
                court.case_one_id, court.judge_two.subject_id, "JUD-0A1B2C3D"
            )

            await guard.authorize("case", court.case_one_id, court.judge_two)
            with pytest.raises(ForbiddenError):
                await guard.authorize("case", court.case_one_id, court.judge_one)
