"""Test fixtures for judicial-core.

Service tests run against real SQLite databases (aiosqlite) in a temporary
directory: one file for the primary database and a separate file for the
audit database, mirroring the Audit Wall split.

Provides:
- settings: Settings pointing every path and URL into tmp_path
- session_factory / audit_session_factory: Session factories per database
- audit_log: A live AuditLog draining into the audit database
- court: Seeded subjects and cases with ready-made Callers
- signing_keys: Ed25519 credentials provisioned for both judges
"""

import uuid
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from judicial_core.adapters.repositories import CaseRepository, SubjectRepository
from judicial_core.adapters.signing import provision_credential
from judicial_core.api.router import build_decision_service
from judicial_core.auth import Caller
from judicial_core.core.audit import AuditFilters, AuditLog
from judicial_core.core.models import AuditEvent, Base, DecisionType, SubjectRole, SubjectStatus
from judicial_core.settings import Settings

LONG_DRAFT = (
    "Having reviewed the filings of both parties and the evidence on record, "
    "the court finds the claim admissible and orders the proceedings to continue."
)


@dataclass(frozen=True)
class Court:
    """Seeded subjects and cases shared by service tests."""

    admin: Caller
    judge_one: Caller
    judge_two: Caller
    clerk: Caller
    auditor: Caller
    suspended_judge: Caller
    case_one_id: uuid.UUID
    case_one_number: str
    case_two_id: uuid.UUID
    case_two_number: str


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Return Settings with every database and path inside tmp_path."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'primary.db'}",
        audit_db_url=f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}",
        pseudonym_hmac_secret="test-pseudonym-secret",
        signing_keys_path=str(tmp_path / "keys"),
        artifact_storage_path=str(tmp_path / "artifacts"),
        jwt_secret="test-jwt-secret",
        environment="test",
        instance_id="test-instance",
    )


@pytest.fixture()
async def primary_engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create the primary schema (everything except the audit table)."""
    engine = create_async_engine(settings.database_url, connect_args={"timeout": 30})
    primary_tables = [table for table in Base.metadata.sorted_tables if table.name != AuditEvent.__tablename__]
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=primary_tables)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def audit_engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create the audit schema on its own database file."""
    engine = create_async_engine(settings.effective_audit_db_url, connect_args={"timeout": 30})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, tables=[AuditEvent.__table__])
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(primary_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=primary_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture()
def audit_session_factory(audit_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=audit_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def audit_log(audit_session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AuditLog, None]:
    """Return a live AuditLog; pending events are drained on teardown."""
    log = AuditLog(session_factory=audit_session_factory, instance_id="test-instance")
    yield log
    await log.close()


def _caller(subject_id: uuid.UUID, role: SubjectRole, email: str, status: SubjectStatus = SubjectStatus.ACTIVE) -> Caller:
    return Caller(subject_id=subject_id, role=role, status=status, email=email, source_ip="10.0.0.7")


@pytest.fixture()
async def court(session_factory: async_sessionmaker[AsyncSession]) -> Court:
    """Seed an administrator, two judges, a clerk, an auditor, and two cases.

    case one is assigned to judge one and was opened by the clerk; case two
    is assigned to judge two.
    """
    async with session_factory() as session:
        subjects = SubjectRepository(session)
        cases = CaseRepository(session)

        admin = await subjects.create(SubjectRole.ADMINISTRATOR, "Ada Admin", "admin@court.test")
        judge_one = await subjects.create(
            SubjectRole.JUDGE, "Judge One", "judge.one@court.test", judicial_unit="Civil Court 1"
        )
        judge_two = await subjects.create(
            SubjectRole.JUDGE, "Judge Two", "judge.two@court.test", judicial_unit="Civil Court 2"
        )
        clerk = await subjects.create(SubjectRole.CLERK, "Clerk One", "clerk@court.test")
        auditor = await subjects.create(SubjectRole.AUDITOR, "Audrey Auditor", "auditor@court.test")
        suspended = await subjects.create(
            SubjectRole.JUDGE, "Judge Suspended", "suspended@court.test", status=SubjectStatus.SUSPENDED
        )

        case_one = await cases.create(
            case_number="CIV-2026-0001",
            assigned_judge_id=judge_one.id,
            judicial_unit="Civil Court 1",
            subject_matter="civil",
            created_by_clerk_id=clerk.id,
        )
        case_two = await cases.create(
            case_number="CIV-2026-0002",
            assigned_judge_id=judge_two.id,
            judicial_unit="Civil Court 2",
            subject_matter="civil",
        )
        await session.commit()

    return Court(
        admin=_caller(admin.id, SubjectRole.ADMINISTRATOR, admin.email),
        judge_one=_caller(judge_one.id, SubjectRole.JUDGE, judge_one.email),
        judge_two=_caller(judge_two.id, SubjectRole.JUDGE, judge_two.email),
        clerk=_caller(clerk.id, SubjectRole.CLERK, clerk.email),
        auditor=_caller(auditor.id, SubjectRole.AUDITOR, auditor.email),
        suspended_judge=_caller(suspended.id, SubjectRole.JUDGE, suspended.email, SubjectStatus.SUSPENDED),
        case_one_id=case_one.id,
        case_one_number=case_one.case_number,
        case_two_id=case_two.id,
        case_two_number=case_two.case_number,
    )


@pytest.fixture()
def signing_keys(settings: Settings, court: Court) -> dict[uuid.UUID, str]:
    """Provision signing credentials for both judges.

    Returns:
        Mapping of judge subject id to base64 verify key.
    """
    return {
        court.judge_one.subject_id: provision_credential(
            settings.signing_keys_path, court.judge_one.subject_id, serial="SN-0001"
        ),
        court.judge_two.subject_id: provision_credential(
            settings.signing_keys_path, court.judge_two.subject_id, serial="SN-0002"
        ),
    }


async def draft_decision(
    session_factory: async_sessionmaker[AsyncSession],
    audit_log: AuditLog,
    settings: Settings,
    caller: Caller,
    case_id: uuid.UUID,
    decision_type: DecisionType = DecisionType.INTERLOCUTORY_ORDER,
    draft_content: str = LONG_DRAFT,
    prepare: bool = False,
) -> uuid.UUID:
    """Create a decision through the service and optionally prepare it for signature.

    Returns:
        The new decision id.
    """
    async with session_factory() as session:
        service = build_decision_service(session, audit_log, settings)
        decision = await service.create(
            case_id=case_id,
            caller=caller,
            decision_type=decision_type,
            title="Order on admissibility",
            draft_content=draft_content,
        )
        if prepare:
            await service.prepare_for_signature(decision.id, caller)
    return decision.id


async def audit_events_of_type(audit_log: AuditLog, event_type: str) -> list[AuditEvent]:
    """Return every recorded event of one type, newest first."""
    rows, _ = await audit_log.query(AuditFilters(event_type=event_type), page=1, page_size=500)
    return rows


def make_fake_decision(
    case_id: uuid.UUID,
    author_judge_id: uuid.UUID,
    state: str = "DRAFT",
    version: int = 1,
) -> MagicMock:
    """Create a fake Decision ORM object for unit tests.

    Args:
        case_id: Owning case UUID.
        author_judge_id: Authoring judge UUID.
        state: Decision state.
        version: Decision version.

    Returns:
        MagicMock with decision-like attributes.
    """
    decision = MagicMock()
    decision.id = uuid.uuid4()
    decision.case_id = case_id
    decision.author_judge_id = author_judge_id
    decision.author_pseudonym = "JUD-0A1B2C3D"
    decision.decision_type = "INTERLOCUTORY_ORDER"
    decision.title = "Order on admissibility"
    decision.draft_content = LONG_DRAFT
    decision.state = state
    decision.version = version
    decision.content_hash = None
    decision.signer_pseudonym = None
    decision.signature_algorithm = None
    decision.certificate_serial = None
    decision.signed_at = None
    decision.document_id = None
    decision.void_reason = None
    decision.created_at = datetime.now(UTC)
    decision.updated_at = datetime.now(UTC)
    return decision
