"""Audit Wall — separate database connection for the hash-chained audit log.

This module is the ONLY place that connects to JUDICIAL_AUDIT_DB_URL.
All other modules use the primary DB session from adapters/database.py.

In production the audit role holds only INSERT and SELECT on jc_audit_events
and a trigger rejects UPDATE and DELETE, so no mutation is possible at either
the application or the database level.

Key exports:
- init_audit_db(...)          — Call at startup to initialize the audit engine
- close_audit_db()            — Call at shutdown to dispose the engine
- get_audit_session_factory() — Session factory handed to AuditLog
- AuditEventRepository        — Repository with append-only write + read operations
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from judicial_core.adapters.database import build_engine
from judicial_core.core.models import AuditEvent
from judicial_core.errors import NotFoundError
from judicial_core.observability import get_logger

logger = get_logger(__name__)

# Module-level engine and session factory, initialized by init_audit_db()
_audit_engine: AsyncEngine | None = None
_audit_session_factory: async_sessionmaker[AsyncSession] | None = None


async def init_audit_db(audit_db_url: str, pool_size: int = 5, max_overflow: int = 2) -> None:
    """Initialize the Audit Wall database engine and session factory.

    Must be called once at application startup, before the AuditLog is built.

    Args:
        audit_db_url: Connection URL for the audit database.
        pool_size: Connection pool size.
        max_overflow: Max overflow connections above pool_size.
    """
    global _audit_engine, _audit_session_factory  # noqa: PLW0603

    logger.info("Initializing Audit Wall engine", pool_size=pool_size, max_overflow=max_overflow)

    # Echo stays disabled: audit statements must not log values
    _audit_engine = build_engine(audit_db_url, pool_size=pool_size, max_overflow=max_overflow)
    _audit_session_factory = async_sessionmaker(
        bind=_audit_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("Audit Wall engine initialized")


async def close_audit_db() -> None:
    """Dispose the Audit Wall database engine."""
    global _audit_engine, _audit_session_factory  # noqa: PLW0603

    if _audit_engine is not None:
        logger.info("Disposing Audit Wall engine")
        await _audit_engine.dispose()
        _audit_engine = None
        _audit_session_factory = None


def get_audit_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the Audit Wall session factory.

    Raises:
        RuntimeError: If init_audit_db() has not been called yet.
    """
    if _audit_session_factory is None:
        raise RuntimeError(
            "Audit Wall database has not been initialized. "
            "Call init_audit_db() in the application lifespan handler."
        )
    return _audit_session_factory


class AuditEventRepository:
    """Append-only repository for AuditEvent on the Audit Wall database.

    Has no update() or delete() methods: the audit log is immutable. Chain
    order is the unique `sequence` column; listings are ordered by timestamp.

    Args:
        session: A session from the Audit Wall session factory.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_chain_tip(self) -> AuditEvent | None:
        """Return the row with the highest sequence, or None for an empty log."""
        stmt = select(AuditEvent).order_by(AuditEvent.sequence.desc()).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_sequence(self, sequence: int) -> AuditEvent | None:
        """Return the row with the given sequence number, or None."""
        result = await self._session.execute(select(AuditEvent).where(AuditEvent.sequence == sequence))
        return result.scalar_one_or_none()

    async def append(self, **fields: Any) -> AuditEvent:
        """Append an immutable audit event.

        This is the ONLY write operation on the audit log. The caller computes
        the sequence and hash; a concurrent writer claiming the same sequence
        fails on the unique constraint.

        Args:
            **fields: Column values for the new AuditEvent.

        Returns:
            The persisted AuditEvent.
        """
        entry = AuditEvent(**fields)
        self._session.add(entry)
        await self._session.flush()

        logger.debug(
            "Audit event written",
            entry_id=str(entry.id),
            sequence=entry.sequence,
            event_type=entry.event_type,
        )
        return entry

    async def query(
        self,
        actor_id: uuid.UUID | None = None,
        event_type: str | None = None,
        severity: str | None = None,
        module: str | None = None,
        case_reference: str | None = None,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        """Query the audit log with filters.

        Args:
            actor_id: Optional exact actor filter.
            event_type: Optional exact event type filter.
            severity: Optional exact severity filter.
            module: Optional exact module filter.
            case_reference: Optional exact case reference filter.
            start_time: Optional inclusive start of the time range.
            end_time: Optional inclusive end of the time range.
            page: Page number (1-indexed).
            page_size: Records per page.

        Returns:
            Tuple of (events ordered by timestamp descending, total match count).
        """
        stmt = self._filtered(
            select(AuditEvent), actor_id, event_type, severity, module, case_reference, start_time, end_time
        )
        count_stmt = self._filtered(
            select(func.count()).select_from(AuditEvent),
            actor_id,
            event_type,
            severity,
            module,
            case_reference,
            start_time,
            end_time,
        )

        total = (await self._session.execute(count_stmt)).scalar_one()

        stmt = stmt.order_by(AuditEvent.timestamp.desc(), AuditEvent.sequence.desc())
        stmt = stmt.offset((page - 1) * page_size).limit(page_size)
        result = await self._session.execute(stmt)
        return list(result.scalars().all()), total

    async def count_by_outcome(
        self,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        module: str | None = None,
    ) -> dict[str, int]:
        """Count events overall, denied, and failed within an optional window.

        Returns:
            Dict with keys total, denied and failed.
        """
        denied = or_(AuditEvent.event_type.contains("DENIED"), AuditEvent.event_type.contains("REJECTED"))
        failed = or_(AuditEvent.event_type.contains("FAILED"), AuditEvent.event_type.contains("ERROR"))

        counts: dict[str, int] = {}
        for key, condition in (("total", None), ("denied", denied), ("failed", failed)):
            stmt = self._filtered(
                select(func.count()).select_from(AuditEvent),
                None,
                None,
                None,
                module,
                None,
                start_time,
                end_time,
            )
            if condition is not None:
                stmt = stmt.where(condition)
            counts[key] = (await self._session.execute(stmt)).scalar_one()
        return counts

    async def scan(self, start_sequence: int | None = None, end_sequence: int | None = None) -> list[AuditEvent]:
        """Return rows in chain order within an optional sequence range."""
        stmt = select(AuditEvent)
        if start_sequence is not None:
            stmt = stmt.where(AuditEvent.sequence >= start_sequence)
        if end_sequence is not None:
            stmt = stmt.where(AuditEvent.sequence <= end_sequence)
        result = await self._session.execute(stmt.order_by(AuditEvent.sequence.asc()))
        return list(result.scalars().all())

    async def scan_time_range(self, start_time: datetime | None, end_time: datetime | None) -> list[AuditEvent]:
        """Return rows in chain order whose timestamp falls in the window."""
        stmt = self._filtered(select(AuditEvent), None, None, None, None, None, start_time, end_time)
        result = await self._session.execute(stmt.order_by(AuditEvent.sequence.asc()))
        return list(result.scalars().all())

    async def get_by_id(self, entry_id: uuid.UUID) -> AuditEvent:
        """Retrieve a single audit event by ID.

        Raises:
            NotFoundError: If not found.
        """
        result = await self._session.execute(select(AuditEvent).where(AuditEvent.id == entry_id))
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError(resource="AuditEvent", resource_id=str(entry_id))
        return entry

    @staticmethod
    def _filtered(
        stmt: Select[Any],
        actor_id: uuid.UUID | None,
        event_type: str | None,
        severity: str | None,
        module: str | None,
        case_reference: str | None,
        start_time: datetime | None,
        end_time: datetime | None,
    ) -> Select[Any]:
        if actor_id:
            stmt = stmt.where(AuditEvent.actor_id == actor_id)
        if event_type:
            stmt = stmt.where(AuditEvent.event_type == event_type)
        if severity:
            stmt = stmt.where(AuditEvent.severity == severity)
        if module:
            stmt = stmt.where(AuditEvent.module == module)
        if case_reference:
            stmt = stmt.where(AuditEvent.case_reference == case_reference)
        if start_time:
            stmt = stmt.where(AuditEvent.timestamp >= start_time)
        if end_time:
            stmt = stmt.where(AuditEvent.timestamp <= end_time)
        return stmt
