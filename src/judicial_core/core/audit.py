"""Hash-chained audit log.

AuditLog is the single write path for audit events. Events are submitted to an
in-process asyncio.Queue drained by one writer task, so within one instance
rows are written in submission order. Committed rows are handed to a second
task that runs subscribers in that same order; a subscriber may record
events of its own.

Each row stores the hash of its predecessor and a hash over its own fields
plus that predecessor hash. verify() recomputes both and reports edited,
deleted or reordered rows. Across instances, the unique sequence column is
the total order; a writer that loses a sequence race re-reads the tip and
retries.

record() never raises into the caller: a failed or overdue write is logged
and yields None, and the primary operation carries on.
"""

import asyncio
import csv
import hashlib
import inspect
import io
import json
import uuid
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_core.adapters.audit_wall import AuditEventRepository
from judicial_core.core.models import AuditEvent, Severity, utcnow
from judicial_core.observability import get_logger

logger = get_logger(__name__)

WILDCARD = "*"

AuditSubscriber = Callable[[AuditEvent], Awaitable[None] | None]

_MAX_SEQUENCE_RETRIES = 3


@dataclass(frozen=True)
class AuditRecord:
    """An audit event as submitted by a component, before sequencing and hashing."""

    event_type: str
    severity: Severity
    module: str
    description: str
    actor_id: uuid.UUID | None = None
    actor_role: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    case_reference: str | None = None
    source_ip: str | None = None


@dataclass(frozen=True)
class AuditFilters:
    """Filters shared by query(), statistics() and export_csv()."""

    actor_id: uuid.UUID | None = None
    event_type: str | None = None
    severity: str | None = None
    module: str | None = None
    case_reference: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


@dataclass
class ChainVerificationReport:
    """Outcome of AuditLog.verify().

    Attributes:
        total_rows: Rows examined.
        valid_rows: Rows whose hash and link both check out.
        tampered_ids: Rows whose stored hash no longer matches their fields.
        broken_link_ids: Rows whose previous_hash or sequence does not follow
            from the row before them (deletion or reordering).
        first_error_id: First failing row in chain order.
    """

    total_rows: int = 0
    valid_rows: int = 0
    tampered_ids: list[uuid.UUID] = field(default_factory=list)
    broken_link_ids: list[uuid.UUID] = field(default_factory=list)
    first_error_id: uuid.UUID | None = None

    @property
    def intact(self) -> bool:
        return not self.tampered_ids and not self.broken_link_ids


@dataclass(frozen=True)
class AuditStatistics:
    total: int
    denied: int
    failed: int
    succeeded: int


def canonical_timestamp(value: datetime) -> str:
    """Render a timestamp as naive-UTC ISO text with microseconds.

    Drivers differ in whether they return tz-aware values; hashing the UTC
    wall time keeps the digest stable across them.
    """
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.isoformat(timespec="microseconds")


def canonical_details(details: dict[str, Any]) -> dict[str, Any]:
    """Round-trip details through JSON so the stored and hashed forms are identical."""
    return json.loads(json.dumps(details, default=str, sort_keys=True))


def compute_event_hash(
    *,
    sequence: int,
    timestamp: datetime,
    actor_id: uuid.UUID | None,
    actor_role: str | None,
    event_type: str,
    severity: str,
    module: str,
    description: str,
    details: dict[str, Any],
    case_reference: str | None,
    source_ip: str | None,
    instance_id: str,
    previous_hash: str | None,
) -> str:
    """Return the SHA-256 hex digest binding an event's fields to its predecessor."""
    payload = {
        "sequence": sequence,
        "timestamp": canonical_timestamp(timestamp),
        "actor_id": str(actor_id) if actor_id else None,
        "actor_role": actor_role,
        "event_type": event_type,
        "severity": str(severity),
        "module": module,
        "description": description,
        "details": details,
        "case_reference": case_reference,
        "source_ip": source_ip,
        "instance_id": instance_id,
        "previous_hash": previous_hash,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_of_row(row: AuditEvent) -> str:
    """Recompute the hash of a stored row from its stored fields."""
    return compute_event_hash(
        sequence=row.sequence,
        timestamp=row.timestamp,
        actor_id=row.actor_id,
        actor_role=row.actor_role,
        event_type=row.event_type,
        severity=row.severity,
        module=row.module,
        description=row.description,
        details=row.details,
        case_reference=row.case_reference,
        source_ip=row.source_ip,
        instance_id=row.instance_id,
        previous_hash=row.previous_hash,
    )


class AuditLog:
    """Append-only, hash-chained audit log backed by the Audit Wall database.

    Args:
        session_factory: Session factory bound to the audit database.
        instance_id: Identifier of this process, stamped on every row.
        export_limit: Maximum rows returned by export_csv().
        record_timeout: Seconds record() waits for its write before giving up
            and returning None. The write itself stays queued.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        instance_id: str,
        export_limit: int = 10_000,
        record_timeout: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._instance_id = instance_id
        self._export_limit = export_limit
        self._record_timeout = record_timeout
        self._subscribers: dict[str, list[AuditSubscriber]] = defaultdict(list)
        self._queue: asyncio.Queue[tuple[AuditRecord, asyncio.Future[uuid.UUID | None]] | None] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._notifications: asyncio.Queue[AuditEvent | None] | None = None
        self._notifier: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def record(self, event: AuditRecord) -> uuid.UUID | None:
        """Submit an event and wait for it to be written.

        Subscribers are notified later, on a separate task, so a subscriber
        may itself call record().

        Args:
            event: The event to append.

        Returns:
            The new row id, or None if the write failed or did not finish
            within record_timeout. Never raises.
        """
        try:
            queue = self._ensure_workers()
            future: asyncio.Future[uuid.UUID | None] = asyncio.get_running_loop().create_future()
            await queue.put((event, future))
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._record_timeout)
        except TimeoutError:
            logger.warning(
                "Audit write still pending, caller continues",
                event_type=event.event_type,
                timeout_seconds=self._record_timeout,
            )
            return None
        except Exception:
            logger.exception("Audit event could not be submitted", event_type=event.event_type)
            return None

    def subscribe(self, event_type: str, callback: AuditSubscriber) -> Callable[[], None]:
        """Register a callback for an event type, or for every event with "*".

        Callbacks run on the notifier task after the row is committed, in
        write order. Their exceptions are logged and never reach the submitter.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers[event_type].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[event_type]:
                self._subscribers[event_type].remove(callback)

        return unsubscribe

    async def flush(self) -> None:
        """Wait until every submitted event is written and its subscribers have run.

        Must not be awaited from inside a subscriber.
        """
        while self._queue is not None and self._notifications is not None:
            await self._queue.join()
            await self._notifications.join()
            if self._queue.empty() and self._notifications.empty():
                return

    async def close(self) -> None:
        """Drain pending events and notifications, then stop both tasks."""
        if self._queue is None or self._worker is None or self._worker.done():
            return
        await self.flush()

        await self._queue.put(None)
        await self._worker
        if self._notifications is not None and self._notifier is not None:
            await self._notifications.put(None)
            await self._notifier

        self._worker = None
        self._queue = None
        self._notifier = None
        self._notifications = None
        logger.info("Audit log drained", instance_id=self._instance_id)

    def _ensure_workers(self) -> asyncio.Queue[tuple[AuditRecord, asyncio.Future[uuid.UUID | None]] | None]:
        if self._notifications is None or self._notifier is None or self._notifier.done():
            self._notifications = asyncio.Queue()
            self._notifier = asyncio.create_task(
                self._dispatch(self._notifications),
                name="audit-log-notify",
            )
        if self._queue is None or self._worker is None or self._worker.done():
            self._queue = asyncio.Queue()
            self._worker = asyncio.create_task(
                self._drain(self._queue, self._notifications),
                name="audit-log-drain",
            )
        return self._queue

    async def _drain(
        self,
        queue: asyncio.Queue[tuple[AuditRecord, asyncio.Future[uuid.UUID | None]] | None],
        notifications: asyncio.Queue[AuditEvent | None],
    ) -> None:
        while True:
            item = await queue.get()
            if item is None:
                queue.task_done()
                return

            event, future = item
            row: AuditEvent | None = None
            try:
                row = await self._write(event)
            except Exception:
                logger.exception(
                    "Audit event write failed",
                    event_type=event.event_type,
                    severity=str(event.severity),
                )

            if row is not None:
                notifications.put_nowait(row)
            if not future.done():
                future.set_result(row.id if row is not None else None)
            queue.task_done()

    async def _dispatch(self, notifications: asyncio.Queue[AuditEvent | None]) -> None:
        while True:
            row = await notifications.get()
            if row is None:
                notifications.task_done()
                return
            try:
                await self._notify(row)
            finally:
                notifications.task_done()

    async def _write(self, event: AuditRecord) -> AuditEvent:
        details = canonical_details(event.details)
        for attempt in range(1, _MAX_SEQUENCE_RETRIES + 1):
            async with self._session_factory() as session:
                repo = AuditEventRepository(session)
                tip = await repo.get_chain_tip()
                sequence = tip.sequence + 1 if tip is not None else 1
                previous_hash = tip.hash if tip is not None else None
                timestamp = utcnow()

                fields: dict[str, Any] = {
                    "sequence": sequence,
                    "timestamp": timestamp,
                    "actor_id": event.actor_id,
                    "actor_role": event.actor_role,
                    "event_type": event.event_type,
                    "severity": str(event.severity),
                    "module": event.module,
                    "description": event.description,
                    "details": details,
                    "case_reference": event.case_reference,
                    "source_ip": event.source_ip,
                    "instance_id": self._instance_id,
                    "previous_hash": previous_hash,
                }
                fields["hash"] = compute_event_hash(**fields)

                try:
                    row = await repo.append(**fields)
                    await session.commit()
                    return row
                except IntegrityError:
                    await session.rollback()
                    if attempt == _MAX_SEQUENCE_RETRIES:
                        raise
                    logger.warning("Audit sequence taken by another writer, retrying", sequence=sequence)
        raise RuntimeError(f"Audit sequence contention after {_MAX_SEQUENCE_RETRIES} attempts")

    async def _notify(self, row: AuditEvent) -> None:
        callbacks = [*self._subscribers.get(row.event_type, []), *self._subscribers.get(WILDCARD, [])]
        for callback in callbacks:
            try:
                result = callback(row)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Audit subscriber failed", event_type=row.event_type)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def query(
        self,
        filters: AuditFilters | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[AuditEvent], int]:
        """Return one page of events, newest first, and the total match count."""
        filters = filters or AuditFilters()
        async with self._session_factory() as session:
            return await AuditEventRepository(session).query(
                actor_id=filters.actor_id,
                event_type=filters.event_type,
                severity=filters.severity,
                module=filters.module,
                case_reference=filters.case_reference,
                start_time=filters.start_time,
                end_time=filters.end_time,
                page=page,
                page_size=page_size,
            )

    async def verify(
        self,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> ChainVerificationReport:
        """Recompute hashes and chain links for rows in a time window.

        A row is tampered when its recomputed hash differs from the stored one.
        A link is broken when a row's previous_hash differs from the stored
        hash of the row before it, or when sequence numbers skip.

        Args:
            start_time: Optional inclusive window start.
            end_time: Optional inclusive window end.

        Returns:
            ChainVerificationReport listing failing row ids.
        """
        report = ChainVerificationReport()
        async with self._session_factory() as session:
            repo = AuditEventRepository(session)
            rows = await repo.scan_time_range(start_time, end_time)
            if not rows:
                return report

            expected_previous_hash: str | None = None
            expected_sequence: int | None = 1
            if rows[0].sequence > 1:
                predecessor = await repo.get_by_sequence(rows[0].sequence - 1)
                if predecessor is not None:
                    expected_previous_hash = predecessor.hash
                    expected_sequence = predecessor.sequence + 1
                else:
                    # predecessor missing; the previous_hash check flags the first row
                    expected_sequence = None

        for row in rows:
            report.total_rows += 1
            row_ok = True

            if hash_of_row(row) != row.hash:
                report.tampered_ids.append(row.id)
                row_ok = False

            link_broken = row.previous_hash != expected_previous_hash or (
                expected_sequence is not None and row.sequence != expected_sequence
            )
            if link_broken:
                report.broken_link_ids.append(row.id)
                row_ok = False

            if row_ok:
                report.valid_rows += 1
            elif report.first_error_id is None:
                report.first_error_id = row.id

            expected_previous_hash = row.hash
            expected_sequence = row.sequence + 1

        log = logger.info if report.intact else logger.warning
        log(
            "Audit chain verified",
            total_rows=report.total_rows,
            tampered=len(report.tampered_ids),
            broken_links=len(report.broken_link_ids),
        )
        return report

    async def statistics(self, filters: AuditFilters | None = None) -> AuditStatistics:
        """Count events by outcome within the filter's time window and module."""
        filters = filters or AuditFilters()
        async with self._session_factory() as session:
            counts = await AuditEventRepository(session).count_by_outcome(
                start_time=filters.start_time,
                end_time=filters.end_time,
                module=filters.module,
            )
        return AuditStatistics(
            total=counts["total"],
            denied=counts["denied"],
            failed=counts["failed"],
            succeeded=counts["total"] - counts["denied"] - counts["failed"],
        )

    async def export_csv(self, filters: AuditFilters | None = None) -> str:
        """Export matching events, newest first, as CSV text (capped at export_limit rows)."""
        rows, _ = await self.query(filters, page=1, page_size=self._export_limit)

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(
            [
                "timestamp",
                "sequence",
                "event_type",
                "severity",
                "module",
                "actor_id",
                "actor_role",
                "description",
                "case_reference",
                "source_ip",
                "instance_id",
                "hash",
            ]
        )
        for row in rows:
            writer.writerow(
                [
                    canonical_timestamp(row.timestamp),
                    row.sequence,
                    row.event_type,
                    row.severity,
                    row.module,
                    str(row.actor_id) if row.actor_id else "",
                    row.actor_role or "",
                    row.description,
                    row.case_reference or "",
                    row.source_ip or "",
                    row.instance_id,
                    row.hash,
                ]
            )
        return buffer.getvalue()
