"""Tests for the hash-chained AuditLog.

Tests verify:
- Every row links to its predecessor and verify() reports an intact chain
- Edited and deleted rows are detected
- Subscribers see events in submission order and cannot break the writer
- A failed write yields None instead of raising
- Statistics and CSV export
"""

import asyncio
import csv
import io
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from judicial_core.adapters.audit_wall import AuditEventRepository
from judicial_core.core.audit import (
    AuditFilters,
    AuditLog,
    AuditRecord,
    canonical_timestamp,
    compute_event_hash,
    hash_of_row,
)
from judicial_core.core.models import AuditEvent, Severity


def make_record(event_type: str = "DECISION_CREATED", description: str = "event", **kwargs) -> AuditRecord:
    """Build an AuditRecord with sensible defaults."""
    return AuditRecord(
        event_type=event_type,
        severity=kwargs.pop("severity", Severity.LOW),
        module=kwargs.pop("module", "decisions"),
        description=description,
        actor_id=kwargs.pop("actor_id", uuid.uuid4()),
        actor_role=kwargs.pop("actor_role", "JUDGE"),
        **kwargs,
    )


async def load_chain(audit_session_factory: async_sessionmaker[AsyncSession]) -> list[AuditEvent]:
    async with audit_session_factory() as session:
        return await AuditEventRepository(session).scan()


class TestEventHash:
    """Tests for the pure hashing helpers."""

    def _fields(self, **overrides) -> dict:
        fields = {
            "sequence": 1,
            "timestamp": datetime(2026, 3, 1, 12, 0, 0, 123456, tzinfo=UTC),
            "actor_id": uuid.UUID("00000000-0000-0000-0000-000000000002"),
            "actor_role": "JUDGE",
            "event_type": "DECISION_SIGNED",
            "severity": "CRITICAL",
            "module": "decisions",
            "description": "Decision electronically signed",
            "details": {"decision_id": "abc"},
            "case_reference": "CIV-2026-0001",
            "source_ip": "10.0.0.7",
            "instance_id": "node-1",
            "previous_hash": None,
        }
        fields.update(overrides)
        return fields

    def test_hash_is_deterministic(self) -> None:
        """The same fields always hash to the same digest."""
        assert compute_event_hash(**self._fields()) == compute_event_hash(**self._fields())

    def test_hash_covers_previous_hash(self) -> None:
        """Changing the predecessor hash changes the row hash."""
        assert compute_event_hash(**self._fields()) != compute_event_hash(**self._fields(previous_hash="ab" * 32))

    def test_hash_covers_details(self) -> None:
        """Changing a detail value changes the row hash."""
        assert compute_event_hash(**self._fields()) != compute_event_hash(
            **self._fields(details={"decision_id": "abd"})
        )

    def test_aware_and_naive_utc_timestamps_hash_identically(self) -> None:
        """Drivers returning naive UTC must not break verification."""
        aware = datetime(2026, 3, 1, 12, 0, 0, 5, tzinfo=UTC)
        naive = aware.replace(tzinfo=None)

        assert canonical_timestamp(aware) == canonical_timestamp(naive) == "2026-03-01T12:00:00.000005"


class TestAuditChain:
    """Tests for AuditLog writes and verify()."""

    @pytest.mark.asyncio()
    async def test_rows_are_chained_in_sequence(
        self,
        audit_log: AuditLog,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Each row stores its predecessor's hash; the first row has none."""
        for index in range(4):
            assert await audit_log.record(make_record(description=f"event {index}")) is not None

        rows = await load_chain(audit_session_factory)

        assert [row.sequence for row in rows] == [1, 2, 3, 4]
        assert rows[0].previous_hash is None
        for previous, current in zip(rows, rows[1:], strict=False):
            assert current.previous_hash == previous.hash
        assert all(hash_of_row(row) == row.hash for row in rows)

    @pytest.mark.asyncio()
    async def test_verify_reports_intact_chain(self, audit_log: AuditLog) -> None:
        """An untouched log verifies clean."""
        for index in range(3):
            await audit_log.record(make_record(description=f"event {index}", details={"index": index}))

        report = await audit_log.verify()

        assert report.intact
        assert report.total_rows == 3
        assert report.valid_rows == 3
        assert report.first_error_id is None

    @pytest.mark.asyncio()
    async def test_verify_on_empty_log(self, audit_log: AuditLog) -> None:
        """An empty log is trivially intact."""
        report = await audit_log.verify()

        assert report.intact
        assert report.total_rows == 0

    @pytest.mark.asyncio()
    async def test_verify_detects_edited_row(
        self,
        audit_log: AuditLog,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Editing a stored row flags exactly that row as tampered."""
        ids = [await audit_log.record(make_record(description=f"event {i}")) for i in range(3)]

        async with audit_session_factory() as session:
            await session.execute(
                update(AuditEvent).where(AuditEvent.id == ids[1]).values(description="rewritten history")
            )
            await session.commit()

        report = await audit_log.verify()

        assert not report.intact
        assert report.tampered_ids == [ids[1]]
        assert report.broken_link_ids == []
        assert report.first_error_id == ids[1]

    @pytest.mark.asyncio()
    async def test_verify_detects_deleted_row(
        self,
        audit_log: AuditLog,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Deleting a row breaks the link of the row after it."""
        ids = [await audit_log.record(make_record(description=f"event {i}")) for i in range(3)]

        async with audit_session_factory() as session:
            await session.execute(delete(AuditEvent).where(AuditEvent.id == ids[1]))
            await session.commit()

        report = await audit_log.verify()

        assert not report.intact
        assert report.tampered_ids == []
        assert report.broken_link_ids == [ids[2]]

    @pytest.mark.asyncio()
    async def test_verify_window_links_to_row_before_window(
        self,
        audit_log: AuditLog,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """A window starting mid-chain checks its first row against the real predecessor."""
        for index in range(4):
            await audit_log.record(make_record(description=f"event {index}"))
        rows = await load_chain(audit_session_factory)

        report = await audit_log.verify(start_time=rows[2].timestamp)

        assert report.intact
        assert 2 <= report.total_rows < 4

    @pytest.mark.asyncio()
    async def test_details_stored_as_canonical_json(
        self,
        audit_log: AuditLog,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Non-JSON detail values are stored in the same form they were hashed in."""
        decision_id = uuid.uuid4()
        await audit_log.record(make_record(details={"decision_id": decision_id, "when": datetime(2026, 1, 1)}))

        rows = await load_chain(audit_session_factory)

        assert rows[0].details == {"decision_id": str(decision_id), "when": "2026-01-01 00:00:00"}
        assert (await audit_log.verify()).intact

    @pytest.mark.asyncio()
    async def test_two_instances_share_one_chain(
        self,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """Writers in different instances never reuse a sequence number."""
        first = AuditLog(audit_session_factory, instance_id="node-a")
        second = AuditLog(audit_session_factory, instance_id="node-b")
        try:
            results = await asyncio.gather(
                first.record(make_record(description="a1")),
                second.record(make_record(description="b1")),
                first.record(make_record(description="a2")),
                second.record(make_record(description="b2")),
            )
        finally:
            await first.close()
            await second.close()

        assert all(result is not None for result in results)
        rows = await load_chain(audit_session_factory)
        assert [row.sequence for row in rows] == [1, 2, 3, 4]
        assert {row.instance_id for row in rows} == {"node-a", "node-b"}
        assert (await first.verify()).intact


class TestAuditSubscribers:
    """Tests for subscribe() fan-out."""

    @pytest.mark.asyncio()
    async def test_subscribers_receive_events_in_submission_order(self, audit_log: AuditLog) -> None:
        """Concurrently submitted events reach subscribers in the order they were submitted."""
        seen: list[str] = []
        audit_log.subscribe("*", lambda row: seen.append(row.description))

        await asyncio.gather(*(audit_log.record(make_record(description=f"event {i}")) for i in range(5)))
        await audit_log.flush()

        assert seen == [f"event {i}" for i in range(5)]

    @pytest.mark.asyncio()
    async def test_subscription_by_event_type(self, audit_log: AuditLog) -> None:
        """A typed subscription only sees its own event type; async callbacks are awaited."""
        signed: list[int] = []

        async def on_signed(row: AuditEvent) -> None:
            signed.append(row.sequence)

        audit_log.subscribe("DECISION_SIGNED", on_signed)

        await audit_log.record(make_record("DECISION_CREATED"))
        await audit_log.record(make_record("DECISION_SIGNED", severity=Severity.CRITICAL))
        await audit_log.flush()

        assert signed == [2]

    @pytest.mark.asyncio()
    async def test_failing_subscriber_does_not_affect_writer_or_others(self, audit_log: AuditLog) -> None:
        """A subscriber exception is logged; the write and other subscribers proceed."""
        seen: list[str] = []

        def broken(row: AuditEvent) -> None:
            raise RuntimeError("subscriber bug")

        audit_log.subscribe("*", broken)
        audit_log.subscribe("*", lambda row: seen.append(row.event_type))

        entry_id = await audit_log.record(make_record("DECISION_UPDATED"))
        await audit_log.flush()

        assert entry_id is not None
        assert seen == ["DECISION_UPDATED"]

    @pytest.mark.asyncio()
    async def test_unsubscribe_stops_delivery(self, audit_log: AuditLog) -> None:
        """The returned function removes the subscription."""
        seen: list[str] = []
        unsubscribe = audit_log.subscribe("*", lambda row: seen.append(row.event_type))

        await audit_log.record(make_record("FIRST"))
        await audit_log.flush()
        unsubscribe()
        await audit_log.record(make_record("SECOND"))
        await audit_log.flush()

        assert seen == ["FIRST"]

    @pytest.mark.asyncio()
    async def test_subscriber_may_record_events(self, audit_log: AuditLog) -> None:
        """An alert recorded from inside a subscriber does not stall later writes."""

        async def raise_alert(row: AuditEvent) -> None:
            await audit_log.record(
                make_record("ALERT_RAISED", severity=Severity.HIGH, description=f"alert for {row.sequence}")
            )

        audit_log.subscribe("RESOURCE_ACCESS_DENIED", raise_alert)

        await audit_log.record(make_record("RESOURCE_ACCESS_DENIED", severity=Severity.HIGH))
        later = await asyncio.wait_for(audit_log.record(make_record("DECISION_CREATED")), timeout=3)
        await asyncio.wait_for(audit_log.flush(), timeout=3)

        assert later is not None
        alerts, _ = await audit_log.query(AuditFilters(event_type="ALERT_RAISED"))
        assert [row.description for row in alerts] == ["alert for 1"]
        report = await audit_log.verify()
        assert report.intact
        assert report.total_rows == 3


class TestAuditFailures:
    """Tests for the never-raise contract of record()."""

    @pytest.mark.asyncio()
    async def test_failed_write_returns_none(self) -> None:
        """A broken audit database yields None rather than an exception."""
        factory = MagicMock(side_effect=RuntimeError("audit database unreachable"))
        log = AuditLog(session_factory=factory, instance_id="test-instance")
        try:
            result = await log.record(make_record())
        finally:
            await log.close()

        assert result is None

    @pytest.mark.asyncio()
    async def test_log_recovers_after_failure(
        self,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """One failed write does not stop the drain worker."""
        calls = {"count": 0}

        def flaky_factory() -> AsyncSession:
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("transient failure")
            return audit_session_factory()

        log = AuditLog(session_factory=flaky_factory, instance_id="test-instance")
        try:
            assert await log.record(make_record(description="lost")) is None
            assert await log.record(make_record(description="kept")) is not None
        finally:
            await log.close()

        rows = await load_chain(audit_session_factory)
        assert [row.description for row in rows] == ["kept"]

    @pytest.mark.asyncio()
    async def test_slow_write_times_out_but_still_lands(
        self,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """A caller stops waiting after record_timeout; the queued write still completes."""
        log = AuditLog(session_factory=audit_session_factory, instance_id="test-instance", record_timeout=0.05)
        write = log._write

        async def slow_write(event: AuditRecord) -> AuditEvent:
            await asyncio.sleep(0.3)
            return await write(event)

        log._write = slow_write  # type: ignore[method-assign]
        try:
            assert await log.record(make_record(description="slow")) is None
        finally:
            await log.close()

        rows = await load_chain(audit_session_factory)
        assert [row.description for row in rows] == ["slow"]


class TestAuditReading:
    """Tests for query(), statistics() and export_csv()."""

    @pytest.mark.asyncio()
    async def test_query_filters_and_orders_newest_first(self, audit_log: AuditLog) -> None:
        """Filters narrow the result; rows come back newest first with a total count."""
        actor = uuid.uuid4()
        await audit_log.record(make_record("DECISION_CREATED", actor_id=actor, description="one"))
        await audit_log.record(make_record("DECISION_UPDATED", actor_id=actor, description="two"))
        await audit_log.record(make_record("DECISION_CREATED", description="other actor"))

        rows, total = await audit_log.query(AuditFilters(actor_id=actor))

        assert total == 2
        assert [row.description for row in rows] == ["two", "one"]

    @pytest.mark.asyncio()
    async def test_query_paginates(self, audit_log: AuditLog) -> None:
        """page and page_size slice the newest-first listing."""
        for index in range(5):
            await audit_log.record(make_record(description=f"event {index}"))

        rows, total = await audit_log.query(page=2, page_size=2)

        assert total == 5
        assert [row.description for row in rows] == ["event 2", "event 1"]

    @pytest.mark.asyncio()
    async def test_query_time_window(self, audit_log: AuditLog) -> None:
        """A window in the future matches nothing."""
        await audit_log.record(make_record())

        rows, total = await audit_log.query(AuditFilters(start_time=datetime.now(UTC) + timedelta(hours=1)))

        assert rows == []
        assert total == 0

    @pytest.mark.asyncio()
    async def test_statistics_count_outcomes(self, audit_log: AuditLog) -> None:
        """Denied and failed events are counted separately from the rest."""
        await audit_log.record(make_record("RESOURCE_ACCESS_DENIED", severity=Severity.HIGH))
        await audit_log.record(make_record("SIGNATURE_DENIED"))
        await audit_log.record(make_record("SIGNATURE_FAILED", severity=Severity.HIGH))
        await audit_log.record(make_record("DECISION_CREATED"))

        stats = await audit_log.statistics()

        assert stats.total == 4
        assert stats.denied == 2
        assert stats.failed == 1
        assert stats.succeeded == 1

    @pytest.mark.asyncio()
    async def test_export_csv(self, audit_log: AuditLog) -> None:
        """The export has a header row plus one row per matching event."""
        await audit_log.record(make_record("DECISION_CREATED", case_reference="CIV-2026-0001"))
        await audit_log.record(make_record("DECISION_SIGNED", severity=Severity.CRITICAL))

        text = await audit_log.export_csv(AuditFilters(event_type="DECISION_SIGNED"))
        rows = list(csv.reader(io.StringIO(text)))

        assert rows[0][:4] == ["timestamp", "sequence", "event_type", "severity"]
        assert len(rows) == 2
        assert rows[1][2] == "DECISION_SIGNED"
        assert rows[1][3] == "CRITICAL"

    @pytest.mark.asyncio()
    async def test_export_respects_limit(
        self,
        audit_session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """At most export_limit rows are exported."""
        log = AuditLog(audit_session_factory, instance_id="test-instance", export_limit=2)
        try:
            for index in range(4):
                await log.record(make_record(description=f"event {index}"))
            text = await log.export_csv()
        finally:
            await log.close()

        assert len(list(csv.reader(io.StringIO(text)))) == 3
