"""Tests for the audit trail."""

import dataclasses
from datetime import UTC, datetime, timedelta, timezone

import pytest

from auditgrid.audit import AuditTrail
from auditgrid.models import AuditAction, AuditLogEntry

T1 = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
T2 = T1 + timedelta(minutes=5)
T3 = T1 + timedelta(minutes=10)


def _clock(*times: datetime):
    values = iter(times)
    return lambda: next(values)


class TestAuditTrail:
    def test_newest_first(self) -> None:
        trail = AuditTrail(_clock(T1, T2, T3))
        trail.record(AuditAction.UPLOAD, "wb1", "alice", "first")
        trail.record(AuditAction.CREATE_MAPPING, "wb1", "alice", "second")
        trail.record(AuditAction.DELETE_MAPPING, "wb1", "alice", "third")
        assert [e.details for e in trail.list_all()] == ["third", "second", "first"]

    def test_ties_keep_insertion_order(self) -> None:
        trail = AuditTrail(_clock(T1, T1, T2))
        trail.record(AuditAction.UPLOAD, "wb1", "alice", "a")
        trail.record(AuditAction.CREATE_MAPPING, "wb1", "alice", "b")
        trail.record(AuditAction.UPDATE_MAPPING, "wb1", "alice", "c")
        assert [e.details for e in trail.list_all()] == ["c", "a", "b"]

    def test_out_of_order_clock(self) -> None:
        trail = AuditTrail(_clock(T3, T1, T2))
        for details in ("late", "early", "middle"):
            trail.record(AuditAction.UPLOAD, "wb1", "alice", details)
        assert [e.details for e in trail.list_all()] == ["late", "middle", "early"]

    def test_list_for_workbook(self) -> None:
        trail = AuditTrail(_clock(T1, T2, T3))
        trail.record(AuditAction.UPLOAD, "wb1", "alice")
        trail.record(AuditAction.UPLOAD, "wb2", "bob")
        trail.record(AuditAction.REUPLOAD, "wb1", "alice")
        entries = trail.list_for_workbook("wb1")
        assert [e.action for e in entries] == [AuditAction.REUPLOAD, AuditAction.UPLOAD]
        assert trail.list_for_workbook("wb3") == []

    def test_timestamps_are_utc(self) -> None:
        naive = datetime(2024, 3, 1, 9, 0)
        plus_two = datetime(2024, 3, 1, 11, 0, tzinfo=timezone(timedelta(hours=2)))
        trail = AuditTrail(_clock(naive, plus_two))
        first = trail.record(AuditAction.UPLOAD, "wb1", "alice")
        second = trail.record(AuditAction.UPLOAD, "wb1", "alice")
        assert first.timestamp.tzinfo is UTC
        assert second.timestamp == T1
        assert second.timestamp.utcoffset() == timedelta(0)

    def test_entries_are_immutable(self) -> None:
        trail = AuditTrail(_clock(T1))
        entry = trail.record(AuditAction.UPLOAD, "wb1", "alice")
        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.details = "rewritten"  # type: ignore[misc]
        assert not hasattr(trail, "delete")
        assert not hasattr(trail, "update")

    def test_record_fields(self) -> None:
        trail = AuditTrail(_clock(T1))
        entry = trail.record(AuditAction.CREATE_NAMED_RANGE, "wb1", "alice", "Named it")
        assert entry.id
        assert entry.actor == "alice"
        assert entry.subject_workbook_id == "wb1"
        assert len(trail) == 1

    def test_extend_skips_known_ids(self) -> None:
        trail = AuditTrail(_clock(T3))
        recorded = trail.record(AuditAction.UPLOAD, "wb1", "alice")
        persisted = AuditLogEntry("old", T1, "bob", AuditAction.UPLOAD, "wb1")
        trail.extend([persisted, recorded, persisted])
        assert [e.id for e in trail.list_all()] == [recorded.id, "old"]
