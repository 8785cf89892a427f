"""Append-only audit trail for workbook, mapping, and named range changes."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from auditgrid.models import AuditAction, AuditLogEntry

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class AuditTrail:
    """Records audit entries. Entries are never edited or removed.

    A correction is a new entry. Listings are newest first; entries with
    the same timestamp keep their insertion order.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._entries: list[AuditLogEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def record(
        self,
        action: AuditAction,
        subject_workbook_id: str,
        actor: str,
        details: str = "",
    ) -> AuditLogEntry:
        timestamp = self._clock()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        entry = AuditLogEntry(
            id=uuid.uuid4().hex,
            timestamp=timestamp.astimezone(UTC),
            actor=actor,
            action=action,
            subject_workbook_id=subject_workbook_id,
            details=details,
        )
        self._entries.append(entry)
        return entry

    def extend(self, entries: Iterable[AuditLogEntry]) -> None:
        """Append previously persisted entries, skipping ids already present."""
        known = {e.id for e in self._entries}
        for entry in entries:
            if entry.id not in known:
                self._entries.append(entry)
                known.add(entry.id)

    def list_all(self) -> list[AuditLogEntry]:
        # sorted() is stable, so ties stay in insertion order
        return sorted(self._entries, key=lambda e: e.timestamp, reverse=True)

    def list_for_workbook(self, workbook_id: str) -> list[AuditLogEntry]:
        return [e for e in self.list_all() if e.subject_workbook_id == workbook_id]
