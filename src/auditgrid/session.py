"""WorkbookSession - the state object behind the workbook viewer.

Owns the selected workbook, its mappings and named ranges, the selection
tracker and the audit trail. All persistence goes through a DocumentStore.

Changes are shown optimistically: ``mappings`` and ``named_ranges`` return
confirmed state with in-flight changes applied on top. When the store
answers, the confirmed state is updated in the order responses arrive. A
failed call drops its pending change, leaves confirmed state as it was, and
raises ExternalServiceError. Responses for a workbook that is no longer
selected are ignored.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Literal

from loguru import logger

from auditgrid.address import format_address
from auditgrid.audit import AuditTrail, Clock, utc_now
from auditgrid.config import Settings, get_settings
from auditgrid.diff import WorkbookDiff, diff_workbooks
from auditgrid.exceptions import (
    ExternalServiceError,
    InvalidMappingError,
    InvalidNamedRangeError,
    NotFoundError,
)
from auditgrid.grid import DisplayGrid, origin_from_address
from auditgrid.logging import set_context
from auditgrid.models import (
    AuditAction,
    AuditLogEntry,
    Coordinate,
    Mapping,
    NamedRange,
    Range,
    Transform,
    Workbook,
)
from auditgrid.named_ranges import NamedRangeRegistry
from auditgrid.overlay import (
    ColorPalette,
    find_owning_mapping,
    normalize_mapping,
)
from auditgrid.overlay import create_mapping as build_mapping
from auditgrid.overlay import delete_mapping as without_mapping
from auditgrid.overlay import update_mapping as patch_mapping
from auditgrid.selection import SelectionTracker
from auditgrid.transport import (
    DocumentStore,
    Envelope,
    HttpDocumentStore,
    HttpSheetIngestion,
    SheetIngestion,
)

OperationKind = Literal["create", "update", "delete"]
RecordType = Literal["mapping", "named_range"]


@dataclass
class PendingOperation:
    """A store call that has been issued but not answered yet."""

    op_id: str
    workbook_id: str
    record_type: RecordType
    kind: OperationKind
    target_id: str
    record: Mapping | NamedRange | None = None  # optimistic record, None for delete


@dataclass
class MutationResult:
    """Outcome of a session mutation.

    ``applied`` is False when the response arrived after its workbook was
    closed and was therefore ignored. ``audit_error`` is set when the change
    succeeded but its audit entry could not be stored.
    """

    value: Any = None
    applied: bool = True
    audit_entry: AuditLogEntry | None = None
    audit_error: str | None = None


def _stale() -> MutationResult:
    return MutationResult(value=None, applied=False)


class WorkbookSession:
    """Single owner of viewer state for one selected workbook at a time.

    Example:
        >>> session = WorkbookSession(InMemoryDocumentStore(), actor="auditor@firm")
        >>> await session.upload_workbook(Workbook(id="wb1", name="TB 2024", sheets=...))
        >>> session.tracker.pointer_down(2, 2)
        >>> session.tracker.pointer_up()
        >>> await session.create_mapping("ppe_nbv_close", "sum")
    """

    def __init__(
        self,
        store: DocumentStore,
        ingestion: SheetIngestion | None = None,
        *,
        actor: str = "system",
        palette: ColorPalette | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._ingestion = ingestion
        self.actor = actor
        self.palette = palette or ColorPalette()
        self.audit = AuditTrail(clock)
        self.tracker = SelectionTracker()

        self.workbook: Workbook | None = None
        self.active_sheet: str | None = None
        self.previous_sheets: dict[str, list[list[str]]] = {}
        self.previous_origins: dict[str, Coordinate] = {}
        self._mappings: list[Mapping] = []
        self._registry = NamedRangeRegistry()
        self._pending: dict[str, PendingOperation] = {}

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, actor: str | None = None
    ) -> WorkbookSession:
        """Build a session wired to the workbook REST service."""
        settings = settings or get_settings()
        token = settings.access_token or None
        return cls(
            HttpDocumentStore(settings.api_base_url, token, settings.timeout),
            HttpSheetIngestion(settings.api_base_url, token, settings.timeout),
            actor=actor or settings.default_actor,
            palette=ColorPalette(settings.palette),
        )

    async def close(self) -> None:
        """Release the selection listener and close transports."""
        self.tracker.detach()
        await self._store.close()
        if self._ingestion is not None:
            await self._ingestion.close()

    # Views

    @property
    def mappings(self) -> list[Mapping]:
        """Confirmed mappings with in-flight changes applied, in creation order."""
        result = list(self._mappings)
        for op in self._current_pending("mapping"):
            if op.kind == "create" and isinstance(op.record, Mapping):
                result.append(op.record)
            elif op.kind == "update" and isinstance(op.record, Mapping):
                result = [op.record if m.id == op.target_id else m for m in result]
            elif op.kind == "delete":
                result = without_mapping(result, op.target_id)
        return result

    @property
    def named_ranges(self) -> NamedRangeRegistry:
        """Confirmed named ranges with in-flight changes applied."""
        registry = self._registry.copy()
        for op in self._current_pending("named_range"):
            if op.kind == "delete":
                registry.delete(op.target_id)
            elif isinstance(op.record, NamedRange):
                registry.put(op.record)
        return registry

    @property
    def pending(self) -> list[PendingOperation]:
        return list(self._pending.values())

    def _current_pending(self, record_type: RecordType) -> list[PendingOperation]:
        if self.workbook is None:
            return []
        return [
            op
            for op in self._pending.values()
            if op.workbook_id == self.workbook.id and op.record_type == record_type
        ]

    # Workbook selection

    def select_workbook(self, workbook: Workbook) -> None:
        """Make ``workbook`` current. Anything in flight for another workbook goes stale."""
        self.workbook = workbook
        self._mappings = [normalize_mapping(m) for m in workbook.mappings]
        self._registry = NamedRangeRegistry(workbook.named_ranges)
        self._pending.clear()
        self.previous_sheets = {}
        self.previous_origins = {}
        sheet = next(iter(workbook.sheets), None)
        self.set_active_sheet(sheet)
        set_context(actor=self.actor, workbook_id=workbook.id)

    async def open_workbook(self, workbook_id: str) -> Workbook:
        """Fetch a workbook with its mappings, named ranges and audit log."""
        workbook = Workbook.from_dict(
            self._unwrap(await self._store.get_workbook(workbook_id), "get workbook")
        )
        mappings = self._unwrap(
            await self._store.list_mappings(workbook_id), "list mappings"
        )
        named_ranges = self._unwrap(
            await self._store.list_named_ranges(workbook_id), "list named ranges"
        )
        entries = self._unwrap(
            await self._store.list_audit_entries(workbook_id), "list audit entries"
        )

        if mappings:
            workbook.mappings = [Mapping.from_dict(m) for m in mappings]
        if named_ranges:
            workbook.named_ranges = [NamedRange.from_dict(n) for n in named_ranges]
        self.audit.extend(AuditLogEntry.from_dict(e) for e in entries or [])

        self.select_workbook(workbook)
        logger.info(f"Opened workbook {workbook.name} ({workbook.version})")
        return workbook

    def close_workbook(self) -> None:
        """Deselect the current workbook. Late responses for it are ignored."""
        if self.workbook is not None:
            logger.info(f"Closed workbook {self.workbook.name}")
        self.workbook = None
        self._mappings = []
        self._registry = NamedRangeRegistry()
        self._pending.clear()
        self.previous_sheets = {}
        self.previous_origins = {}
        self.tracker.switch_sheet("")
        self.active_sheet = None

    async def load_sheets(self) -> list[str]:
        """Pull every sheet of the current workbook from the ingestion service."""
        workbook = self._require_workbook()
        if self._ingestion is None:
            raise ExternalServiceError("load sheets", "no ingestion service configured")
        names = await self._ingestion.list_sheets(workbook.id)
        for name in names:
            await self.load_sheet(name)
        return names

    async def load_sheet(self, sheet_name: str) -> DisplayGrid | None:
        """Fetch one sheet, honoring the anchor address the service reports."""
        workbook = self._require_workbook()
        if self._ingestion is None:
            raise ExternalServiceError("load sheet", "no ingestion service configured")
        payload = await self._ingestion.read_sheet(workbook.id, sheet_name)
        if self.workbook is not workbook:
            logger.warning(f"Ignoring sheet {sheet_name!r} for a closed workbook")
            return None
        workbook.sheets[sheet_name] = payload.values
        workbook.origins[sheet_name] = origin_from_address(payload.address)
        if self.active_sheet is None:
            self.set_active_sheet(sheet_name)
        return self.display_grid(sheet_name)

    # Sheets and hit testing

    def set_active_sheet(self, sheet_name: str | None) -> None:
        self.active_sheet = sheet_name
        if sheet_name is None or self.workbook is None:
            self.tracker.switch_sheet("")
            return
        self.tracker.switch_sheet(sheet_name, self.workbook.origin_of(sheet_name))

    def display_grid(self, sheet_name: str | None = None) -> DisplayGrid:
        workbook = self._require_workbook()
        name = sheet_name or self.active_sheet
        if name is None or name not in workbook.sheets:
            raise NotFoundError("Sheet", str(name))
        return DisplayGrid(workbook.sheets[name], workbook.origin_of(name))

    def mapping_at(self, sheet_name: str, coord: Coordinate) -> Mapping | None:
        """The mapping drawn on ``coord``; the earliest created wins on overlap."""
        return find_owning_mapping(self.mappings, sheet_name, coord)

    def mapping_at_display(self, display_row: int, display_col: int) -> Mapping | None:
        """Hit test a display cell on the active sheet."""
        if self.active_sheet is None:
            return None
        coord = self.display_grid().to_true(display_row, display_col)
        if coord is None:
            return None
        return self.mapping_at(self.active_sheet, coord)

    # Mappings

    async def create_mapping(
        self,
        destination_field: str,
        transform: Transform | str = Transform.SUM,
        validation: str | None = None,
        *,
        selection: Range | None = None,
    ) -> MutationResult:
        """Persist a mapping for the committed selection (or ``selection``)."""
        workbook = self._require_workbook()
        mapping = build_mapping(
            selection if selection is not None else self.tracker.committed,
            destination_field,
            transform,
            validation,
            palette=self.palette,
        )

        op = self._begin("mapping", workbook.id, "create", mapping.id, mapping)
        envelope = await self._send(
            op, self._store.create_mapping(workbook.id, mapping.to_dict())
        )
        if not self._finish(op):
            return _stale()
        data = self._unwrap(envelope, "create mapping")

        confirmed = normalize_mapping(Mapping.from_dict(data)) if data else mapping
        self._mappings.append(confirmed)
        logger.info(
            f"Created mapping {confirmed.id} -> {confirmed.destination_field}"
        )
        return await self._audited(
            confirmed,
            AuditAction.CREATE_MAPPING,
            workbook.id,
            f"Mapped {_describe(confirmed)} to {confirmed.destination_field}",
        )

    async def update_mapping(
        self,
        mapping_id: str,
        *,
        sheet: str | None = None,
        start: Coordinate | None = None,
        end: Coordinate | None = None,
        destination_field: str | None = None,
        transform: Transform | str | None = None,
        validation: str | None = None,
        color: str | None = None,
    ) -> MutationResult:
        """Apply a partial update. Unspecified fields keep their values."""
        workbook = self._require_workbook()
        current = next((m for m in self.mappings if m.id == mapping_id), None)
        if current is None:
            raise NotFoundError("Mapping", mapping_id)
        if self._creating("mapping", mapping_id):
            raise InvalidMappingError("mapping is still being created")
        updated = patch_mapping(
            current,
            sheet=sheet,
            start=start,
            end=end,
            destination_field=destination_field,
            transform=transform,
            validation=validation,
            color=color,
        )

        given = {
            "sheet": sheet is not None or start is not None or end is not None,
            "destinationField": destination_field is not None,
            "transform": transform is not None,
            "validation": validation is not None,
            "color": color is not None,
        }
        changes = _mapping_changes(updated, [key for key, on in given.items() if on])
        if not changes:
            raise InvalidMappingError("no changes given")

        op = self._begin("mapping", workbook.id, "update", mapping_id, updated)
        envelope = await self._send(
            op, self._store.update_mapping(workbook.id, mapping_id, changes)
        )
        if not self._finish(op):
            return _stale()
        data = self._unwrap(envelope, "update mapping")

        confirmed = updated
        if isinstance(data, dict) and "start" in data and "sheet" in data:
            confirmed = normalize_mapping(Mapping.from_dict({"id": mapping_id, **data}))
        self._mappings = [confirmed if m.id == mapping_id else m for m in self._mappings]
        logger.info(f"Updated mapping {mapping_id}")
        return await self._audited(
            confirmed,
            AuditAction.UPDATE_MAPPING,
            workbook.id,
            f"Updated mapping {confirmed.destination_field} ({', '.join(changes)})",
        )

    async def delete_mapping(self, mapping_id: str) -> MutationResult:
        """Delete a mapping. Deleting an id that is already gone succeeds."""
        workbook = self._require_workbook()
        existing = next((m for m in self.mappings if m.id == mapping_id), None)
        if self._creating("mapping", mapping_id):
            raise InvalidMappingError("mapping is still being created")

        op = self._begin("mapping", workbook.id, "delete", mapping_id, None)
        envelope = await self._send(
            op, self._store.delete_mapping(workbook.id, mapping_id)
        )
        if not self._finish(op):
            return _stale()
        self._unwrap(envelope, "delete mapping")

        self._mappings = without_mapping(self._mappings, mapping_id)
        if existing is None:
            logger.debug(f"Mapping {mapping_id} already deleted")
            return MutationResult(value=None)
        logger.info(f"Deleted mapping {mapping_id}")
        return await self._audited(
            existing,
            AuditAction.DELETE_MAPPING,
            workbook.id,
            f"Deleted mapping {existing.destination_field} ({_describe(existing)})",
        )

    # Named ranges

    def resolve_named_range(self, name: str) -> Range:
        return self.named_ranges.resolve(name)

    def select_named_range(self, name: str) -> Range:
        """Switch to the named range's sheet and select it."""
        rng = self.named_ranges.select_by_name(name)
        if rng.sheet != self.active_sheet:
            self.set_active_sheet(rng.sheet)
        self.tracker.select_range(rng)
        return rng

    async def create_named_range(self, name: str, address: str) -> MutationResult:
        workbook = self._require_workbook()
        record = self.named_ranges.build(name, address)

        op = self._begin("named_range", workbook.id, "create", record.id, record)
        envelope = await self._send(
            op, self._store.create_named_range(workbook.id, record.to_dict())
        )
        if not self._finish(op):
            return _stale()
        data = self._unwrap(envelope, "create named range")

        confirmed = NamedRange.from_dict(data) if data else record
        self._registry.put(confirmed)
        logger.info(f"Created named range {confirmed.name} = {confirmed.range}")
        return await self._audited(
            confirmed,
            AuditAction.CREATE_NAMED_RANGE,
            workbook.id,
            f"Named {confirmed.range} as {confirmed.name}",
        )

    async def update_named_range(
        self,
        named_range_id: str,
        *,
        name: str | None = None,
        address: str | None = None,
    ) -> MutationResult:
        workbook = self._require_workbook()
        if self._creating("named_range", named_range_id):
            raise InvalidNamedRangeError(
                name or named_range_id, "named range is still being created"
            )
        updated = self.named_ranges.build_update(named_range_id, name, address)
        changes = {
            key: value
            for key, value in (("name", name), ("range", address))
            if value is not None
        }

        op = self._begin("named_range", workbook.id, "update", named_range_id, updated)
        envelope = await self._send(
            op, self._store.update_named_range(workbook.id, named_range_id, changes)
        )
        if not self._finish(op):
            return _stale()
        self._unwrap(envelope, "update named range")

        self._registry.put(updated)
        logger.info(f"Updated named range {updated.name}")
        return await self._audited(
            updated,
            AuditAction.UPDATE_NAMED_RANGE,
            workbook.id,
            f"Updated named range {updated.name} = {updated.range}",
        )

    async def delete_named_range(self, named_range_id: str) -> MutationResult:
        """Delete a named range. Deleting an id that is already gone succeeds."""
        workbook = self._require_workbook()
        existing = self.named_ranges.get(named_range_id)
        if self._creating("named_range", named_range_id):
            raise InvalidNamedRangeError(
                named_range_id, "named range is still being created"
            )

        op = self._begin("named_range", workbook.id, "delete", named_range_id, None)
        envelope = await self._send(
            op, self._store.delete_named_range(workbook.id, named_range_id)
        )
        if not self._finish(op):
            return _stale()
        self._unwrap(envelope, "delete named range")

        self._registry.delete(named_range_id)
        if existing is None:
            return MutationResult(value=None)
        logger.info(f"Deleted named range {existing.name}")
        return await self._audited(
            existing,
            AuditAction.DELETE_NAMED_RANGE,
            workbook.id,
            f"Deleted named range {existing.name}",
        )

    # Workbook versions

    async def upload_workbook(self, workbook: Workbook) -> MutationResult:
        """Store a newly ingested workbook and make it current."""
        envelope = await self._store.save_workbook(workbook.to_dict())
        self._unwrap(envelope, "save workbook")
        self.select_workbook(workbook)
        logger.info(f"Uploaded workbook {workbook.name} ({workbook.version})")
        return await self._audited(
            workbook,
            AuditAction.UPLOAD,
            workbook.id,
            f"Uploaded {workbook.name} as version {workbook.version}",
        )

    async def reupload(
        self,
        sheets: dict[str, list[list[str]]],
        origins: dict[str, Coordinate] | None = None,
    ) -> MutationResult:
        """Replace the sheet data with a new version, keeping the old for diffing.

        Mappings are kept as they are even if the new sheets are smaller.
        """
        workbook = self._require_workbook()
        bumped = workbook.bumped(sheets, self.actor)
        if origins is not None:
            bumped.origins = dict(origins)
        bumped.mappings = list(self._mappings)
        bumped.named_ranges = list(self._registry)

        envelope = await self._store.save_workbook(bumped.to_dict())
        if self.workbook is not workbook:
            logger.warning(f"Ignoring re-upload response for closed workbook {workbook.id}")
            return _stale()
        self._unwrap(envelope, "save workbook")

        self.previous_sheets = workbook.sheets
        self.previous_origins = dict(workbook.origins)
        self.workbook = bumped
        if self.active_sheet not in bumped.sheets:
            self.set_active_sheet(next(iter(bumped.sheets), None))
        logger.info(f"Re-uploaded {bumped.name} as {bumped.version}")
        return await self._audited(
            bumped,
            AuditAction.REUPLOAD,
            bumped.id,
            f"Re-uploaded {bumped.name} as version {bumped.version}",
        )

    def version_diff(self) -> WorkbookDiff:
        """Compare the current sheets with the version they replaced."""
        workbook = self._require_workbook()
        return diff_workbooks(
            self.previous_sheets,
            workbook.sheets,
            self.mappings,
            old_version=workbook.previous_version,
            new_version=workbook.version,
            origins=workbook.origins,
            old_origins=self.previous_origins,
        )

    async def delete_workbook(self, workbook_id: str | None = None) -> MutationResult:
        """Delete a workbook; its mappings and named ranges go with it."""
        target = workbook_id or self._require_workbook().id
        envelope = await self._store.delete_workbook(target)
        self._unwrap(envelope, "delete workbook")
        if self.workbook is not None and self.workbook.id == target:
            self.close_workbook()
        logger.info(f"Deleted workbook {target}")
        return MutationResult(value=target)

    # Internals

    def _require_workbook(self) -> Workbook:
        if self.workbook is None:
            raise NotFoundError("Workbook", "no workbook selected")
        return self.workbook

    def _begin(
        self,
        record_type: RecordType,
        workbook_id: str,
        kind: OperationKind,
        target_id: str,
        record: Mapping | NamedRange | None,
    ) -> PendingOperation:
        op = PendingOperation(
            op_id=uuid.uuid4().hex,
            workbook_id=workbook_id,
            record_type=record_type,
            kind=kind,
            target_id=target_id,
            record=record,
        )
        self._pending[op.op_id] = op
        return op

    async def _send(
        self, op: PendingOperation, call: Awaitable[Envelope]
    ) -> Envelope:
        """Await a store call, retiring ``op`` if the call raises or is cancelled."""
        try:
            return await call
        except BaseException:
            self._pending.pop(op.op_id, None)
            raise

    def _creating(self, record_type: RecordType, target_id: str) -> bool:
        """True while a create for ``target_id`` is still waiting on the store."""
        return any(
            op.kind == "create" and op.target_id == target_id
            for op in self._current_pending(record_type)
        )

    def _finish(self, op: PendingOperation) -> bool:
        """Retire ``op``. False means its response belongs to a closed workbook."""
        tracked = self._pending.pop(op.op_id, None)
        current = self.workbook is not None and self.workbook.id == op.workbook_id
        if tracked is None or not current:
            logger.warning(
                f"Ignoring late {op.kind} response for workbook {op.workbook_id}"
            )
            return False
        return True

    @staticmethod
    def _unwrap(envelope: Envelope, operation: str) -> Any:
        if not envelope.success:
            logger.error(f"{operation} failed: {envelope.error}")
            raise ExternalServiceError(operation, envelope.error or "unknown error")
        return envelope.data

    async def _audited(
        self, value: Any, action: AuditAction, workbook_id: str, details: str
    ) -> MutationResult:
        """Record the audit entry for a change that already succeeded."""
        entry = self.audit.record(action, workbook_id, self.actor, details)
        envelope = await self._store.create_audit_entry(entry.to_dict())
        if not envelope.success:
            logger.warning(
                f"Audit entry for {action.value} not stored: {envelope.error}"
            )
            return MutationResult(value=value, audit_entry=entry, audit_error=envelope.error)
        return MutationResult(value=value, audit_entry=entry)


def _describe(mapping: Mapping) -> str:
    return format_address(mapping.range)


def _mapping_changes(mapping: Mapping, keys: list[str]) -> dict[str, Any]:
    """Build the store payload for a partial mapping update.

    Geometry travels as a unit so the stored start/end stay normalized.
    """
    document = mapping.to_dict()
    changes: dict[str, Any] = {}
    for key in keys:
        if key == "sheet":
            changes.update(
                sheet=document["sheet"], start=document["start"], end=document["end"]
            )
        else:
            changes[key] = document[key]
    return changes
