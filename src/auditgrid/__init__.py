"""auditgrid - spreadsheet coordinate and mapping engine for audit workbooks.

Converts between display grid indices and spreadsheet coordinates, tracks
drag selections, resolves which mapping owns a cell, keeps named ranges,
diffs workbook versions and records an audit trail of every change.
"""

__version__ = "0.1.0"

from auditgrid.address import (
    column_letter_to_index,
    format_address,
    index_to_column_letter,
    parse_address,
)
from auditgrid.audit import AuditTrail
from auditgrid.diff import diff_sheet, diff_workbooks
from auditgrid.exceptions import (
    AuditGridError,
    ExternalServiceError,
    InvalidAddressError,
    InvalidMappingError,
    InvalidNamedRangeError,
    NotFoundError,
    ValidationError,
)
from auditgrid.grid import (
    DisplayGrid,
    build_display_grid,
    from_true_coordinate,
    to_true_coordinate,
)
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
from auditgrid.overlay import ColorPalette, create_mapping, find_owning_mapping
from auditgrid.selection import SelectionState, SelectionTracker
from auditgrid.session import MutationResult, WorkbookSession
from auditgrid.transport import (
    DocumentStore,
    Envelope,
    HttpDocumentStore,
    HttpSheetIngestion,
    InMemoryDocumentStore,
    LocalSheetIngestion,
    SheetIngestion,
)

__all__ = [
    "AuditAction",
    "AuditGridError",
    "AuditLogEntry",
    "AuditTrail",
    "ColorPalette",
    "Coordinate",
    "DisplayGrid",
    "DocumentStore",
    "Envelope",
    "ExternalServiceError",
    "HttpDocumentStore",
    "HttpSheetIngestion",
    "InMemoryDocumentStore",
    "InvalidAddressError",
    "InvalidMappingError",
    "InvalidNamedRangeError",
    "LocalSheetIngestion",
    "Mapping",
    "MutationResult",
    "NamedRange",
    "NamedRangeRegistry",
    "NotFoundError",
    "Range",
    "SelectionState",
    "SelectionTracker",
    "SheetIngestion",
    "Transform",
    "ValidationError",
    "Workbook",
    "WorkbookSession",
    "__version__",
    "build_display_grid",
    "column_letter_to_index",
    "create_mapping",
    "diff_sheet",
    "diff_workbooks",
    "find_owning_mapping",
    "format_address",
    "from_true_coordinate",
    "index_to_column_letter",
    "parse_address",
    "to_true_coordinate",
]
