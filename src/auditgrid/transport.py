"""Transport layer for the document store and the sheet ingestion service.

Defines the collaborator interfaces and implementations:
- HttpDocumentStore / HttpSheetIngestion: production transports over the
  workbook REST backend
- InMemoryDocumentStore / LocalSheetIngestion: offline transports backed by
  memory and local TSV files, used by tests
"""

from __future__ import annotations

import json
import ssl
import urllib.parse
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

import certifi
import httpx

from auditgrid.exceptions import ExternalServiceError
from auditgrid.file_reader import read_tsv

DEFAULT_TIMEOUT = 60


@dataclass(frozen=True)
class Envelope:
    """Success/error wrapper returned by every store call."""

    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> Envelope:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> Envelope:
        return cls(success=False, error=error)


@dataclass(frozen=True)
class SheetPayload:
    """Tabular values of one sheet and the address anchoring them."""

    values: list[list[str]]
    address: str


class SheetIngestion(ABC):
    """Turns a workbook handle into sheet data."""

    @abstractmethod
    async def list_sheets(self, workbook_id: str) -> list[str]:
        """Return sheet names in workbook order."""
        ...

    @abstractmethod
    async def read_sheet(self, workbook_id: str, sheet_name: str) -> SheetPayload:
        """Return the values of one sheet and where they start."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...


class DocumentStore(ABC):
    """CRUD access to workbook, mapping, named range and audit documents.

    Documents are plain dicts in the camelCase shape produced by the
    ``to_dict()`` methods in ``auditgrid.models``. Implementations report
    failures through the returned Envelope rather than raising.
    """

    @abstractmethod
    async def get_workbook(self, workbook_id: str) -> Envelope: ...

    @abstractmethod
    async def save_workbook(self, document: dict[str, Any]) -> Envelope: ...

    @abstractmethod
    async def delete_workbook(self, workbook_id: str) -> Envelope: ...

    @abstractmethod
    async def list_mappings(self, workbook_id: str) -> Envelope: ...

    @abstractmethod
    async def create_mapping(
        self, workbook_id: str, document: dict[str, Any]
    ) -> Envelope: ...

    @abstractmethod
    async def update_mapping(
        self, workbook_id: str, mapping_id: str, changes: dict[str, Any]
    ) -> Envelope: ...

    @abstractmethod
    async def delete_mapping(self, workbook_id: str, mapping_id: str) -> Envelope: ...

    @abstractmethod
    async def list_named_ranges(self, workbook_id: str) -> Envelope: ...

    @abstractmethod
    async def create_named_range(
        self, workbook_id: str, document: dict[str, Any]
    ) -> Envelope: ...

    @abstractmethod
    async def update_named_range(
        self, workbook_id: str, named_range_id: str, changes: dict[str, Any]
    ) -> Envelope: ...

    @abstractmethod
    async def delete_named_range(
        self, workbook_id: str, named_range_id: str
    ) -> Envelope: ...

    @abstractmethod
    async def list_audit_entries(self, workbook_id: str | None = None) -> Envelope: ...

    @abstractmethod
    async def create_audit_entry(self, document: dict[str, Any]) -> Envelope: ...

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections."""
        ...


def _ssl_client(base_url: str, access_token: str | None, timeout: int) -> httpx.AsyncClient:
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    headers = {"Accept": "application/json"}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        verify=ssl_context,
        headers=headers,
    )


async def _request(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    body: dict[str, Any] | None = None,
) -> Envelope:
    """Make a request and fold the outcome into an Envelope."""
    try:
        response = await client.request(method, path, json=body)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        try:
            message = e.response.json().get("error") or e.response.text
        except ValueError:
            message = e.response.text
        return Envelope.fail(f"API error ({status}): {message}")
    except httpx.RequestError as e:
        return Envelope.fail(f"Network error: {e}")

    if not response.content:
        return Envelope.ok()
    try:
        payload = response.json()
    except ValueError as e:
        return Envelope.fail(f"Invalid JSON response: {e}")
    if isinstance(payload, dict) and "success" in payload:
        return Envelope(
            success=bool(payload["success"]),
            data=payload.get("data"),
            error=payload.get("error"),
        )
    return Envelope.ok(payload)


def _quote(segment: str) -> str:
    return urllib.parse.quote(segment, safe="")


class HttpDocumentStore(DocumentStore):
    """Document store backed by the workbook REST API."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the store.

        Args:
            base_url: API prefix, e.g. ``https://host/api/workbooks-service``
            access_token: Bearer token, if the backend requires one
            timeout: Request timeout in seconds
        """
        self._client = _ssl_client(base_url, access_token, timeout)

    async def get_workbook(self, workbook_id: str) -> Envelope:
        return await _request(self._client, "GET", f"/workbooks/{_quote(workbook_id)}")

    async def save_workbook(self, document: dict[str, Any]) -> Envelope:
        return await _request(
            self._client,
            "PUT",
            f"/workbooks/{_quote(document['id'])}",
            body=document,
        )

    async def delete_workbook(self, workbook_id: str) -> Envelope:
        return await _request(
            self._client, "DELETE", f"/workbooks/{_quote(workbook_id)}"
        )

    async def list_mappings(self, workbook_id: str) -> Envelope:
        return await _request(
            self._client, "GET", f"/workbooks/{_quote(workbook_id)}/mappings"
        )

    async def create_mapping(
        self, workbook_id: str, document: dict[str, Any]
    ) -> Envelope:
        return await _request(
            self._client,
            "POST",
            f"/workbooks/{_quote(workbook_id)}/mappings",
            body=document,
        )

    async def update_mapping(
        self, workbook_id: str, mapping_id: str, changes: dict[str, Any]
    ) -> Envelope:
        return await _request(
            self._client,
            "PUT",
            f"/workbooks/{_quote(workbook_id)}/mappings/{_quote(mapping_id)}",
            body=changes,
        )

    async def delete_mapping(self, workbook_id: str, mapping_id: str) -> Envelope:
        envelope = await _request(
            self._client,
            "DELETE",
            f"/workbooks/{_quote(workbook_id)}/mappings/{_quote(mapping_id)}",
        )
        # Already gone counts as deleted
        if not envelope.success and (envelope.error or "").startswith("API error (404)"):
            return Envelope.ok()
        return envelope

    async def list_named_ranges(self, workbook_id: str) -> Envelope:
        return await _request(
            self._client, "GET", f"/workbooks/{_quote(workbook_id)}/named-ranges"
        )

    async def create_named_range(
        self, workbook_id: str, document: dict[str, Any]
    ) -> Envelope:
        return await _request(
            self._client,
            "POST",
            f"/workbooks/{_quote(workbook_id)}/named-ranges",
            body=document,
        )

    async def update_named_range(
        self, workbook_id: str, named_range_id: str, changes: dict[str, Any]
    ) -> Envelope:
        return await _request(
            self._client,
            "PUT",
            f"/workbooks/{_quote(workbook_id)}/named-ranges/{_quote(named_range_id)}",
            body=changes,
        )

    async def delete_named_range(
        self, workbook_id: str, named_range_id: str
    ) -> Envelope:
        envelope = await _request(
            self._client,
            "DELETE",
            f"/workbooks/{_quote(workbook_id)}/named-ranges/{_quote(named_range_id)}",
        )
        if not envelope.success and (envelope.error or "").startswith("API error (404)"):
            return Envelope.ok()
        return envelope

    async def list_audit_entries(self, workbook_id: str | None = None) -> Envelope:
        if workbook_id is None:
            return await _request(self._client, "GET", "/logs")
        return await _request(
            self._client, "GET", f"/workbooks/{_quote(workbook_id)}/logs"
        )

    async def create_audit_entry(self, document: dict[str, Any]) -> Envelope:
        return await _request(
            self._client,
            "POST",
            f"/workbooks/{_quote(document['subjectWorkbookId'])}/logs",
            body=document,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


class HttpSheetIngestion(SheetIngestion):
    """Reads sheet values through the workbook service's worksheet endpoints."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        self._client = _ssl_client(base_url, access_token, timeout)

    async def list_sheets(self, workbook_id: str) -> list[str]:
        envelope = await _request(
            self._client, "GET", f"/workbooks/{_quote(workbook_id)}/worksheets"
        )
        data = _unwrap(envelope, "list worksheets")
        return [item["name"] for item in sorted(data, key=lambda w: w.get("position", 0))]

    async def read_sheet(self, workbook_id: str, sheet_name: str) -> SheetPayload:
        envelope = await _request(
            self._client,
            "GET",
            f"/workbooks/{_quote(workbook_id)}/sheets/{_quote(sheet_name)}/read",
        )
        data = _unwrap(envelope, "read sheet")
        values = [[_cell_text(v) for v in row] for row in data.get("values") or []]
        return SheetPayload(
            values=values,
            address=data.get("address") or f"{sheet_name}!A1",
        )

    async def close(self) -> None:
        await self._client.aclose()


def _unwrap(envelope: Envelope, operation: str) -> Any:
    if not envelope.success:
        raise ExternalServiceError(operation, envelope.error or "unknown error")
    return envelope.data


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value == int(value):
        return str(int(value))
    return str(value)


class InMemoryDocumentStore(DocumentStore):
    """Document store that keeps everything in dicts.

    ``failures`` maps an operation name (e.g. ``"create_mapping"``) to the
    error message it should report, so callers can exercise failure paths
    without a server.
    """

    def __init__(self) -> None:
        self.workbooks: dict[str, dict[str, Any]] = {}
        self.mappings: dict[str, dict[str, dict[str, Any]]] = {}
        self.named_ranges: dict[str, dict[str, dict[str, Any]]] = {}
        self.audit_entries: list[dict[str, Any]] = []
        self.failures: dict[str, str] = {}
        self.calls: list[str] = []

    def _fail(self, operation: str) -> Envelope | None:
        self.calls.append(operation)
        if operation in self.failures:
            return Envelope.fail(self.failures[operation])
        return None

    async def get_workbook(self, workbook_id: str) -> Envelope:
        if failed := self._fail("get_workbook"):
            return failed
        document = self.workbooks.get(workbook_id)
        if document is None:
            return Envelope.fail(f"Workbook not found: {workbook_id}")
        return Envelope.ok(dict(document))

    async def save_workbook(self, document: dict[str, Any]) -> Envelope:
        if failed := self._fail("save_workbook"):
            return failed
        stored = dict(document)
        stored.setdefault("id", uuid.uuid4().hex)
        self.workbooks[stored["id"]] = stored
        return Envelope.ok(dict(stored))

    async def delete_workbook(self, workbook_id: str) -> Envelope:
        if failed := self._fail("delete_workbook"):
            return failed
        self.workbooks.pop(workbook_id, None)
        self.mappings.pop(workbook_id, None)
        self.named_ranges.pop(workbook_id, None)
        return Envelope.ok()

    async def list_mappings(self, workbook_id: str) -> Envelope:
        if failed := self._fail("list_mappings"):
            return failed
        return Envelope.ok(list(self.mappings.get(workbook_id, {}).values()))

    async def create_mapping(
        self, workbook_id: str, document: dict[str, Any]
    ) -> Envelope:
        if failed := self._fail("create_mapping"):
            return failed
        return Envelope.ok(_insert(self.mappings, workbook_id, document))

    async def update_mapping(
        self, workbook_id: str, mapping_id: str, changes: dict[str, Any]
    ) -> Envelope:
        if failed := self._fail("update_mapping"):
            return failed
        return _patch(self.mappings, workbook_id, mapping_id, changes, "Mapping")

    async def delete_mapping(self, workbook_id: str, mapping_id: str) -> Envelope:
        if failed := self._fail("delete_mapping"):
            return failed
        self.mappings.get(workbook_id, {}).pop(mapping_id, None)
        return Envelope.ok()

    async def list_named_ranges(self, workbook_id: str) -> Envelope:
        if failed := self._fail("list_named_ranges"):
            return failed
        return Envelope.ok(list(self.named_ranges.get(workbook_id, {}).values()))

    async def create_named_range(
        self, workbook_id: str, document: dict[str, Any]
    ) -> Envelope:
        if failed := self._fail("create_named_range"):
            return failed
        return Envelope.ok(_insert(self.named_ranges, workbook_id, document))

    async def update_named_range(
        self, workbook_id: str, named_range_id: str, changes: dict[str, Any]
    ) -> Envelope:
        if failed := self._fail("update_named_range"):
            return failed
        return _patch(
            self.named_ranges, workbook_id, named_range_id, changes, "Named range"
        )

    async def delete_named_range(
        self, workbook_id: str, named_range_id: str
    ) -> Envelope:
        if failed := self._fail("delete_named_range"):
            return failed
        self.named_ranges.get(workbook_id, {}).pop(named_range_id, None)
        return Envelope.ok()

    async def list_audit_entries(self, workbook_id: str | None = None) -> Envelope:
        if failed := self._fail("list_audit_entries"):
            return failed
        entries = [
            dict(e)
            for e in self.audit_entries
            if workbook_id is None or e.get("subjectWorkbookId") == workbook_id
        ]
        return Envelope.ok(entries)

    async def create_audit_entry(self, document: dict[str, Any]) -> Envelope:
        if failed := self._fail("create_audit_entry"):
            return failed
        self.audit_entries.append(dict(document))
        return Envelope.ok(dict(document))

    async def close(self) -> None:
        """No-op for the in-memory store."""
        pass


def _insert(
    table: dict[str, dict[str, dict[str, Any]]],
    workbook_id: str,
    document: dict[str, Any],
) -> dict[str, Any]:
    stored = dict(document)
    if not stored.get("id"):
        stored["id"] = uuid.uuid4().hex
    table.setdefault(workbook_id, {})[stored["id"]] = stored
    return dict(stored)


def _patch(
    table: dict[str, dict[str, dict[str, Any]]],
    workbook_id: str,
    record_id: str,
    changes: dict[str, Any],
    kind: str,
) -> Envelope:
    current = table.get(workbook_id, {}).get(record_id)
    if current is None:
        return Envelope.fail(f"{kind} not found: {record_id}")
    current.update(changes)
    return Envelope.ok(dict(current))


class LocalSheetIngestion(SheetIngestion):
    """Ingestion that reads sheets from local TSV files.

    Expected directory structure:
        base_dir/
            <workbook_id>/
                sheets.json      (optional: [{"name", "file", "address"}])
                <sheet name>.tsv
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = base_dir

    def _manifest(self, workbook_id: str, operation: str) -> list[dict[str, str]]:
        folder = self._base_dir / workbook_id
        manifest = folder / "sheets.json"
        if not manifest.exists():
            return [
                {"name": path.stem, "file": path.name}
                for path in sorted(folder.glob("*.tsv"))
            ]
        try:
            entries = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ExternalServiceError(
                operation, f"Invalid sheet manifest {manifest}: {e}"
            ) from e
        if not isinstance(entries, list) or not all(
            isinstance(entry, dict) and isinstance(entry.get("name"), str)
            for entry in entries
        ):
            raise ExternalServiceError(
                operation, f"Invalid sheet manifest {manifest}: expected named sheets"
            )
        return entries

    async def list_sheets(self, workbook_id: str) -> list[str]:
        return [entry["name"] for entry in self._manifest(workbook_id, "list sheets")]

    async def read_sheet(self, workbook_id: str, sheet_name: str) -> SheetPayload:
        for entry in self._manifest(workbook_id, "read sheet"):
            if entry["name"] == sheet_name:
                path = self._base_dir / workbook_id / entry.get("file", f"{sheet_name}.tsv")
                try:
                    values = read_tsv(path)
                except (OSError, ValueError) as e:
                    raise ExternalServiceError(
                        "read sheet", f"Cannot read {path}: {e}"
                    ) from e
                return SheetPayload(
                    values=values,
                    address=entry.get("address") or f"{sheet_name}!A1",
                )
        raise ExternalServiceError("read sheet", f"Sheet not found: {sheet_name}")

    async def close(self) -> None:
        """No-op for local file ingestion."""
        pass
