"""Shared test fixtures for auditgrid."""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from auditgrid.models import Workbook
from auditgrid.session import WorkbookSession
from auditgrid.transport import Envelope, InMemoryDocumentStore

BALANCE_SHEET = [
    ["Assets", "1000", "2000", "3000"],
    ["Liabilities", "250", "600", "700"],
    ["Equity", "500", "1400", "2300"],
    ["Total", "1750", "4000", "6000"],
]


class FakeDocument:
    """Document-level event target for selection listener tests."""

    def __init__(self) -> None:
        self.listeners: dict[str, list[Callable[[], None]]] = defaultdict(list)

    def add_listener(self, event: str, callback: Callable[[], None]) -> None:
        self.listeners[event].append(callback)

    def remove_listener(self, event: str, callback: Callable[[], None]) -> None:
        self.listeners[event].remove(callback)

    def dispatch(self, event: str) -> None:
        for callback in list(self.listeners[event]):
            callback()


class GatedStore(InMemoryDocumentStore):
    """In-memory store whose responses can be held back and released in any order."""

    def __init__(self) -> None:
        super().__init__()
        self.gates: dict[str, list[asyncio.Event]] = defaultdict(list)

    def hold(self, operation: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[operation].append(event)
        return event

    async def _wait(self, operation: str) -> None:
        if self.gates[operation]:
            await self.gates[operation].pop(0).wait()

    async def create_mapping(self, workbook_id: str, document: dict[str, Any]) -> Envelope:
        await self._wait("create_mapping")
        return await super().create_mapping(workbook_id, document)

    async def update_mapping(
        self, workbook_id: str, mapping_id: str, changes: dict[str, Any]
    ) -> Envelope:
        await self._wait("update_mapping")
        return await super().update_mapping(workbook_id, mapping_id, changes)

    async def delete_mapping(self, workbook_id: str, mapping_id: str) -> Envelope:
        await self._wait("delete_mapping")
        return await super().delete_mapping(workbook_id, mapping_id)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """A clock that advances one second per reading."""
    start = datetime(2024, 1, 1, tzinfo=UTC)
    ticks = itertools.count()
    return lambda: start + timedelta(seconds=next(ticks))


@pytest.fixture
def document() -> FakeDocument:
    return FakeDocument()


@pytest.fixture
def other_document() -> FakeDocument:
    return FakeDocument()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def gated_store() -> GatedStore:
    return GatedStore()


@pytest.fixture
def workbook() -> Workbook:
    return Workbook(
        id="wb1",
        name="TB 2024",
        sheets={
            "Balance_Sheet": [list(row) for row in BALANCE_SHEET],
            "Notes": [["Note", "Text"]],
        },
    )


@pytest.fixture
def session(
    store: InMemoryDocumentStore, clock: Callable[[], datetime]
) -> WorkbookSession:
    return WorkbookSession(store, actor="auditor@example.com", clock=clock)
