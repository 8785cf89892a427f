"""
Drag-to-select state machine.

States move IDLE -> DRAGGING -> COMMITTED. Ctrl-click keeps earlier
selections alongside the active one. Input arrives in display grid
indices and is converted once, at the boundary, through ``auditgrid.grid``.
The release handler must be registered on a document-level target because
the pointer can be released outside the grid.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from typing import Protocol

from loguru import logger

from auditgrid.grid import DEFAULT_ORIGIN, to_true_coordinate
from auditgrid.models import Coordinate, Range

POINTER_UP = "pointerup"

Listener = Callable[[], None]


class SelectionState(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTED = "committed"


class EventTarget(Protocol):
    """Anything that can dispatch global pointer events (a document, a window)."""

    def add_listener(self, event: str, callback: Listener) -> None: ...

    def remove_listener(self, event: str, callback: Listener) -> None: ...


class SelectionTracker:
    """Tracks the selection currently being drawn on one sheet.

    Raw start/end are kept as the user drew them, so dragging back over the
    anchor keeps the anchor. Consumers read ``normalized()``.

    Example:
        >>> tracker = SelectionTracker("Balance_Sheet")
        >>> tracker.pointer_down(5, 4)
        >>> tracker.pointer_enter(2, 1)
        >>> tracker.pointer_up()
        >>> tracker.normalized()
        Range(sheet='Balance_Sheet', start=Coordinate(row=2, col=0), end=Coordinate(row=5, col=3))
    """

    def __init__(self, sheet: str = "", origin: Coordinate = DEFAULT_ORIGIN) -> None:
        self.sheet = sheet
        self.origin = origin
        self.state = SelectionState.IDLE
        self._start: Coordinate | None = None
        self._end: Coordinate | None = None
        self._others: list[Range] = []
        self._target: EventTarget | None = None
        self._subscribers: list[Callable[[SelectionTracker], None]] = []

    # Global listener lifecycle

    def attach(self, target: EventTarget) -> None:
        """Listen for pointer release on ``target``. Re-attaching moves the listener."""
        if self._target is target:
            return
        self.detach()
        target.add_listener(POINTER_UP, self.pointer_up)
        self._target = target

    def detach(self) -> None:
        """Remove the release listener; call on teardown."""
        if self._target is not None:
            self._target.remove_listener(POINTER_UP, self.pointer_up)
            self._target = None

    def subscribe(
        self, callback: Callable[[SelectionTracker], None]
    ) -> Callable[[], None]:
        """Register a read-only observer. Returns the unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    # Pointer events

    def pointer_down(self, display_row: int, display_col: int) -> None:
        """Start a new drag, or clear the selection on a header/gutter cell."""
        coord = to_true_coordinate(display_row, display_col, self.origin)
        if coord is None:
            self.cancel()
            return
        self._others = []
        self._start = coord
        self._end = coord
        self.state = SelectionState.DRAGGING
        logger.debug(f"Selection anchored at {coord} on {self.sheet!r}")
        self._notify()

    def pointer_enter(self, display_row: int, display_col: int) -> None:
        """Extend the drag to a hovered data cell. Only ``end`` moves."""
        if self.state is not SelectionState.DRAGGING:
            return
        coord = to_true_coordinate(display_row, display_col, self.origin)
        if coord is None or coord == self._end:
            return
        self._end = coord
        self._notify()

    def pointer_up(self) -> None:
        """Freeze the current drag. Ignored unless dragging."""
        if self.state is not SelectionState.DRAGGING:
            return
        self.state = SelectionState.COMMITTED
        logger.debug(f"Selection committed: {self.normalized()}")
        self._notify()

    def extend_to(self, display_row: int, display_col: int) -> None:
        """Shift-click: stretch from the existing anchor and commit at once."""
        coord = to_true_coordinate(display_row, display_col, self.origin)
        if coord is None:
            return
        if self._start is None:
            self._start = coord
        self._end = coord
        self.state = SelectionState.COMMITTED
        self._notify()

    def toggle(self, display_row: int, display_col: int) -> None:
        """Ctrl-click: drop the selection under the cell, or add the cell.

        The first selection containing the cell, oldest first, is removed as a
        whole even when it spans more than the clicked cell. An added cell
        becomes the active selection and the anchor for a following shift-click.
        """
        coord = to_true_coordinate(display_row, display_col, self.origin)
        if coord is None:
            self.cancel()
            return

        active = self.normalized()
        for index, rng in enumerate(self._others):
            if rng.contains(self.sheet, coord):
                del self._others[index]
                self._notify()
                return

        if active is not None and active.contains(self.sheet, coord):
            if self._others:
                previous = self._others.pop()
                self._start, self._end = previous.start, previous.end
                self.state = SelectionState.COMMITTED
            else:
                self._start = None
                self._end = None
                self.state = SelectionState.IDLE
            self._notify()
            return

        if active is not None:
            self._others.append(active)
        self._start = coord
        self._end = coord
        self.state = SelectionState.COMMITTED
        logger.debug(f"Selection added at {coord} on {self.sheet!r}")
        self._notify()

    def cancel(self) -> None:
        """Discard any selection and return to IDLE."""
        idle = self.state is SelectionState.IDLE and self._start is None
        if idle and not self._others:
            return
        self._others = []
        self._start = None
        self._end = None
        self.state = SelectionState.IDLE
        self._notify()

    def select_range(self, rng: Range) -> None:
        """Seed a committed selection from an existing range (named range click)."""
        bounds = rng.normalized()
        self.sheet = bounds.sheet
        self._others = []
        self._start = bounds.start
        self._end = bounds.end
        self.state = SelectionState.COMMITTED
        self._notify()

    def switch_sheet(self, sheet: str, origin: Coordinate = DEFAULT_ORIGIN) -> None:
        """Change the active sheet. Any selection on the old sheet is dropped."""
        self.cancel()
        self.sheet = sheet
        self.origin = origin

    # Views

    @property
    def raw(self) -> Range | None:
        """The selection as drawn, possibly reversed."""
        if self._start is None or self._end is None:
            return None
        return Range(self.sheet, self._start, self._end)

    @property
    def selections(self) -> list[Range]:
        """Every selection on the sheet, oldest first; the active one is last."""
        active = self.normalized()
        return [*self._others, active] if active is not None else list(self._others)

    def normalized(self) -> Range | None:
        raw = self.raw
        return raw.normalized() if raw is not None else None

    @property
    def committed(self) -> Range | None:
        """The normalized selection once the drag has ended, else None."""
        if self.state is not SelectionState.COMMITTED:
            return None
        return self.normalized()

    def contains(self, coord: Coordinate) -> bool:
        return any(rng.contains(self.sheet, coord) for rng in self.selections)

    def _notify(self) -> None:
        for callback in list(self._subscribers):
            callback(self)
