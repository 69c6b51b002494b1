from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from indicator_services.config.env import get_grid_config
from indicator_services.errors import InvalidRowInsertion
from indicator_services.formula.evaluator import evaluate
from indicator_services.formula.parser import CompositeFormula
from indicator_services.grid.cells import PERIOD_FIELD, Cell, GridRow, parse_number
from indicator_services.periods.calendar import generate_start, matches_frequency
from indicator_services.periods.frequency import Frequency
from indicator_services.periods.sequence import generate_sequence

logger = logging.getLogger(__name__)

# Stored state of one field: a period string, a Cell, or None when the row had no such cell.
Stored = Union[str, Cell, None]


@dataclass(frozen=True)
class CellChange:
    row: int
    field: str
    old: Stored
    new: Stored


@dataclass(frozen=True)
class CellEdit:
    changes: Tuple[CellChange, ...]
    # composite cells as they were before the edit, per touched row
    derived: Tuple[Tuple[int, Optional[Cell]], ...] = ()

    @property
    def rows(self) -> List[int]:
        return sorted({c.row for c in self.changes})


@dataclass(frozen=True)
class RowInsertion:
    at_index: int
    count: int
    start_period: Optional[str] = None


Operation = Union[CellEdit, RowInsertion]


def _dedupe_periods(rows: List[GridRow]) -> List[GridRow]:
    by_period: Dict[str, GridRow] = {}
    blanks: List[GridRow] = []
    for row in rows:
        if row.period:
            by_period[row.period] = row
        else:
            blanks.append(row)
    dropped = len(rows) - len(by_period) - len(blanks)
    if dropped:
        logger.debug("Dropped %d rows with a duplicate period", dropped)
    return list(by_period.values()) + blanks


class ChangeLog:
    """Rows of one editing session plus their linear undo/redo history.

    `cursor` indexes the most recently applied operation (-1 when none). Applying
    a new operation drops every undone operation after the cursor. Not thread-safe:
    callers serialize access to one instance.
    """

    def __init__(
        self,
        rows: Optional[Iterable[GridRow]] = None,
        codes: Sequence[str] = (),
        frequency: "str | Frequency" = Frequency.MONTHLY,
        composite: Optional[CompositeFormula] = None,
        max_insert_rows: Optional[int] = None,
    ):
        self.rows: List[GridRow] = list(rows or [])
        self.codes: List[str] = list(codes)
        self.frequency = Frequency.parse(frequency)
        self.composite = composite
        self.max_insert_rows = max_insert_rows or get_grid_config().max_insert_rows
        self.history: List[Operation] = []
        self.cursor = -1

    @classmethod
    def from_records(
        cls,
        records: Sequence[Mapping[str, Any]],
        codes: Sequence[str],
        frequency: "str | Frequency",
        composite: Optional[CompositeFormula] = None,
        initial_rows: Optional[int] = None,
        today: Optional[datetime] = None,
    ) -> "ChangeLog":
        """Open a session on stored rows, sorted by period with blank periods last.

        With no rows at all, `initial_rows` empty rows are seeded starting at today's period.
        For calendar frequencies, rows sharing a period collapse to the last one, and
        `initial_rows - 1` blank future periods follow the latest stored period.
        """
        freq = Frequency.parse(frequency)
        n = initial_rows if initial_rows is not None else get_grid_config().initial_rows
        columns = list(codes)
        if composite is not None and composite.target not in columns:
            columns.append(composite.target)
        rows = [GridRow.from_record(r, columns) for r in records]
        if freq is not Frequency.CUSTOM:
            rows = _dedupe_periods(rows)
        if not rows:
            periods = generate_sequence([], n, True, generate_start(freq, today), freq)
            periods = (periods + [""] * n)[:n]
            rows = [GridRow.blank(columns, p) for p in periods]
            logger.info("Seeded %d empty %s rows", len(rows), freq.value)
        elif freq is not Frequency.CUSTOM and n > 1:
            future = generate_sequence([r.period for r in rows], n - 1, True, None, freq)
            rows.extend(GridRow.blank(columns, p) for p in future)
        rows.sort(key=lambda r: (r.period == "", r.period))
        return cls(rows=rows, codes=codes, frequency=freq, composite=composite)

    @property
    def columns(self) -> List[str]:
        cols = list(self.codes)
        if self.composite is not None and self.composite.target not in cols:
            cols.append(self.composite.target)
        return cols

    @property
    def can_undo(self) -> bool:
        return self.cursor >= 0

    @property
    def can_redo(self) -> bool:
        return self.cursor + 1 <= len(self.history) - 1

    def _push(self, op: Operation) -> None:
        del self.history[self.cursor + 1:]
        self.history.append(op)
        self.cursor = len(self.history) - 1

    # Cell edits

    def _read(self, row: GridRow, field: str) -> Stored:
        if field == PERIOD_FIELD:
            return row.period
        return row.cells.get(field)

    def _write(self, row: GridRow, field: str, stored: Stored) -> None:
        if field == PERIOD_FIELD:
            row.period = "" if stored is None else str(stored)
        elif stored is None:
            row.cells.pop(field, None)
        else:
            row.cells[field] = stored

    def _recompute(self, indices: Iterable[int]) -> Tuple[Tuple[int, Optional[Cell]], ...]:
        if self.composite is None:
            return ()
        target = self.composite.target
        before: List[Tuple[int, Optional[Cell]]] = []
        for i in indices:
            if not 0 <= i < len(self.rows):
                continue
            row = self.rows[i]
            previous = row.cells.get(target)
            before.append((i, previous))
            value = evaluate(self.composite, row.values())
            row.cells[target] = Cell(value=value, id=previous.id if previous else None)
        return tuple(before)

    def apply_edit(self, changes: Iterable[Tuple[int, str, Any]]) -> Optional[CellEdit]:
        """Write (row index, field, raw value) triples and record them as one operation.

        Numeric fields take a parsed number (blank or unparseable input empties the
        cell, its storage id is kept); the period field is written verbatim. Rows
        that do not exist are skipped; when nothing applies, nothing is recorded.
        Every change is resolved before the first one is written.
        """
        applied: List[CellChange] = []
        for index, field, raw in changes:
            if not 0 <= index < len(self.rows):
                logger.debug("Ignoring edit of missing row %s", index)
                continue
            old = self._read(self.rows[index], field)
            if field == PERIOD_FIELD:
                new: Stored = "" if raw is None else str(raw)
            else:
                new = Cell(value=parse_number(raw), id=old.id if isinstance(old, Cell) else None)
            applied.append(CellChange(index, field, old, new))
        if not applied:
            return None
        for change in applied:
            self._write(self.rows[change.row], change.field, change.new)
        for change in self.unexpected_periods(applied):
            logger.warning("Row %d period %r does not look like a %s period", change.row, change.new,
                           self.frequency.value)
        touched = sorted({c.row for c in applied})
        op = CellEdit(changes=tuple(applied), derived=self._recompute(touched))
        self._push(op)
        return op

    def unexpected_periods(self, changes: Iterable[CellChange]) -> List[CellChange]:
        """Non-blank period changes whose label lacks the shape of the grid's frequency."""
        return [
            c for c in changes
            if c.field == PERIOD_FIELD and c.new and not matches_frequency(str(c.new), self.frequency)
        ]

    # Row insertions

    def _new_rows(self, at_index: int, count: int, start_period: Optional[str]) -> List[GridRow]:
        periods: List[str] = []
        if self.frequency is not Frequency.CUSTOM:
            has_periods = any(r.period.strip() for r in self.rows)
            if not has_periods and start_period:
                periods = generate_sequence([], count, True, start_period, self.frequency)
            elif has_periods:
                forward = at_index > 0
                around = self.rows[:at_index] if forward else self.rows[at_index:]
                periods = generate_sequence([r.period for r in around], count, forward, None, self.frequency)
        # always splice exactly `count` rows so undo removes what was inserted
        periods = (periods + [""] * count)[:count]
        return [GridRow.blank(self.columns, p) for p in periods]

    def insert_rows(self, at_index: int, count: int, start_period: Optional[str] = None) -> RowInsertion:
        """Insert `count` blank rows before position `at_index`, with generated periods.

        Inserting at index 0 extends the series backwards from the rows below;
        anywhere else it extends forwards from the rows above.
        """
        if not 0 <= at_index <= len(self.rows):
            raise InvalidRowInsertion(f"insert index {at_index} outside 0..{len(self.rows)}")
        if not 1 <= count <= self.max_insert_rows:
            raise InvalidRowInsertion(f"row count must be between 1 and {self.max_insert_rows}")
        self.rows[at_index:at_index] = self._new_rows(at_index, count, start_period)
        op = RowInsertion(at_index=at_index, count=count, start_period=start_period)
        self._push(op)
        return op

    # History navigation

    def undo(self) -> Optional[Operation]:
        if self.cursor < 0:
            return None
        op = self.history[self.cursor]
        if isinstance(op, RowInsertion):
            del self.rows[op.at_index:op.at_index + op.count]
        else:
            # reverse of apply order: derived cells first, then the edits last-to-first
            target = self.composite.target if self.composite else None
            for index, previous in op.derived:
                if target is not None and 0 <= index < len(self.rows):
                    self._write(self.rows[index], target, previous)
            for change in reversed(op.changes):
                if 0 <= change.row < len(self.rows):
                    self._write(self.rows[change.row], change.field, change.old)
        self.cursor -= 1
        return op

    def redo(self) -> Optional[Operation]:
        if not self.can_redo:
            return None
        op = self.history[self.cursor + 1]
        if isinstance(op, RowInsertion):
            self.rows[op.at_index:op.at_index] = self._new_rows(op.at_index, op.count, op.start_period)
        else:
            for change in op.changes:
                if 0 <= change.row < len(self.rows):
                    self._write(self.rows[change.row], change.field, change.new)
            self._recompute(op.rows)
        self.cursor += 1
        return op

    # Views

    def to_records(self) -> List[dict]:
        return [r.to_record() for r in self.rows]

    def next_entry_index(self) -> Optional[int]:
        """Row where the next value is expected: the first incomplete row after the
        latest-period row that holds data."""
        if not self.rows:
            return None
        filled = [(i, r) for i, r in enumerate(self.rows) if r.period and r.has_data(self.codes)]
        if not filled:
            return 0
        last_index = max(filled, key=lambda item: item[1].period)[0]
        for i in range(last_index + 1, len(self.rows)):
            row = self.rows[i]
            if not row.period or not row.has_data(self.codes):
                return i
        return min(last_index + 1, len(self.rows) - 1)
