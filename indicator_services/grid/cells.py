from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional

PERIOD_FIELD = "period"


def parse_number(raw: Any) -> Optional[float]:
    """Numeric cell input -> float, or None for blank, unparseable or non-finite input."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        if isinstance(raw, (int, float)):
            value = float(raw)
        else:
            text = str(raw).strip()
            if not text:
                return None
            value = float(text)
    except (ValueError, OverflowError):
        return None
    return value if math.isfinite(value) else None


@dataclass(frozen=True)
class Cell:
    """One indicator value: empty, a number, or a number tied to a stored record id."""

    value: Optional[float] = None
    id: Optional[str] = None  # opaque storage identifier, passed through untouched

    @property
    def is_empty(self) -> bool:
        return self.value is None

    @staticmethod
    def from_record(raw: Any) -> "Cell":
        if isinstance(raw, Cell):
            return raw
        if isinstance(raw, Mapping):
            ident = raw.get("id")
            return Cell(value=parse_number(raw.get("value")), id=None if ident is None else str(ident))
        return Cell(value=parse_number(raw))

    def to_record(self) -> Dict[str, Any]:
        return {"value": self.value, "id": self.id}


EMPTY = Cell()


@dataclass
class GridRow:
    period: str = ""
    cells: Dict[str, Cell] = field(default_factory=dict)

    def get(self, code: str) -> Cell:
        return self.cells.get(code, EMPTY)

    def values(self) -> Dict[str, Optional[float]]:
        return {code: cell.value for code, cell in self.cells.items()}

    def has_data(self, codes: Iterable[str]) -> bool:
        return any(not self.get(c).is_empty for c in codes)

    @staticmethod
    def blank(codes: Iterable[str], period: str = "") -> "GridRow":
        return GridRow(period=period, cells={c: EMPTY for c in codes})

    @staticmethod
    def from_record(record: Mapping[str, Any], codes: Iterable[str]) -> "GridRow":
        period = record.get(PERIOD_FIELD)
        return GridRow(
            period="" if period is None else str(period),
            cells={c: Cell.from_record(record.get(c)) for c in codes},
        )

    def to_record(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {PERIOD_FIELD: self.period}
        for code, cell in self.cells.items():
            out[code] = cell.to_record()
        return out
