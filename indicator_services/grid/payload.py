from __future__ import annotations
from typing import Any, Dict, List, Mapping, Sequence

from indicator_services.errors import EmptyPayload, InconsistentSequence
from indicator_services.grid.cells import GridRow
from indicator_services.periods.frequency import Frequency
from indicator_services.periods.sequence import is_consistent_sequence


def build_payloads(
    rows: Sequence[GridRow], ids: Mapping[str, str], frequency: "str | Frequency"
) -> List[Dict[str, Any]]:
    """Per-indicator data lists for the persistence layer.

    `ids` maps each basis code to its stored indicator id.
    - keeps rows that have a period and at least one value, sorted by period
    - for calendar frequencies, the kept periods must form an unbroken sequence
    - indicators without any value are left out
    """
    codes = list(ids)
    valid = [r for r in rows if r.period and r.has_data(codes)]
    if not valid:
        raise EmptyPayload("No valid data to post. Add both period and value for at least one indicator.")
    valid.sort(key=lambda r: r.period)

    freq = Frequency.parse(frequency)
    if freq is not Frequency.CUSTOM and len(valid) > 1:
        if not is_consistent_sequence([r.period for r in valid], freq):
            raise InconsistentSequence("Please ensure sequence of periods is consistent before applying changes.")

    payloads: List[Dict[str, Any]] = []
    for code, indicator_id in ids.items():
        data = []
        for r in valid:
            cell = r.get(code)
            if cell.value is not None:
                data.append({"period": r.period, "value": cell.value, "id": cell.id})
        if data:
            payloads.append({"indicator_id": indicator_id, "code": code, "data": data})
    return payloads
