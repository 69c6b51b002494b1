from __future__ import annotations
from enum import Enum
from typing import Dict, List, Optional


class Frequency(str, Enum):
    MINUTE = "minute"
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    BIMONTHLY = "bimonthly"
    QUARTERLY = "quarterly"
    TRIANNUAL = "triannual"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, value: "str | Frequency | None") -> "Frequency":
        """Map an API frequency identifier (any case) or display name to a Frequency.

        Unknown or missing identifiers map to CUSTOM.
        """
        if isinstance(value, Frequency):
            return value
        if not value:
            return cls.CUSTOM
        key = str(value).strip()
        try:
            return cls(key.lower())
        except ValueError:
            pass
        by_display = from_display_name(key)
        return by_display if by_display is not None else cls.CUSTOM

    @property
    def is_weekly(self) -> bool:
        return self in (Frequency.WEEKLY, Frequency.BIWEEKLY)


DISPLAY_NAMES: Dict[Frequency, str] = {
    Frequency.MINUTE: "Per Minute",
    Frequency.HOURLY: "Hourly",
    Frequency.DAILY: "Daily",
    Frequency.WEEKLY: "Weekly",
    Frequency.BIWEEKLY: "Biweekly",
    Frequency.MONTHLY: "Monthly",
    Frequency.BIMONTHLY: "Every 2 Months",
    Frequency.QUARTERLY: "Quarterly",
    Frequency.TRIANNUAL: "Every 4 Months",
    Frequency.SEMIANNUAL: "Semiannual / Biannual",
    Frequency.ANNUAL: "Annual",
    Frequency.CUSTOM: "Custom / Other",
}


def display_name(frequency: "str | Frequency") -> str:
    return DISPLAY_NAMES[Frequency.parse(frequency)]


def from_display_name(name: str) -> Optional[Frequency]:
    for freq, label in DISPLAY_NAMES.items():
        if label == name:
            return freq
    return None


# Workflow frequency names -> indicator frequency spellings they accept
WORKFLOW_FREQUENCIES: Dict[str, List[str]] = {
    "Monthly": ["MONTHLY", "Monthly"],
    "Quarterly": ["QUARTERLY", "Quarterly"],
    "Yearly": ["ANNUAL", "Annual", "Yearly"],
    "Daily": ["DAILY", "Daily"],
    "Weekly": ["WEEKLY", "Weekly"],
    "Biweekly": ["BIWEEKLY", "Biweekly"],
    "Bimonthly": ["BIMONTHLY", "Every 2 Months", "Bimonthly"],
    "Semiannual": ["SEMIANNUAL", "Semiannual", "Biannual", "Semiannual / Biannual"],
    "Annual": ["ANNUAL", "Annual", "Yearly"],
}


def frequencies_compatible(workflow_frequency: Optional[str], indicator_frequency: Optional[str]) -> bool:
    """Whether an indicator with `indicator_frequency` can feed a workflow running at `workflow_frequency`.

    Either side missing means no filtering. Unmapped workflow names fall back to a
    case-insensitive exact match.
    """
    if not workflow_frequency or not indicator_frequency:
        return True
    accepted = WORKFLOW_FREQUENCIES.get(workflow_frequency, [])
    if not accepted:
        return workflow_frequency.upper() == indicator_frequency.upper()
    return any(indicator_frequency.upper() == f.upper() for f in accepted)
