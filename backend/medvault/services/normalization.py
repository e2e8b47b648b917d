"""
Normalization of raw extraction output.

The AI extractor returns loosely-typed JSON: durations arrive as ints,
"7 days", "until finished" or not at all; dates in whatever format was
printed on the prescription. Everything is converted here into a typed
MedicineData before the status or deduplication engines see it.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

DURATION_DAYS = "days"
DURATION_INDEFINITE = "indefinite"
DURATION_UNKNOWN = "unknown"

FREQ_ONCE = "once daily"
FREQ_TWICE = "twice daily"
FREQ_THRICE = "thrice daily"
FREQ_FOUR = "four times daily"

_FREQUENCY_ALIASES = {
    FREQ_ONCE: (
        "od", "qd", "once", "once a day", "once daily", "daily", "1 time a day",
        "1 time daily", "one time a day", "every day", "hs", "at bedtime", "qhs",
    ),
    FREQ_TWICE: (
        "bd", "bid", "twice", "twice a day", "twice daily", "2 times a day",
        "2 times daily", "two times a day", "every 12 hours", "q12h",
    ),
    FREQ_THRICE: (
        "tds", "tid", "thrice", "thrice a day", "thrice daily", "three times a day",
        "three times daily", "3 times a day", "3 times daily", "every 8 hours", "q8h",
    ),
    FREQ_FOUR: (
        "qid", "qds", "four times a day", "four times daily", "4 times a day",
        "4 times daily", "every 6 hours", "q6h",
    ),
}
_FREQUENCY_LOOKUP = {alias: canonical for canonical, aliases in _FREQUENCY_ALIASES.items() for alias in aliases}
_DOSES_PER_DAY = {1: FREQ_ONCE, 2: FREQ_TWICE, 3: FREQ_THRICE, 4: FREQ_FOUR}

# Indian-style dosing grid, e.g. "1-0-1" or "1-1-1-1"
_DOSE_GRID_RE = re.compile(r"^\d+(?:\s*[-–]\s*\d+){2,3}$")

_INDEFINITE_MARKERS = (
    "until finished", "till finished", "until complete", "till complete",
    "continue", "ongoing", "long term", "long-term", "lifelong", "life long",
    "indefinite", "as needed", "when needed", "if needed", "sos", "prn",
)
_DURATION_RE = re.compile(r"^(?:for\s+)?(\d+)(?![.,]\d)\s*([a-z]*)")
# Ten years; longer day counts are read as unknown.
MAX_DURATION_DAYS = 3650
_UNIT_DAYS = {
    "": 1, "d": 1, "day": 1, "days": 1,
    "w": 7, "wk": 7, "wks": 7, "week": 7, "weeks": 7,
    "m": 30, "mo": 30, "month": 30, "months": 30,
}

# Day-first: prescriptions in the target market are printed DD/MM/YYYY.
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%d/%m/%y",
    "%d-%m-%y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)


def normalize_text(value) -> str:
    """Lower-case, trim and collapse inner whitespace."""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip().lower()


def clean_text(value) -> Optional[str]:
    """Trim and collapse whitespace, preserving case; empty becomes None."""
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value)).strip()
    return text or None


@dataclass(frozen=True)
class Duration:
    """Tagged duration value: a positive day count, indefinite, or unknown."""
    kind: str = DURATION_UNKNOWN
    days: Optional[int] = None
    text: str = ""

    @property
    def is_indefinite(self) -> bool:
        return self.kind == DURATION_INDEFINITE

    def canonical(self):
        if self.kind == DURATION_DAYS:
            return self.days
        if self.kind == DURATION_INDEFINITE:
            return DURATION_INDEFINITE
        return None


def _days(count: int, text: str) -> Duration:
    if 0 < count <= MAX_DURATION_DAYS:
        return Duration(DURATION_DAYS, count, text)
    return Duration(text=text)


def parse_duration(value) -> Duration:
    """
    Convert a raw duration field into a Duration.

    Numbers are taken as days. Strings have their leading whole number
    parsed, with an optional day/week/month unit; fractions and other
    units ("1.5 days", "10 tablets") are unknown. Indefinite-use phrases
    such as "until finished" are tagged indefinite. Day counts outside
    1..MAX_DURATION_DAYS are unknown.
    """
    if isinstance(value, Duration):
        return value
    if value is None or isinstance(value, bool):
        return Duration()

    if isinstance(value, int):
        return _days(value, str(value))

    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return _days(int(value), str(int(value)))
        return Duration(text=str(value))

    if not isinstance(value, str):
        return Duration()

    text = clean_text(value) or ""
    lowered = text.lower()
    if not lowered:
        return Duration()

    match = _DURATION_RE.match(lowered)
    if match:
        multiplier = _UNIT_DAYS.get(match.group(2))
        if multiplier is None:
            return Duration(text=text)
        return _days(int(match.group(1)) * multiplier, text)

    if any(marker in lowered for marker in _INDEFINITE_MARKERS):
        return Duration(DURATION_INDEFINITE, None, text)

    return Duration(text=text)


def parse_date(value) -> Optional[date]:
    """Parse a calendar date from a date, datetime or string; None if invalid."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    # ISO timestamps such as "2024-01-05T10:30:00Z"
    if len(text) > 10 and text[4:5] == "-" and text[10:11] in ("T", " "):
        text = text[:10]

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_frequency(value) -> Optional[str]:
    """Map a frequency onto the controlled vocabulary, or keep it as free text."""
    text = clean_text(value)
    if text is None:
        return None

    key = normalize_text(text).replace(".", "")
    if key in _FREQUENCY_LOOKUP:
        return _FREQUENCY_LOOKUP[key]

    if _DOSE_GRID_RE.match(key):
        doses = sum(1 for part in re.split(r"\s*[-–]\s*", key) if int(part) > 0)
        if doses in _DOSES_PER_DAY:
            return _DOSES_PER_DAY[doses]

    return text


@dataclass
class MedicineData:
    """A strictly-typed medicine line item, ready for the engines."""
    medicine_name: str
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Duration = field(default_factory=Duration)
    prescribed_date: Optional[date] = None


# Keys the extractor has been seen to use for each field.
_NAME_KEYS = ("medicineName", "medicine_name", "drug_name", "Drug Name", "name", "drug", "medicine")
_DOSAGE_KEYS = ("dosage", "Dosage", "dose", "strength")
_FREQUENCY_KEYS = ("frequency", "Frequency")
_DURATION_KEYS = ("duration", "Duration")
_DATE_KEYS = ("prescribedDate", "prescribed_date", "extractedDate", "date", "Date")


def _first(raw: dict, keys):
    for key in keys:
        if key in raw and raw[key] not in (None, ""):
            return raw[key]
    return None


def normalize_medicine(raw) -> Optional[MedicineData]:
    """Convert one raw extraction dict into MedicineData; None if it has no name."""
    if not isinstance(raw, dict):
        return None
    name = clean_text(_first(raw, _NAME_KEYS))
    if not name:
        return None
    return MedicineData(
        medicine_name=name,
        dosage=clean_text(_first(raw, _DOSAGE_KEYS)),
        frequency=normalize_frequency(_first(raw, _FREQUENCY_KEYS)),
        duration=parse_duration(_first(raw, _DURATION_KEYS)),
        prescribed_date=parse_date(_first(raw, _DATE_KEYS)),
    )


def normalize_medicines(raw_items) -> list[MedicineData]:
    """Normalize a raw list, silently dropping entries without a medicine name."""
    if not isinstance(raw_items, list):
        return []
    medicines = []
    for raw in raw_items:
        medicine = normalize_medicine(raw)
        if medicine is not None:
            medicines.append(medicine)
    return medicines
