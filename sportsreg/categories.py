"""Age-category classification and form-field normalizers."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional, Union

INVALID_DOB = "Invalid DOB"
OVERAGE = "Overage"

# Export display order for the graded bands.
AGE_ORDER = ["Under 11", "Under 14", "Under 16", "Under 17", "Under 19"]

# (inclusive upper age, category); age is currentYear - birthYear.
_AGE_BANDS = [
    (10, "Under 11"),
    (13, "Under 14"),
    (15, "Under 16"),
    (16, "Under 17"),
    (18, "Under 19"),
]

_DOB_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d")


def parse_dob(value: Union[str, date, None]) -> Optional[date]:
    """Return the birth date for ``value`` or ``None`` when it does not parse."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    for fmt in _DOB_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    # ISO timestamps as sent by some browsers, e.g. 2012-04-01T00:00:00.000Z
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def classify(dob: Union[str, date, None], today: Optional[date] = None) -> str:
    """Return the age category for a date of birth.

    Age is the difference of calendar years only; month and day are ignored.
    Unparsable input yields :data:`INVALID_DOB` rather than raising.
    """
    born = parse_dob(dob)
    if born is None:
        return INVALID_DOB
    age = (today or date.today()).year - born.year
    for upper, category in _AGE_BANDS:
        if age <= upper:
            return category
    return OVERAGE


def category_rank(category: str) -> int:
    """Sort key placing graded bands first, then Overage, then anything else."""
    if category in AGE_ORDER:
        return AGE_ORDER.index(category)
    if category == OVERAGE:
        return len(AGE_ORDER)
    return len(AGE_ORDER) + 1


def normalize_events(value: Union[str, Iterable[str], None]) -> List[str]:
    """Trim event names, drop blanks and duplicates; keep submission order.

    Accepts a list (repeated form fields) or a comma-separated string.
    """
    if value is None:
        return []
    if isinstance(value, str):
        items: Iterable = value.split(",")
    else:
        items = value
    events: List[str] = []
    seen = set()
    for item in items:
        if item is None:
            continue
        name = str(item).strip()
        if not name:
            continue
        key = name.lower()
        if key in seen:
            continue
        seen.add(key)
        events.append(name)
    return events


def normalize_gender(value: Optional[str]) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    lower = text.lower()
    if lower in ("m", "male", "boy"):
        return "Male"
    if lower in ("f", "female", "girl"):
        return "Female"
    return text


__all__ = [
    "AGE_ORDER",
    "INVALID_DOB",
    "OVERAGE",
    "category_rank",
    "classify",
    "normalize_events",
    "normalize_gender",
    "parse_dob",
]
