"""Participant record schema."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_key(name: str, school: str) -> tuple:
    """Comparison key for duplicate detection: trimmed and case-folded."""
    return ((name or "").strip().lower(), (school or "").strip().lower())


@dataclass
class Participant:
    """A registered participant.

    ``chest`` is assigned once by the allocator and never edited; ``school``
    is likewise fixed after registration.
    """

    school: str
    name: str
    dob: str
    gender: str
    events: List[str]
    chest: int
    age_category: str
    photo: Optional[str] = None
    created_at: str = field(default_factory=utc_timestamp)

    @property
    def key(self) -> tuple:
        return normalize_key(self.name, self.school)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the JSON keys of the stored results file."""
        return {
            "school": self.school,
            "name": self.name,
            "dob": self.dob,
            "gender": self.gender,
            "events": list(self.events),
            "chest": self.chest,
            "ageCategory": self.age_category,
            "photo": self.photo,
            "timestamp": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Participant":
        """Build a record from its stored form.

        Raises ``ValueError`` for entries missing a school, a name or a
        numeric chest number.
        """
        if not isinstance(raw, dict):
            raise ValueError(f"record must be an object, got {type(raw).__name__}")
        school = str(raw.get("school") or "").strip()
        name = str(raw.get("name") or "").strip()
        if not school or not name:
            raise ValueError("record is missing school or name")
        try:
            chest = int(raw.get("chest"))
        except (TypeError, ValueError):
            raise ValueError(f"record for {name!r} has no valid chest number")
        events = raw.get("events") or []
        if isinstance(events, str):
            events = [events]
        return cls(
            school=school,
            name=name,
            dob=str(raw.get("dob") or ""),
            gender=str(raw.get("gender") or ""),
            events=[str(e) for e in events],
            chest=chest,
            age_category=str(raw.get("ageCategory") or ""),
            photo=raw.get("photo") or None,
            created_at=str(raw.get("timestamp") or ""),
        )

    def copy(self) -> "Participant":
        return Participant(**asdict(self))
