"""Registration workflow.

:class:`Registry` owns the in-memory record list, the range table and the
chest allocator, and is the only code that mutates them. Mutations are
serialized by a re-entrant lock and written to the record store before they
are acknowledged; a failed write undoes the in-memory change. Reads hand out
copies taken under the same lock.
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional

from .allocator import ChestAllocator
from .categories import classify, normalize_events, normalize_gender, parse_dob
from .datastore import RecordStore
from .errors import (
    DuplicateParticipantError,
    NotFoundError,
    PersistenceError,
    RegistrationError,
    ValidationError,
)
from .models import Participant, normalize_key
from .ranges import ChestRange

logger = logging.getLogger(__name__)

REGISTER_FIELDS = ("school", "name", "dob", "gender", "events", "photo")
REQUIRED_FIELDS = ("school", "name", "dob", "gender", "events")
EDITABLE_FIELDS = ("name", "dob", "gender", "events", "photo")


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


class Registry:
    def __init__(
        self,
        store: RecordStore,
        range_loader: Callable[[], Mapping[str, ChestRange]],
        photo_remover: Optional[Callable[[str], Any]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.store = store
        self._range_loader = range_loader
        self._photo_remover = photo_remover
        self._today = today or date.today
        self._lock = threading.RLock()
        self._records: List[Participant] = []
        self.allocator = ChestAllocator({})

    # -- startup -----------------------------------------------------------

    def start(self) -> Dict[str, int]:
        """Load ranges and records, then rebuild the allocator counters.

        A record store that cannot be read raises :class:`PersistenceError`.
        A range table that cannot be read leaves the table empty.
        """
        with self._lock:
            ranges = self._load_ranges()
            records = self.store.load()
            self._records = records
            self.allocator = ChestAllocator(ranges)
            counters = self.allocator.reconcile(records)
            logger.info(
                "Registry started: %d ranges, %d records, backend=%s",
                len(ranges), len(records), self.store.name,
            )
            logger.debug("Reconciled counters: %s", counters)
            return counters

    def _load_ranges(self) -> Dict[str, ChestRange]:
        try:
            return dict(self._range_loader())
        except RegistrationError:
            logger.exception("Could not load chest ranges; starting with none")
            return {}

    # -- helpers -----------------------------------------------------------

    def _find_index(self, name: str, school: str) -> Optional[int]:
        key = normalize_key(name, school)
        for idx, record in enumerate(self._records):
            if record.key == key:
                return idx
        return None

    def _persist(self, message: str) -> None:
        try:
            self.store.save(self._records, message=message)
        except PersistenceError:
            logger.exception("Saving records failed (%s)", message)
            raise

    def _release_photo(self, reference: Optional[str]) -> None:
        if reference and self._photo_remover is not None:
            self._photo_remover(reference)

    def _release_chest(self, record: Participant) -> None:
        # Only the newest number can go back to the pool; anything older
        # becomes a gap so that no issued number is ever reused.
        if self.allocator.last_issued(record.school) == record.chest:
            self.allocator.release(record.school)
        else:
            logger.info(
                "Chest %d of %s is not the latest issued; leaving a gap",
                record.chest, record.school,
            )

    # -- workflow ----------------------------------------------------------

    def validate(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Check a registration payload and return its cleaned fields."""
        if not isinstance(data, Mapping):
            raise ValidationError("Registration must be an object")
        unknown = sorted(set(data) - set(REGISTER_FIELDS))
        if unknown:
            raise ValidationError(f"Unknown fields: {', '.join(unknown)}")
        cleaned = {
            "school": _clean(data.get("school")),
            "name": _clean(data.get("name")),
            "dob": _clean(data.get("dob")),
            "gender": normalize_gender(_clean(data.get("gender"))),
            "events": normalize_events(data.get("events")),
            "photo": _clean(data.get("photo")) or None,
        }
        missing = [f for f in REQUIRED_FIELDS if not cleaned[f]]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        born = parse_dob(cleaned["dob"])
        if born is None:
            raise ValidationError(f"Invalid date of birth '{cleaned['dob']}'")
        cleaned["dob"] = born.isoformat()
        return cleaned

    def register(self, data: Mapping[str, Any]) -> Participant:
        """Validate, allocate a chest number, store and return the record."""
        fields = self.validate(data)
        with self._lock:
            if self._find_index(fields["name"], fields["school"]) is not None:
                raise DuplicateParticipantError(
                    f"{fields['name']} is already registered for {fields['school']}"
                )
            category = classify(fields["dob"], today=self._today())
            chest = self.allocator.allocate(fields["school"])
            record = Participant(
                school=fields["school"],
                name=fields["name"],
                dob=fields["dob"],
                gender=fields["gender"],
                events=fields["events"],
                chest=chest,
                age_category=category,
                photo=fields["photo"],
            )
            self._records.append(record)
            try:
                self._persist(f"Add registration {record.school} #{chest}")
            except Exception:
                self._records.pop()
                self.allocator.release(record.school)
                raise
            logger.info("Registered %s (%s) with chest %d", record.name, record.school, chest)
            return record.copy()

    def edit(self, name: str, school: str, changes: Mapping[str, Any]) -> Participant:
        """Update a participant; ``chest`` and ``school`` cannot change."""
        if not isinstance(changes, Mapping) or not changes:
            raise ValidationError("No changes supplied")
        with self._lock:
            idx = self._find_index(name, school)
            if idx is None:
                raise NotFoundError(f"No participant {name!r} registered for {school!r}")
            current = self._records[idx]
            if "chest" in changes and changes["chest"] != current.chest:
                raise ValidationError("Chest numbers cannot be changed")
            if "school" in changes and _clean(changes["school"]) != current.school:
                raise ValidationError("School cannot be changed")
            unknown = sorted(set(changes) - set(EDITABLE_FIELDS) - {"chest", "school"})
            if unknown:
                raise ValidationError(f"Unknown fields: {', '.join(unknown)}")

            updated = current.copy()
            if "name" in changes:
                new_name = _clean(changes["name"])
                if not new_name:
                    raise ValidationError("Name cannot be empty")
                other = self._find_index(new_name, current.school)
                if other is not None and other != idx:
                    raise DuplicateParticipantError(
                        f"{new_name} is already registered for {current.school}"
                    )
                updated.name = new_name
            if "dob" in changes:
                born = parse_dob(_clean(changes["dob"]))
                if born is None:
                    raise ValidationError(f"Invalid date of birth '{changes['dob']}'")
                updated.dob = born.isoformat()
                updated.age_category = classify(born, today=self._today())
            if "gender" in changes:
                gender = normalize_gender(_clean(changes["gender"]))
                if not gender:
                    raise ValidationError("Gender cannot be empty")
                updated.gender = gender
            if "events" in changes:
                events = normalize_events(changes["events"])
                if not events:
                    raise ValidationError("At least one event is required")
                updated.events = events
            if "photo" in changes:
                updated.photo = _clean(changes["photo"]) or None

            self._records[idx] = updated
            try:
                self._persist(f"Edit registration {current.school} #{current.chest}")
            except Exception:
                self._records[idx] = current
                raise
            if current.photo and current.photo != updated.photo:
                self._release_photo(current.photo)
            logger.info("Edited %s (%s) chest %d", updated.name, updated.school, updated.chest)
            return updated.copy()

    def remove(self, name: str, school: str) -> Participant:
        """Delete a participant and roll back its chest number if it was the latest."""
        with self._lock:
            idx = self._find_index(name, school)
            if idx is None:
                raise NotFoundError(f"No participant {name!r} registered for {school!r}")
            record = self._records.pop(idx)
            try:
                self._persist(f"Remove registration {record.school} #{record.chest}")
            except Exception:
                self._records.insert(idx, record)
                raise
            self._release_chest(record)
            self._release_photo(record.photo)
            logger.info("Removed %s (%s) chest %d", record.name, record.school, record.chest)
            return record.copy()

    def remove_last(self) -> Participant:
        """Delete the most recent registration."""
        with self._lock:
            if not self._records:
                raise NotFoundError("No responses to remove")
            record = self._records.pop()
            try:
                self._persist("Remove last response")
            except Exception:
                self._records.append(record)
                raise
            self._release_chest(record)
            self._release_photo(record.photo)
            logger.info("Removed last response %s (%s) chest %d", record.name, record.school, record.chest)
            return record.copy()

    def reset_all(self) -> int:
        """Delete every record, reload the range table and restart all counters.

        The range table is read first; if it cannot be loaded nothing changes.
        """
        with self._lock:
            try:
                ranges = dict(self._range_loader())
            except RegistrationError:
                logger.exception("Reset aborted: chest ranges could not be reloaded")
                raise
            previous = self._records
            self._records = []
            try:
                self._persist("Reset all responses")
            except Exception:
                self._records = previous
                raise
            self.allocator = ChestAllocator(ranges)
            self.allocator.reconcile([])
            for record in previous:
                self._release_photo(record.photo)
            logger.info("Reset all responses: removed %d records", len(previous))
            return len(previous)

    # -- queries -----------------------------------------------------------

    def list_records(self, school: Optional[str] = None) -> List[Participant]:
        with self._lock:
            records = [r.copy() for r in self._records]
        if school is not None:
            target = school.strip().lower()
            records = [r for r in records if r.school.lower() == target]
        records.sort(key=lambda r: r.school.lower())
        return records

    def schools(self) -> List[str]:
        with self._lock:
            return sorted({r.school for r in self._records})

    def peek(self, school: str) -> Optional[int]:
        with self._lock:
            return self.allocator.peek(_clean(school))

    def counters(self) -> Dict[str, int]:
        with self._lock:
            return self.allocator.counters()

    def range_summary(self) -> List[Dict[str, Any]]:
        with self._lock:
            ranges = self.allocator.ranges
            return [
                {
                    "school": school,
                    "start": chest_range.start,
                    "end": chest_range.end,
                    "next": self.allocator.peek(school),
                    "remaining": self.allocator.remaining(school),
                }
                for school, chest_range in sorted(ranges.items())
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


__all__ = ["Registry"]
