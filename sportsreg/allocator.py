"""Per-school chest-number allocator.

Each school has a single counter holding the next number to issue, bounded by
its configured range: ``start <= counter <= end + 1``, where ``end + 1``
means the range is used up. The allocator tracks positions, not owners, so
releasing is only correct for the most recently issued number.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Mapping, Optional

from .errors import RangeExhaustedError, UnknownSchoolError
from .models import Participant
from .ranges import ChestRange

logger = logging.getLogger(__name__)


class ChestAllocator:
    def __init__(self, ranges: Mapping[str, ChestRange]):
        self._ranges: Dict[str, ChestRange] = dict(ranges)
        self._counters: Dict[str, int] = {s: r.start for s, r in self._ranges.items()}

    @property
    def ranges(self) -> Dict[str, ChestRange]:
        return dict(self._ranges)

    def counters(self) -> Dict[str, int]:
        return dict(self._counters)

    def _range(self, school: str) -> ChestRange:
        chest_range = self._ranges.get(school)
        if chest_range is None:
            raise UnknownSchoolError(f"No chest number range configured for school '{school}'")
        return chest_range

    def allocate(self, school: str) -> int:
        """Issue the next chest number for ``school``.

        Raises:
            UnknownSchoolError: no range for ``school`` (case-sensitive).
            RangeExhaustedError: every number in the range is issued.

        State is untouched when either error is raised.
        """
        chest_range = self._range(school)
        number = self._counters[school]
        if number > chest_range.end:
            raise RangeExhaustedError(
                f"All chest numbers for '{school}' ({chest_range.start}-{chest_range.end}) are used"
            )
        self._counters[school] = number + 1
        logger.info("Allocated chest %d to %s", number, school)
        return number

    def release(self, school: str) -> None:
        """Return the most recently issued number for ``school`` to the pool.

        Never moves the counter below the range start.
        """
        chest_range = self._range(school)
        current = self._counters[school]
        if current > chest_range.start:
            self._counters[school] = current - 1
            logger.info("Released chest %d for %s", current - 1, school)
        else:
            logger.warning("Release ignored for %s: counter already at start %d", school, chest_range.start)

    def last_issued(self, school: str) -> Optional[int]:
        """Number most recently issued for ``school``, or ``None``."""
        chest_range = self._ranges.get(school)
        if chest_range is None:
            return None
        current = self._counters[school]
        return current - 1 if current > chest_range.start else None

    def peek(self, school: str) -> Optional[int]:
        """Next number ``allocate`` would issue; ``None`` if unknown or exhausted."""
        chest_range = self._ranges.get(school)
        if chest_range is None:
            return None
        number = self._counters[school]
        return number if number <= chest_range.end else None

    def remaining(self, school: str) -> int:
        chest_range = self._range(school)
        return max(chest_range.end + 1 - self._counters[school], 0)

    def reconcile(self, records: Iterable[Participant]) -> Dict[str, int]:
        """Rebuild every counter from stored records.

        Counters restart at their range start and are then raised past the
        highest chest number on file for the school. Replaying the same
        records always yields the same counters.
        """
        self._counters = {s: r.start for s, r in self._ranges.items()}
        for record in records:
            chest_range = self._ranges.get(record.school)
            if chest_range is None:
                logger.warning(
                    "Record %r (chest %s) belongs to unconfigured school %r",
                    record.name, record.chest, record.school,
                )
                continue
            if not chest_range.start <= record.chest <= chest_range.end:
                logger.warning(
                    "Record %r has chest %d outside %s range %d-%d",
                    record.name, record.chest, record.school, chest_range.start, chest_range.end,
                )
            nxt = min(record.chest + 1, chest_range.end + 1)
            if nxt > self._counters[record.school]:
                self._counters[record.school] = nxt
        return self.counters()


__all__ = ["ChestAllocator"]
