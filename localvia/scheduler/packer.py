"""Multi-day packing on top of the single-day allocator."""
from __future__ import annotations

import datetime
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from localvia.errors import DeadlineExceeded
from localvia.logs import get_logger
from localvia.schemas import Place
from localvia.scheduler.allocator import SlotAllocator, SlotDraft
from localvia.scheduler.timing import parse_hhmm, weekday_of

logger = get_logger(__name__)


@dataclass
class DayDraft:
    day_number: int
    date: datetime.date
    weekday: str
    slots: List[SlotDraft]
    summary: str = ""
    reduced: bool = False


@dataclass
class PackResult:
    days: List[DayDraft] = field(default_factory=list)
    used: Set[str] = field(default_factory=set)
    exhausted: bool = False
    incomplete: bool = False


class DayPacker:
    def __init__(self, allocator: SlotAllocator, city_name: str = ""):
        self.allocator = allocator
        self.city_name = city_name

    def pack(
        self,
        pool: Sequence[Place],
        start_date: datetime.date,
        num_days: int,
        *,
        deadline: Optional[float] = None,
    ) -> PackResult:
        """Pack ``num_days`` consecutive days, carrying the used set forward.

        Raises ``DeadlineExceeded`` only when the deadline passes before the
        first day is packed; later expiry returns the days packed so far.
        """
        result = PackResult()
        for offset in range(num_days):
            if deadline is not None and time.monotonic() >= deadline:
                result.incomplete = True
                logger.warning("Deadline reached after %d of %d day(s)", len(result.days), num_days)
                break
            day = start_date + datetime.timedelta(days=offset)
            remaining = [p for p in pool if p.id not in result.used or p.revisit_friendly]
            if not remaining:
                result.exhausted = True
                result.days.append(self._reduced_day(offset + 1, day))
                continue

            slots = self.allocator.allocate(day, remaining, result.used)
            placed = [slot.place for slot in slots if slot.place is not None]
            result.used.update(place.id for place in placed)
            draft = DayDraft(day_number=offset + 1, date=day, weekday=weekday_of(day), slots=slots)
            if placed:
                draft.summary = self._summary(draft)
            else:
                result.exhausted = True
                draft.reduced = True
                draft.summary = (
                    f"Day {draft.day_number}: nothing left in the catalog fits this day, "
                    "so it stays open for wandering and second visits."
                )
            result.days.append(draft)

        if not result.days and num_days > 0:
            raise DeadlineExceeded("deadline expired before any day could be packed")
        logger.info(
            "Packed %d/%d day(s) using %d place(s)%s",
            len(result.days),
            num_days,
            len(result.used),
            " (pool exhausted)" if result.exhausted else "",
        )
        return result

    def _reduced_day(self, day_number: int, day: datetime.date) -> DayDraft:
        s = self.allocator.settings
        start = self.allocator.day_start
        lunch_open = max(parse_hhmm(s.lunch_window[0]), start + 30)
        lunch_end = lunch_open + s.lunch_minutes.get(self.allocator.prefs.lunch_style, 60)
        afternoon_end = max(lunch_end + 60, parse_hhmm("18:00"))
        slots = [
            SlotDraft("break", start, lunch_open, rationale="Free morning: revisit a favourite from earlier days."),
            SlotDraft("break", lunch_open, lunch_end, rationale="Lunch wherever the morning takes you."),
            SlotDraft("break", lunch_end, afternoon_end, rationale="Free afternoon to explore on your own."),
        ]
        where = f" in {self.city_name}" if self.city_name else ""
        summary = (
            f"Day {day_number}: every catalogued place{where} is already in your plan, "
            "so this lighter day is left free."
        )
        return DayDraft(
            day_number=day_number,
            date=day,
            weekday=weekday_of(day),
            slots=slots,
            summary=summary,
            reduced=True,
        )

    def _summary(self, draft: DayDraft) -> str:
        activities = [s.place.name for s in draft.slots if s.kind == "activity" and s.place]
        meals = [s.place.name for s in draft.slots if s.kind == "meal" and s.place]
        parts: List[str] = []
        if activities:
            parts.append(", ".join(activities[:3]) + (" and more" if len(activities) > 3 else ""))
        if meals:
            parts.append("meals at " + " and ".join(meals))
        where = f" in {self.city_name}" if self.city_name else ""
        return f"Day {draft.day_number}{where}: " + "; ".join(parts) + "."
