"""Greedy, chronological slot allocation for a single day.

The allocator walks the day clock forward from the traveller's start time.
At every step it either serves a pending meal (once the meal window is open),
places the best-scoring eligible activity that still fits before the next
meal deadline, or inserts a short break until something can be scheduled.
Each choice is final: the result is predictable and easy to explain, which
matters more than global optimality for pools of a few dozen places.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from localvia.config import SchedulerSettings
from localvia.logs import get_logger
from localvia.schemas import CityZone, Place, ProductSuggestion, TripPreferences
from localvia.scheduler.scoring import (
    ACTIVITY_TYPES,
    DayState,
    is_eligible,
    reasons_for,
    soft_score,
    zone_of,
)
from localvia.scheduler.timing import parse_hhmm, time_bucket, walking_minutes, weekday_of
from localvia.tools.text import normalize_name

logger = get_logger(__name__)

Scored = Tuple[float, Place, int]


@dataclass
class SlotDraft:
    kind: str
    start: int
    end: int
    place: Optional[Place] = None
    rationale: str = ""
    eligible: List[Tuple[float, Place]] = field(default_factory=list)
    walking_minutes: Optional[int] = None
    filler: bool = False
    alternatives: List[Place] = field(default_factory=list)
    products: List[ProductSuggestion] = field(default_factory=list)


@dataclass
class _Meal:
    name: str
    opens: int
    closes: int
    minutes: int


class SlotAllocator:
    def __init__(
        self,
        prefs: TripPreferences,
        settings: Optional[SchedulerSettings] = None,
        zones: Sequence[CityZone] = (),
    ):
        self.prefs = prefs
        self.settings = settings or SchedulerSettings()
        self.zones: Dict[str, CityZone] = {normalize_name(z.name): z for z in zones}
        s = self.settings
        self.day_start = parse_hhmm(s.start_offsets.get(prefs.start_time, s.day_start))
        self.day_end = parse_hhmm(s.day_end)
        self.budget = s.effort_budget(prefs.rhythm)

    def new_state(self, day: datetime.date) -> DayState:
        return DayState(weekday=weekday_of(day), physical_budget=self.budget, mental_budget=self.budget)

    def allocate(self, day: datetime.date, pool: Sequence[Place], used: Set[str]) -> List[SlotDraft]:
        """Return the ordered slots for ``day``; never empty."""
        s = self.settings
        rhythm = self.prefs.rhythm
        state = self.new_state(day)
        meals = self._meals()
        activities_left = s.max_activities(rhythm)
        evening_left = s.evening_activities(rhythm)
        rest_pending = rhythm <= s.rest_break_max_rhythm
        slots: List[SlotDraft] = []
        clock = self.day_start

        while clock < self.day_end:
            meal = meals[0] if meals else None
            if meal is not None and clock >= meal.opens:
                meals.pop(0)
                if clock >= meal.closes:
                    logger.info("Skipping %s on %s: window closed at the current clock", meal.name, day)
                    continue
                clock = self._fill_meal(meal, clock, pool, used, state, slots)
                if meal.name == "lunch" and rest_pending and clock < self.day_end:
                    rest_pending = False
                    clock = self._add_break(
                        slots,
                        clock,
                        min(clock + s.rest_break_minutes, self.day_end),
                        "Slow afternoon start: rest before heading out again.",
                    )
                continue

            if meal is not None:
                quota, limit = activities_left, meal.closes - s.default_walk_minutes
            else:
                quota, limit = evening_left, self.day_end
            if quota > 0:
                new_clock = self._fill_activity(clock, limit, pool, used, state, slots)
                if new_clock is not None:
                    clock = new_clock
                    if meal is not None:
                        activities_left -= 1
                    else:
                        evening_left -= 1
                    continue

            if meal is None:
                break
            clock = self._add_break(
                slots,
                clock,
                min(clock + s.break_minutes, meal.opens),
                "Free time to wander at your own pace.",
                filler=True,
            )

        if not slots:
            # Window shorter than anything schedulable: keep the day well formed.
            slots.append(SlotDraft("break", self.day_start, self.day_end, rationale="Free day.", filler=True))
        return _coalesce(slots)

    def _meals(self) -> List[_Meal]:
        s = self.settings
        lunch_open, lunch_close = (parse_hhmm(v) for v in s.lunch_window)
        dinner_open, dinner_close = (parse_hhmm(v) for v in s.dinner_window)
        meals = [
            _Meal("lunch", lunch_open, lunch_close, s.lunch_minutes.get(self.prefs.lunch_style, 60)),
            _Meal("dinner", dinner_open, dinner_close, s.dinner_minutes),
        ]
        return [m for m in meals if m.closes > self.day_start and m.opens < self.day_end]

    def _rank(
        self,
        clock: int,
        limit: int,
        candidates: Sequence[Place],
        used: Set[str],
        state: DayState,
        *,
        duration: Optional[int] = None,
        type_window: bool = True,
        latest_start: Optional[int] = None,
    ) -> List[Scored]:
        scored: List[Scored] = []
        for place in candidates:
            walk = walking_minutes(state.last_place, place, self.settings)
            start = clock + walk
            end = start + (duration or place.stay_minutes)
            if end > limit or end > self.day_end:
                continue
            if latest_start is not None and start > latest_start:
                continue
            bucket = time_bucket(start)
            if not is_eligible(
                place,
                bucket=bucket,
                state=state,
                used=used,
                prefs=self.prefs,
                settings=self.settings,
                check_type_window=type_window,
            ):
                continue
            score = soft_score(
                place,
                state=state,
                prefs=self.prefs,
                settings=self.settings,
                walk=walk,
                bucket=bucket,
                zone=zone_of(place, self.zones),
            )
            scored.append((score, place, walk))
        scored.sort(key=lambda item: (-item[0], item[1].name, item[1].id))
        return scored

    def _fill_activity(
        self,
        clock: int,
        limit: int,
        pool: Sequence[Place],
        used: Set[str],
        state: DayState,
        slots: List[SlotDraft],
    ) -> Optional[int]:
        ranked = self._rank(clock, limit, [p for p in pool if p.type in ACTIVITY_TYPES], used, state)
        if not ranked:
            return None
        _, place, walk = ranked[0]
        reasons = reasons_for(place, self.prefs, zone_of(place, self.zones))
        if not reasons:
            reasons = [f"A good {place.type} for this time of day."]
        return self._place(slots, "activity", clock, walk, place, place.stay_minutes, "; ".join(reasons), ranked, state)

    def _fill_meal(
        self,
        meal: _Meal,
        clock: int,
        pool: Sequence[Place],
        used: Set[str],
        state: DayState,
        slots: List[SlotDraft],
    ) -> int:
        ranked: List[Scored] = []
        for food_type in ("restaurant", "bar"):
            ranked = self._rank(
                clock,
                self.day_end,
                [p for p in pool if p.type == food_type],
                used,
                state,
                duration=meal.minutes,
                type_window=False,
                latest_start=meal.closes,
            )
            if ranked:
                break
        if not ranked:
            end = min(clock + meal.minutes, self.day_end)
            return self._add_break(
                slots, clock, end, f"Free {meal.name}: pick any spot nearby, nothing in the catalog fits this slot."
            )
        _, place, walk = ranked[0]
        reasons = reasons_for(place, self.prefs, zone_of(place, self.zones))
        if place.cuisine_type:
            reasons.append(f"{place.cuisine_type} cooking")
        rationale = f"{meal.name.capitalize()} at {place.name}"
        if reasons:
            rationale += ": " + "; ".join(reasons)
        return self._place(slots, "meal", clock, walk, place, meal.minutes, rationale, ranked, state)

    def _place(
        self,
        slots: List[SlotDraft],
        kind: str,
        clock: int,
        walk: int,
        place: Place,
        duration: int,
        rationale: str,
        ranked: List[Scored],
        state: DayState,
    ) -> int:
        if walk and slots:
            slots[-1].walking_minutes = walk
        if walk >= self.settings.transfer_threshold_minutes:
            destination = place.zone or place.name
            slots.append(SlotDraft("transfer", clock, clock + walk, rationale=f"Walk about {walk} min to {destination}."))
        start = clock + walk
        end = start + duration
        eligible = [(score, other) for score, other, _ in ranked if other.id != place.id]
        slots.append(SlotDraft(kind, start, end, place=place, rationale=rationale, eligible=eligible))
        state.consume(place, self.settings.default_effort)
        return end

    @staticmethod
    def _add_break(slots: List[SlotDraft], start: int, end: int, rationale: str, *, filler: bool = False) -> int:
        end = max(end, start + 1)
        slots.append(SlotDraft("break", start, end, rationale=rationale, filler=filler))
        return end


def _coalesce(slots: List[SlotDraft]) -> List[SlotDraft]:
    """Merge back-to-back free-time breaks into one slot."""
    merged: List[SlotDraft] = []
    for slot in slots:
        prev = merged[-1] if merged else None
        if prev is not None and prev.filler and slot.filler and prev.end == slot.start:
            prev.end = slot.end
            prev.walking_minutes = slot.walking_minutes
            continue
        merged.append(slot)
    return merged
