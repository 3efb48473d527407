# localvia/planner.py
"""Itinerary generation entry point.

Pulls the city, its places and add-on products from the catalog, merges in any
transient candidates from a discovery run, packs the requested days and turns
the mutable drafts into the immutable ``ItineraryResult`` returned to callers.
"""
from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from localvia.catalog import Catalog
from localvia.config import SchedulerSettings
from localvia.discovery.promote import candidate_to_place
from localvia.errors import (
    DEADLINE,
    EXHAUSTED,
    EXTRACTION_UNAVAILABLE,
    MALFORMED_RESPONSE,
    CityNotFound,
    ExtractionUnavailable,
    InputInvalid,
    UpstreamMalformed,
    UpstreamQuotaExhausted,
)
from localvia.logs import get_logger
from localvia.schemas import (
    CandidatePlace,
    GeneratedDay,
    GeneratedSlot,
    ItineraryMeta,
    ItineraryResult,
    Place,
    PlaceRef,
    TripPreferences,
)
from localvia.scheduler.allocator import SlotAllocator
from localvia.scheduler.enrich import attach_alternatives, attach_products
from localvia.scheduler.packer import DayDraft, DayPacker, PackResult
from localvia.scheduler.timing import format_hhmm
from localvia.tools.text import normalize_name

logger = get_logger(__name__)


def _coerce_preferences(preferences: Any) -> TripPreferences:
    if isinstance(preferences, TripPreferences):
        return preferences
    try:
        return TripPreferences.model_validate(preferences)
    except ValidationError as exc:
        raise InputInvalid(f"invalid trip preferences: {exc.error_count()} error(s)") from exc


def build_pool(
    places: Sequence[Place], candidates: Sequence[CandidatePlace], city_id: str
) -> List[Place]:
    """Catalog places first; candidates only when their name is new."""
    pool = list(places)
    seen = {normalize_name(p.name) for p in pool}
    for candidate in candidates:
        key = normalize_name(candidate.name)
        if key in seen:
            continue
        seen.add(key)
        pool.append(candidate_to_place(candidate, city_id))
    return pool


def skeleton_prompt(city_name: str, days: Sequence[DayDraft]) -> str:
    plan = [
        {
            "day_number": d.day_number,
            "weekday": d.weekday,
            "slots": [
                {"kind": s.kind, "start": format_hhmm(s.start), "place": s.place.name if s.place else None}
                for s in d.slots
            ],
        }
        for d in days
    ]
    return f"City: {city_name}\nPlan:\n{json.dumps(plan, ensure_ascii=False)}"


def apply_ai_summaries(summarizer: Any, city_name: str, days: Sequence[DayDraft], conditions: List[str]) -> None:
    """Swap deterministic summaries for model-written ones when the call succeeds."""
    try:
        drafted = summarizer.draft_day_skeleton(skeleton_prompt(city_name, days))
    except UpstreamQuotaExhausted:
        raise
    except UpstreamMalformed as exc:
        logger.warning("Day summaries malformed, keeping deterministic ones: %s", exc)
        conditions.append(MALFORMED_RESPONSE)
        return
    except ExtractionUnavailable as exc:
        logger.warning("Day summaries unavailable, keeping deterministic ones: %s", exc)
        conditions.append(EXTRACTION_UNAVAILABLE)
        return

    by_number: Dict[int, str] = {}
    for item in drafted:
        try:
            number = int(item.get("day_number"))
        except (TypeError, ValueError):
            continue
        summary = str(item.get("summary") or "").strip()
        if summary:
            by_number[number] = summary
    for day in days:
        if not day.reduced and day.day_number in by_number:
            day.summary = by_number[day.day_number]


def finalize_day(draft: DayDraft) -> GeneratedDay:
    slots = []
    for idx, slot in enumerate(draft.slots):
        slots.append(
            GeneratedSlot(
                id=f"day{draft.day_number}-slot{idx}",
                kind=slot.kind,
                start=format_hhmm(slot.start),
                end=format_hhmm(slot.end),
                place=PlaceRef.from_place(slot.place) if slot.place else None,
                rationale=slot.rationale,
                alternatives=tuple(PlaceRef.from_place(p) for p in slot.alternatives),
                walking_minutes=slot.walking_minutes,
                product_suggestions=tuple(slot.products),
            )
        )
    return GeneratedDay(
        day_number=draft.day_number,
        date=draft.date,
        weekday=draft.weekday,
        slots=tuple(slots),
        summary=draft.summary,
        reduced=draft.reduced,
    )


def generate_itinerary(
    preferences: Any,
    catalog: Catalog,
    *,
    candidates: Optional[Sequence[CandidatePlace]] = None,
    settings: Optional[SchedulerSettings] = None,
    deadline: Optional[float] = None,
    summarizer: Any = None,
) -> ItineraryResult:
    """Build a day-by-day itinerary for ``preferences``.

    ``deadline`` is an absolute ``time.monotonic()`` value. ``summarizer``, when
    given, must expose ``draft_day_skeleton(prompt)``; its output only replaces
    day summaries and never changes the schedule.
    """
    prefs = _coerce_preferences(preferences)
    settings = settings or SchedulerSettings.from_env()

    city = catalog.get_city(prefs.city_id)
    if city is None:
        raise CityNotFound(f"unknown city {prefs.city_id!r}")

    pool = build_pool(catalog.places_for_city(city.id), candidates or [], city.id)
    products = catalog.products_for_city(city.id)
    zones = catalog.zones_for_city(city.id)
    logger.info(
        "Planning %d day(s) in %s from %d place(s), %d product(s) and %d zone(s)",
        prefs.num_days,
        city.name,
        len(pool),
        len(products),
        len(zones),
    )

    packer = DayPacker(SlotAllocator(prefs, settings, zones=zones), city_name=city.name)
    packed: PackResult = packer.pack(pool, prefs.start_date, prefs.num_days, deadline=deadline)

    conditions: List[str] = []
    for day in packed.days:
        attach_alternatives(day.slots, settings, packed.used)
        attach_products(day.slots, products, settings)

    if summarizer is not None and packed.days:
        if deadline is not None and time.monotonic() >= deadline:
            conditions.append(DEADLINE)
        else:
            apply_ai_summaries(summarizer, city.name, packed.days, conditions)

    if packed.exhausted:
        conditions.append(EXHAUSTED)
    if packed.incomplete and DEADLINE not in conditions:
        conditions.append(DEADLINE)

    days = tuple(finalize_day(d) for d in packed.days)
    meta = ItineraryMeta(
        places_used=len(packed.used),
        produced_days=len(days),
        requested_days=prefs.num_days,
        products_available=len(products),
        incomplete=packed.incomplete,
        degraded=any(c in (EXTRACTION_UNAVAILABLE, MALFORMED_RESPONSE) for c in conditions),
        exhausted=packed.exhausted,
        conditions=tuple(conditions),
    )
    return ItineraryResult(city=city, itinerary=days, meta=meta)
