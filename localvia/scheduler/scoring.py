"""Hard eligibility checks and the soft score used to rank eligible places."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Sequence, Set

from localvia.config import SchedulerSettings
from localvia.schemas import FOOD_TYPES, CityZone, Place, TripPreferences
from localvia.scheduler.timing import bucket_matches
from localvia.tools.text import normalize_name

# Interest ids posted by the planning wizard, expanded to place types and tags.
INTEREST_ALIASES: Dict[str, FrozenSet[str]] = {
    "art": frozenset({"attraction", "art", "museum"}),
    "culture": frozenset({"attraction", "experience", "culture"}),
    "history": frozenset({"attraction", "history", "archeology"}),
    "archeology": frozenset({"attraction", "archeology"}),
    "food": frozenset({"restaurant", "eat_drink_well", "food"}),
    "wine": frozenset({"bar", "eat_drink_well", "wine"}),
    "nightlife": frozenset({"bar", "club", "fun", "nightlife"}),
    "views": frozenset({"view", "views"}),
    "nature": frozenset({"view", "outdoor", "nature"}),
    "relax": frozenset({"relax", "view"}),
    "local_life": frozenset({"zone", "something_different", "local_life"}),
    "shopping": frozenset({"zone", "shopping"}),
    "social": frozenset({"meet_people", "fun", "social"}),
    "romantic": frozenset({"bring_someone", "view", "romantic"}),
    "experiences": frozenset({"experience", "something_different"}),
}

# Windows applied only when a place has no explicit best_times.
TYPE_DEFAULT_TIMES: Dict[str, FrozenSet[str]] = {
    "club": frozenset({"night", "late_night"}),
    "bar": frozenset({"afternoon", "aperitivo", "dinner", "night", "late_night"}),
}

ACTIVITY_TYPES = frozenset({"attraction", "bar", "club", "experience", "view", "zone"})

# price_range -> tier on the TripPreferences.budget scale; luxury sits above its top.
PRICE_TIERS: Dict[str, int] = {"budget": 1, "moderate": 2, "expensive": 3, "luxury": 4}


@dataclass
class DayState:
    weekday: str
    physical_budget: int
    mental_budget: int
    physical_used: int = 0
    mental_used: int = 0
    used_today: Set[str] = field(default_factory=set)
    type_counts: Dict[str, int] = field(default_factory=dict)
    last_place: Optional[Place] = None

    def effort_of(self, place: Place, default: int) -> tuple[int, int]:
        return (place.physical_effort or default, place.mental_effort or default)

    def fits_budget(self, place: Place, default: int) -> bool:
        physical, mental = self.effort_of(place, default)
        return (
            self.physical_used + physical <= self.physical_budget
            and self.mental_used + mental <= self.mental_budget
        )

    def consume(self, place: Place, default: int) -> None:
        physical, mental = self.effort_of(place, default)
        self.physical_used += physical
        self.mental_used += mental
        self.used_today.add(place.id)
        self.type_counts[place.type] = self.type_counts.get(place.type, 0) + 1
        self.last_place = place


def place_keys(place: Place) -> Set[str]:
    keys = {place.type, *(normalize_name(tag).replace(" ", "_") for tag in place.why_people_go)}
    if place.indoor_outdoor:
        keys.add(place.indoor_outdoor)
    if place.cuisine_type:
        keys.add(normalize_name(place.cuisine_type).replace(" ", "_"))
    return keys


def is_eligible(
    place: Place,
    *,
    bucket: str,
    state: DayState,
    used: Set[str],
    prefs: TripPreferences,
    settings: SchedulerSettings,
    check_type_window: bool = True,
) -> bool:
    """Hard constraints that do not depend on the clock arithmetic."""
    if place.id in state.used_today:
        return False
    if place.id in used and not place.revisit_friendly:
        return False
    if place.type in prefs.avoid:
        return False
    if place.type == "club" and prefs.party is not None and prefs.party.children > 0:
        return False
    if place.best_days and state.weekday not in place.best_days:
        return False
    if place.best_times:
        if not bucket_matches(bucket, place.best_times):
            return False
    elif check_type_window and place.type in TYPE_DEFAULT_TIMES:
        if bucket not in TYPE_DEFAULT_TIMES[place.type]:
            return False
    return state.fits_budget(place, settings.default_effort)


def interest_match(place: Place, interests: Dict[str, float]) -> float:
    """Share of the traveller's top priority this place satisfies, in [0, 1]."""
    if not interests:
        return 0.0
    keys = place_keys(place)
    top = max(interests.values())
    matched = sum(
        weight
        for interest, weight in interests.items()
        if INTEREST_ALIASES.get(interest, frozenset({interest})) & keys
    )
    return min(1.0, matched / top)


def price_fit(place: Place, budget: Optional[int]) -> Optional[float]:
    """Closeness of a food place's price range to the 1-3 budget, in [0, 1]."""
    if budget is None or place.type not in FOOD_TYPES or place.price_range is None:
        return None
    return 1.0 - abs(PRICE_TIERS[place.price_range] - budget) / 3.0


def cuisine_match(place: Place, cuisines: Sequence[str]) -> bool:
    if not cuisines or not place.cuisine_type:
        return False
    served = f" {normalize_name(place.cuisine_type)} "
    return any(f" {normalize_name(c)} " in served for c in cuisines if normalize_name(c))


def zone_of(place: Place, zones: Optional[Dict[str, CityZone]]) -> Optional[CityZone]:
    if not zones or not place.zone:
        return None
    return zones.get(normalize_name(place.zone))


def soft_score(
    place: Place,
    *,
    state: DayState,
    prefs: TripPreferences,
    settings: SchedulerSettings,
    walk: int,
    bucket: Optional[str] = None,
    zone: Optional[CityZone] = None,
) -> float:
    w = settings.weights
    score = 1.0
    if place.local_secret:
        score += w.local_secret
    if place.tourist_trap:
        score -= w.tourist_trap
    if place.overrated:
        score -= w.overrated
    score += w.interest * interest_match(place, prefs.interests)
    if prefs.locality is not None:
        vibe = place.vibe_score
        if vibe is None and zone is not None and zone.touristy_score is not None:
            # Zones score touristiness, places score localness.
            vibe = 6.0 - zone.touristy_score
        if vibe is not None:
            score += w.vibe * (1.0 - abs(vibe - prefs.locality) / 4.0)
    party = prefs.party
    family = party is not None and (party.children > 0 or party.seniors > 0)
    if prefs.rhythm <= 2 or family:
        penalty = w.crowd if prefs.rhythm <= 2 else w.family_crowd
        if place.crowd_level == "high":
            score -= penalty
        elif place.crowd_level == "medium":
            score -= penalty / 2
    fit = price_fit(place, prefs.budget)
    if fit is not None:
        score += w.price_fit * fit
    if cuisine_match(place, prefs.cuisine_preferences):
        score += w.cuisine
    if zone is not None and zone.best_time and bucket and bucket_matches(bucket, [zone.best_time]):
        score += w.zone_time
    used_of_type = state.type_counts.get(place.type, 0)
    if used_of_type >= 2:
        score -= w.diversity * (used_of_type - 1)
    last = state.last_place
    if last is not None and last.zone and normalize_name(last.zone) == normalize_name(place.zone):
        score += w.same_zone
    score -= w.walking_minute * walk
    return score


def reasons_for(place: Place, prefs: TripPreferences, zone: Optional[CityZone] = None) -> List[str]:
    reasons: List[str] = []
    if place.local_one_liner:
        reasons.append(place.local_one_liner)
    if place.local_secret:
        reasons.append("a local secret")
    matched = [
        interest
        for interest in sorted(prefs.interests, key=lambda k: -prefs.interests[k])
        if INTEREST_ALIASES.get(interest, frozenset({interest})) & place_keys(place)
    ]
    if matched:
        reasons.append(f"fits your interest in {', '.join(matched[:2])}")
    if prefs.locality and place.vibe_score and place.vibe_score >= 4:
        reasons.append("where locals actually go")
    fit = price_fit(place, prefs.budget)
    if fit is not None and fit == 1.0:
        reasons.append("right for your budget")
    if zone is not None and zone.local_tip:
        reasons.append(f"{zone.name} tip: {zone.local_tip}")
    return reasons
