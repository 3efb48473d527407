from __future__ import annotations

import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PlaceType = Literal["attraction", "restaurant", "bar", "club", "experience", "view", "zone"]
SlotKind = Literal["activity", "meal", "break", "transfer"]
Weekday = Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]
# "evening" is a coarse label spanning the aperitivo and dinner buckets.
TimeOfDay = Literal["morning", "lunch", "afternoon", "aperitivo", "evening", "dinner", "night", "late_night"]
CrowdLevel = Literal["low", "medium", "high"]
PriceRange = Literal["budget", "moderate", "expensive", "luxury"]
IndoorOutdoor = Literal["indoor", "outdoor", "both"]
StayBucket = Literal["quick", "short", "medium", "long", "half_day"]

PLACE_TYPES: Tuple[str, ...] = get_args(PlaceType)
WEEKDAYS: Tuple[str, ...] = get_args(Weekday)
TIMES_OF_DAY: Tuple[str, ...] = get_args(TimeOfDay)
FOOD_TYPES = frozenset({"restaurant", "bar"})

_FULL_WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

STAY_MINUTES: Dict[str, int] = {
    "quick": 30,
    "short": 60,
    "medium": 90,
    "long": 120,
    "half_day": 180,
}

# Fallback stay when neither a bucket nor an explicit duration is known.
TYPE_STAY: Dict[str, str] = {
    "attraction": "medium",
    "restaurant": "medium",
    "bar": "short",
    "club": "long",
    "experience": "long",
    "view": "quick",
    "zone": "medium",
}


def _known_tokens(values: Any, allowed: Tuple[str, ...]) -> List[str]:
    """Lowercase and dedupe; an unknown token is an error, never silently dropped.

    Dropping tokens could turn a constrained list into an empty one, which the
    scheduler reads as "any time" / "any day".
    """
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    out: List[str] = []
    for value in values:
        token = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        if not token:
            continue
        if token in _FULL_WEEKDAYS and token[:3] in allowed:
            token = token[:3]
        if token not in allowed:
            raise ValueError(f"unknown value {value!r}; expected one of {', '.join(allowed)}")
        if token not in out:
            out.append(token)
    return out


# ------- Place attribute model -------
class PlaceAttributes(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(..., min_length=1)
    type: PlaceType = Field(..., alias="place_type")
    zone: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    suggested_stay: Optional[StayBucket] = None
    duration_minutes: Optional[int] = Field(None, gt=0)
    physical_effort: Optional[int] = Field(None, ge=1, le=5)
    mental_effort: Optional[int] = Field(None, ge=1, le=5)
    best_days: List[Weekday] = Field(default_factory=list)
    best_times: List[TimeOfDay] = Field(default_factory=list)
    periods_to_avoid: Optional[str] = None
    tourist_trap: bool = False
    overrated: bool = False
    local_secret: bool = False
    why_people_go: List[str] = Field(default_factory=list)
    crowd_level: Optional[CrowdLevel] = None
    vibe_score: Optional[float] = Field(None, ge=1, le=5)
    price_range: Optional[PriceRange] = None
    indoor_outdoor: Optional[IndoorOutdoor] = None
    cuisine_type: Optional[str] = None
    local_one_liner: Optional[str] = None
    local_warning: Optional[str] = None
    revisit_friendly: bool = False

    @field_validator("best_days", mode="before")
    @classmethod
    def _day_tokens(cls, value: Any) -> List[str]:
        return _known_tokens(value, WEEKDAYS)

    @field_validator("best_times", mode="before")
    @classmethod
    def _time_tokens(cls, value: Any) -> List[str]:
        return _known_tokens(value, TIMES_OF_DAY)

    @field_validator("why_people_go", mode="before")
    @classmethod
    def _clean_tags(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        tags: List[str] = []
        for item in value:
            tag = str(item).strip()
            if tag and tag not in tags:
                tags.append(tag)
        return tags

    @model_validator(mode="after")
    def _type_specific_fields(self) -> "PlaceAttributes":
        if self.type not in FOOD_TYPES:
            self.cuisine_type = None
        if (self.latitude is None) != (self.longitude is None):
            self.latitude = None
            self.longitude = None
        return self

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def stay_minutes(self) -> int:
        if self.duration_minutes:
            return self.duration_minutes
        bucket = self.suggested_stay or TYPE_STAY.get(self.type, "medium")
        return STAY_MINUTES[bucket]


class Place(PlaceAttributes):
    id: str
    city_id: str


class CandidatePlace(PlaceAttributes):
    confidence: float = Field(..., ge=0.0, le=1.0)
    provenance: List[str] = Field(default_factory=list)
    description: Optional[str] = None

    @property
    def corroboration(self) -> int:
        return len(set(self.provenance))


class City(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    region: Optional[str] = None
    country: str = "Italia"
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    tags: List[str] = Field(default_factory=list)


class Product(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    city_id: str
    title: str
    short_pitch: Optional[str] = None
    price_cents: int = 0
    duration_minutes: Optional[int] = None
    product_type: str
    preferred_time_buckets: List[TimeOfDay] = Field(default_factory=list)
    zone: Optional[str] = None

    @field_validator("preferred_time_buckets", mode="before")
    @classmethod
    def _bucket_tokens(cls, value: Any) -> List[str]:
        return _known_tokens(value, TIMES_OF_DAY)


class CityZone(BaseModel):
    """A curated neighbourhood; touristy_score runs 1 (locals only) to 5 (tourist hub)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    city_id: str
    name: str = Field(..., min_length=1)
    vibe_primary: Optional[str] = None
    best_time: Optional[TimeOfDay] = None
    touristy_score: Optional[float] = Field(None, ge=1, le=5)
    local_tip: Optional[str] = None

    @field_validator("best_time", mode="before")
    @classmethod
    def _best_time_token(cls, value: Any) -> Optional[str]:
        tokens = _known_tokens(value, TIMES_OF_DAY)
        return tokens[0] if tokens else None


class PlacePrefill(BaseModel):
    """Suggested attribute values for a place a contributor is about to add."""

    model_config = ConfigDict(extra="ignore")

    address: Optional[str] = None
    zone: Optional[str] = None
    cuisine_type: Optional[str] = None
    price_range: Optional[PriceRange] = None
    indoor_outdoor: Optional[IndoorOutdoor] = None
    best_times: List[TimeOfDay] = Field(default_factory=list)
    social_level: Optional[float] = Field(None, ge=1, le=5)
    vibe_touristy_to_local: Optional[float] = Field(None, ge=1, le=5)
    local_warning: Optional[str] = None
    suggested_one_liner: Optional[str] = None

    @field_validator("best_times", mode="before")
    @classmethod
    def _time_tokens(cls, value: Any) -> List[str]:
        return _known_tokens(value, TIMES_OF_DAY)

    @field_validator("local_warning", "suggested_one_liner", mode="before")
    @classmethod
    def _clip(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()[:100]
            return value or None
        return value


# ------- Request models -------
class Party(BaseModel):
    adults: int = 2
    children: int = 0
    seniors: int = 0


class TripPreferences(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    city_id: str = Field(..., min_length=1)
    start_date: datetime.date
    num_days: int = Field(1, ge=1, le=30)
    rhythm: int = Field(3, ge=1, le=5)
    interests: Dict[str, float] = Field(default_factory=dict)
    locality: Optional[int] = Field(None, ge=1, le=5)
    party: Optional[Party] = None
    budget: Optional[int] = Field(None, ge=1, le=3)
    cuisine_preferences: List[str] = Field(default_factory=list, alias="cuisinePreferences")
    start_time: Literal["early", "normal", "late"] = "normal"
    lunch_style: Literal["quick", "long"] = "quick"
    avoid: List[PlaceType] = Field(default_factory=list)

    @field_validator("city_id", mode="before")
    @classmethod
    def _strip_city(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("interests", mode="before")
    @classmethod
    def _interest_list(cls, value: Any) -> Any:
        # The planning wizard posts a flat list of interest ids.
        if isinstance(value, (list, tuple)):
            return {str(item): 1.0 for item in value if item}
        return value or {}

    @field_validator("interests")
    @classmethod
    def _non_negative(cls, value: Dict[str, float]) -> Dict[str, float]:
        return {key: float(weight) for key, weight in value.items() if weight and weight > 0}

    @field_validator("cuisine_preferences", mode="before")
    @classmethod
    def _cuisines(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        out: List[str] = []
        for item in value:
            cuisine = str(item).strip().lower()
            if cuisine and cuisine not in out:
                out.append(cuisine)
        return out


class DiscoverRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    city_id: str = Field(..., alias="cityId")
    city_name: str = Field(..., alias="cityName")
    region: Optional[str] = None
    country: Optional[str] = None
    deadline_seconds: Optional[float] = Field(None, gt=0)


class ItineraryRequest(BaseModel):
    preferences: TripPreferences
    candidates: List[CandidatePlace] = Field(default_factory=list)
    use_ai_summaries: bool = False
    deadline_seconds: Optional[float] = Field(None, gt=0)


class PromoteRequest(BaseModel):
    candidates: List[CandidatePlace]


class PrefillRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    place_name: str = Field(..., min_length=1, alias="placeName")
    place_type: Optional[str] = Field(None, alias="placeType")
    city_name: str = Field(..., min_length=1, alias="cityName")
    region: Optional[str] = Field(None, alias="cityRegion")

    @field_validator("place_name", "city_name", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


# ------- Response models -------
class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class PlaceRef(_Frozen):
    id: str
    name: str
    type: PlaceType
    zone: Optional[str] = None
    address: Optional[str] = None
    local_one_liner: Optional[str] = None
    duration_minutes: Optional[int] = None
    price_range: Optional[PriceRange] = None
    cuisine_type: Optional[str] = None
    indoor_outdoor: Optional[IndoorOutdoor] = None
    crowd_level: Optional[CrowdLevel] = None
    vibe_score: Optional[float] = None

    @classmethod
    def from_place(cls, place: Place) -> "PlaceRef":
        return cls(
            id=place.id,
            name=place.name,
            type=place.type,
            zone=place.zone,
            address=place.address,
            local_one_liner=place.local_one_liner,
            duration_minutes=place.stay_minutes,
            price_range=place.price_range,
            cuisine_type=place.cuisine_type,
            indoor_outdoor=place.indoor_outdoor,
            crowd_level=place.crowd_level,
            vibe_score=place.vibe_score,
        )


class ProductSuggestion(_Frozen):
    id: str
    title: str
    short_pitch: Optional[str] = None
    price_cents: int = 0
    duration_minutes: Optional[int] = None
    product_type: str
    relevance: float = 0.0


class GeneratedSlot(_Frozen):
    id: str
    kind: SlotKind
    start: str
    end: str
    place: Optional[PlaceRef] = None
    rationale: str = ""
    alternatives: Tuple[PlaceRef, ...] = ()
    walking_minutes: Optional[int] = None
    product_suggestions: Tuple[ProductSuggestion, ...] = ()

    @model_validator(mode="after")
    def _ordered(self) -> "GeneratedSlot":
        # HH:MM strings compare chronologically.
        if self.end <= self.start:
            raise ValueError(f"slot {self.id} ends ({self.end}) before it starts ({self.start})")
        return self


class GeneratedDay(_Frozen):
    day_number: int
    date: datetime.date
    weekday: Weekday
    slots: Tuple[GeneratedSlot, ...]
    summary: str
    reduced: bool = False

    @model_validator(mode="after")
    def _non_overlapping(self) -> "GeneratedDay":
        if not self.slots:
            raise ValueError(f"day {self.day_number} has no slots")
        for prev, nxt in zip(self.slots, self.slots[1:]):
            if nxt.start < prev.end:
                raise ValueError(f"slots {prev.id} and {nxt.id} overlap")
        return self


class ItineraryMeta(_Frozen):
    places_used: int
    produced_days: int
    requested_days: int
    products_available: int = 0
    incomplete: bool = False
    degraded: bool = False
    exhausted: bool = False
    conditions: Tuple[str, ...] = ()


class ItineraryResult(_Frozen):
    city: City
    itinerary: Tuple[GeneratedDay, ...]
    meta: ItineraryMeta


class DiscoveryResult(BaseModel):
    city_id: str
    candidates: List[CandidatePlace] = Field(default_factory=list)
    degraded: bool = False
    conditions: List[str] = Field(default_factory=list)
    succeeded_queries: int = 0
    failed_queries: int = 0
    sources_count: int = 0
