"""Clock arithmetic, time-of-day buckets and walking estimates."""
from __future__ import annotations

import datetime
import math
from typing import Iterable, Optional

from localvia.config import SchedulerSettings
from localvia.schemas import WEEKDAYS, Place
from localvia.tools.geo import distance_between
from localvia.tools.text import normalize_name

# (start minute, bucket); the first bucket covers the small hours.
_BUCKETS = (
    (0, "late_night"),
    (5 * 60, "morning"),
    (12 * 60, "lunch"),
    (15 * 60, "afternoon"),
    (18 * 60, "aperitivo"),
    (19 * 60 + 30, "dinner"),
    (22 * 60, "night"),
)

# Coarse labels that span several slot buckets.
BUCKET_SPANS = {
    "evening": frozenset({"aperitivo", "dinner"}),
}


def parse_hhmm(value: str) -> int:
    hours, minutes = value.strip().split(":")
    return int(hours) * 60 + int(minutes)


def format_hhmm(minutes: int) -> str:
    minutes = max(0, min(minutes, 24 * 60 - 1))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_bucket(minutes: int) -> str:
    minutes %= 24 * 60
    bucket = "late_night"
    for start, name in _BUCKETS:
        if minutes >= start:
            bucket = name
    return bucket


def bucket_matches(bucket: str, wanted: Iterable[str]) -> bool:
    """True when a slot in ``bucket`` satisfies any of the ``wanted`` time labels."""
    for label in wanted:
        if label == bucket or bucket in BUCKET_SPANS.get(label, ()):
            return True
    return False


def weekday_of(day: datetime.date) -> str:
    return WEEKDAYS[day.weekday()]


def walking_minutes(a: Optional[Place], b: Place, settings: SchedulerSettings) -> int:
    """Straight-line walk between two places, or a zone-aware default."""
    if a is None:
        return 0
    if a.id == b.id:
        return 0
    metres = distance_between(a, b)
    if metres is None:
        if a.zone and normalize_name(a.zone) == normalize_name(b.zone):
            return settings.same_zone_walk_minutes
        return settings.default_walk_minutes
    km = metres / 1000.0 * settings.detour_factor
    return int(math.ceil(km / settings.walking_kmh * 60))
