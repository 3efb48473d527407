"""Tunable settings for discovery and scheduling.

Every knob has a default that produces sensible itineraries for a mid-size
Italian city. Operators override them through environment variables (or a
``.env`` file) without touching code.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class DiscoverySettings:
    max_workers: int = 4
    query_timeout: float = 20.0
    rate_limit_attempts: int = 2
    rate_limit_backoff: float = 1.5
    results_per_query: int = 5
    max_block_chars: int = 2000
    max_corpus_chars: int = 20000
    max_corpora: int = 2
    min_success_ratio: float = 0.5
    min_confidence: float = 0.5
    dedup_distance_m: float = 75.0
    # Two same-name candidates where either side lacks coordinates and an
    # address are treated as the same place.
    dedup_match_missing_locators: bool = True
    language: str = "it"

    @classmethod
    def from_env(cls) -> "DiscoverySettings":
        return cls(
            max_workers=max(1, _env_int("LOCALVIA_MAX_WORKERS", cls.max_workers)),
            query_timeout=_env_float("LOCALVIA_QUERY_TIMEOUT", cls.query_timeout),
            min_confidence=_env_float("LOCALVIA_MIN_CONFIDENCE", cls.min_confidence),
            dedup_match_missing_locators=_env_bool(
                "LOCALVIA_DEDUP_MATCH_MISSING_LOCATORS", cls.dedup_match_missing_locators
            ),
            language=os.getenv("LOCALVIA_QUERY_LANGUAGE", cls.language),
        )


@dataclass
class ScoringWeights:
    local_secret: float = 1.5
    tourist_trap: float = 2.0
    overrated: float = 1.0
    interest: float = 2.0
    vibe: float = 1.0
    crowd: float = 1.0
    diversity: float = 1.5
    same_zone: float = 0.5
    price_fit: float = 1.0
    cuisine: float = 1.0
    zone_time: float = 0.5
    family_crowd: float = 0.5
    walking_minute: float = 0.02


@dataclass
class SchedulerSettings:
    day_start: str = "09:00"
    day_end: str = "23:00"
    start_offsets: Dict[str, str] = field(
        default_factory=lambda: {"early": "08:30", "normal": "09:30", "late": "11:00"}
    )
    lunch_window: Tuple[str, str] = ("12:30", "14:30")
    dinner_window: Tuple[str, str] = ("19:30", "21:30")
    lunch_minutes: Dict[str, int] = field(default_factory=lambda: {"quick": 45, "long": 90})
    dinner_minutes: int = 90
    activities_per_rhythm: Dict[int, int] = field(
        default_factory=lambda: {1: 2, 2: 2, 3: 4, 4: 5, 5: 5}
    )
    evening_per_rhythm: Dict[int, int] = field(default_factory=lambda: {3: 1, 4: 1, 5: 2})
    rest_break_max_rhythm: int = 2
    rest_break_minutes: int = 60
    break_minutes: int = 60
    min_break_minutes: int = 15
    effort_base: int = 4
    effort_step: int = 2
    default_effort: int = 2
    walking_kmh: float = 4.5
    detour_factor: float = 1.3
    default_walk_minutes: int = 20
    same_zone_walk_minutes: int = 10
    transfer_threshold_minutes: int = 25
    max_alternatives: int = 2
    max_products: int = 3
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    @classmethod
    def from_env(cls) -> "SchedulerSettings":
        settings = cls()
        settings.effort_base = _env_int("LOCALVIA_EFFORT_BASE", settings.effort_base)
        settings.effort_step = _env_int("LOCALVIA_EFFORT_STEP", settings.effort_step)
        settings.day_start = os.getenv("LOCALVIA_DAY_START", settings.day_start)
        settings.day_end = os.getenv("LOCALVIA_DAY_END", settings.day_end)
        return settings

    def effort_budget(self, rhythm: int) -> int:
        """Linear rhythm → per-day effort ceiling, applied to physical and mental alike."""
        rhythm = min(5, max(1, int(rhythm)))
        return self.effort_base + self.effort_step * (rhythm - 1)

    def max_activities(self, rhythm: int) -> int:
        rhythm = min(5, max(1, int(rhythm)))
        return self.activities_per_rhythm.get(rhythm, 3)

    def evening_activities(self, rhythm: int) -> int:
        rhythm = min(5, max(1, int(rhythm)))
        return self.evening_per_rhythm.get(rhythm, 0)


@dataclass
class ExtractionSettings:
    api_key: str | None = None
    base_url: str | None = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.2

    @classmethod
    def from_env(cls) -> "ExtractionSettings":
        return cls(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("LOCALVIA_LLM_BASE_URL") or None,
            model=os.getenv("LOCALVIA_LLM_MODEL", cls.model),
        )
