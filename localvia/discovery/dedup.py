"""Candidate deduplication, filtering and ranking."""
from __future__ import annotations

from typing import Any, Iterable, List

from localvia.schemas import PLACE_TYPES, CandidatePlace
from localvia.tools.geo import distance_between
from localvia.tools.text import normalize_name

_UNION_FIELDS = ("why_people_go", "best_days", "best_times", "provenance")
_FLAG_FIELDS = ("tourist_trap", "overrated", "local_secret", "revisit_friendly")


def _locators(candidate: CandidatePlace) -> List[str]:
    return [key for key in (normalize_name(candidate.zone), normalize_name(candidate.address)) if key]


def _locators_overlap(a: CandidatePlace, b: CandidatePlace, match_missing: bool = True) -> bool:
    left, right = _locators(a), _locators(b)
    if not left or not right:
        # Nothing to compare against; the setting decides whether the name alone suffices.
        return match_missing
    for x in left:
        for y in right:
            if x.startswith(y) or y.startswith(x) or x in y or y in x:
                return True
    return False


def same_place(
    a: CandidatePlace,
    b: CandidatePlace,
    distance_m: float = 75.0,
    match_missing_locators: bool = True,
) -> bool:
    if normalize_name(a.name) != normalize_name(b.name):
        return False
    if a.has_coordinates and b.has_coordinates:
        return (distance_between(a, b) or 0.0) <= distance_m
    return _locators_overlap(a, b, match_missing_locators)


def _union(first: Iterable[Any], second: Iterable[Any]) -> List[Any]:
    out: List[Any] = []
    for item in (*first, *second):
        if item not in out:
            out.append(item)
    return out


def merge_pair(a: CandidatePlace, b: CandidatePlace) -> CandidatePlace:
    """Field-level merge: the more confident record wins each non-null field."""
    primary, secondary = (a, b) if a.confidence >= b.confidence else (b, a)
    merged = primary.model_dump()
    other = secondary.model_dump()
    for key, value in merged.items():
        if key in _UNION_FIELDS:
            merged[key] = _union(value, other[key])
        elif key in _FLAG_FIELDS:
            merged[key] = bool(value or other[key])
        elif value is None or value == "":
            merged[key] = other[key]
    merged["confidence"] = max(a.confidence, b.confidence)
    if merged["latitude"] is None or merged["longitude"] is None:
        merged["latitude"], merged["longitude"] = other["latitude"], other["longitude"]
    return CandidatePlace.model_validate(merged)


def dedupe(
    candidates: Iterable[CandidatePlace],
    distance_m: float = 75.0,
    match_missing_locators: bool = True,
) -> List[CandidatePlace]:
    """Collapse records describing the same physical place. Idempotent.

    With ``match_missing_locators`` off, same-name records only merge when both
    carry coordinates, a zone or an address that agree.
    """
    merged: List[CandidatePlace] = []
    for candidate in candidates:
        for idx, existing in enumerate(merged):
            if same_place(existing, candidate, distance_m, match_missing_locators):
                merged[idx] = merge_pair(existing, candidate)
                break
        else:
            merged.append(candidate)
    return merged


def filter_candidates(candidates: Iterable[CandidatePlace], min_confidence: float = 0.5) -> List[CandidatePlace]:
    return [c for c in candidates if c.confidence >= min_confidence and c.type in PLACE_TYPES]


def rank(candidates: Iterable[CandidatePlace]) -> List[CandidatePlace]:
    return sorted(
        candidates,
        key=lambda c: (-c.confidence, -c.corroboration, normalize_name(c.name), c.name),
    )
