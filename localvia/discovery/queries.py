"""Category-diverse search queries for a city."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple

from localvia.errors import InputInvalid

# (category, template) pairs; order is the dispatch order.
_TEMPLATES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "it": (
        ("attractions", "migliori attrazioni {location}"),
        ("food", "ristoranti consigliati {location}"),
        ("bars", "bar aperitivo {location}"),
        ("nightlife", "vita notturna club {location}"),
        ("views", "punti panoramici {location}"),
        ("experiences", "esperienze uniche {location}"),
        ("neighborhoods", "quartieri zone {location}"),
    ),
    "en": (
        ("attractions", "best attractions in {location}"),
        ("food", "recommended restaurants in {location}"),
        ("bars", "aperitivo and cocktail bars in {location}"),
        ("nightlife", "nightlife and clubs in {location}"),
        ("views", "best viewpoints in {location}"),
        ("experiences", "unique local experiences in {location}"),
        ("neighborhoods", "neighborhoods to explore in {location}"),
    ),
}

DEFAULT_COUNTRY = "Italia"


@dataclass(frozen=True)
class SearchQuery:
    id: str
    category: str
    text: str


def full_location(city_name: str, region: str | None = None, country: str | None = None) -> str:
    parts = [city_name.strip()]
    if region and region.strip():
        parts.append(region.strip())
    parts.append((country or DEFAULT_COUNTRY).strip() or DEFAULT_COUNTRY)
    return ", ".join(parts)


def build_queries(
    city_name: str,
    region: str | None = None,
    country: str | None = None,
    *,
    language: str = "it",
) -> List[SearchQuery]:
    """Return the ordered query set for one city.

    Every query carries the full "City, Region, Country" string so that
    same-named towns elsewhere rank lower at the search provider.
    """
    if not city_name or not city_name.strip():
        raise InputInvalid("city name is required")

    location = full_location(city_name, region, country)
    templates = _TEMPLATES.get(language, _TEMPLATES["it"])
    return [
        SearchQuery(id=f"q{idx}-{category}", category=category, text=template.format(location=location))
        for idx, (category, template) in enumerate(templates)
    ]
