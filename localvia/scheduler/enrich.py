"""Attach alternatives and product suggestions to already-timed slots."""
from __future__ import annotations

from typing import AbstractSet, List, Sequence

from localvia.config import SchedulerSettings
from localvia.schemas import Place, Product, ProductSuggestion
from localvia.scheduler.allocator import SlotDraft
from localvia.scheduler.timing import bucket_matches, time_bucket
from localvia.tools.text import normalize_name

# place type -> (product types, bonus)
PRODUCT_AFFINITY = {
    "attraction": (frozenset({"guided_tour", "ticket"}), 3),
    "restaurant": (frozenset({"tasting", "dining_experience"}), 3),
    "view": (frozenset({"photo_experience"}), 2),
    "experience": (frozenset({"workshop"}), 2),
}

BOUND_KINDS = frozenset({"activity", "meal"})


def attach_alternatives(
    slots: Sequence[SlotDraft], settings: SchedulerSettings, scheduled: AbstractSet[str] = frozenset()
) -> None:
    """Offer the runners-up of each bound slot, skipping places scheduled elsewhere.

    ``scheduled`` holds the ids placed anywhere in the itinerary; call this once
    packing is finished so later days count too.
    """
    for slot in slots:
        if slot.kind not in BOUND_KINDS or slot.place is None:
            continue
        # eligible is already in soft-score order
        picks = [
            place
            for _, place in slot.eligible
            if place.id != slot.place.id and (place.id not in scheduled or place.revisit_friendly)
        ]
        slot.alternatives = picks[: settings.max_alternatives]


def product_relevance(place: Place, product: Product, start: int) -> float:
    score = 0.0
    if bucket_matches(time_bucket(start), product.preferred_time_buckets):
        score += 2
    affinity = PRODUCT_AFFINITY.get(place.type)
    if affinity and product.product_type in affinity[0]:
        score += affinity[1]
    if product.zone and place.zone and normalize_name(product.zone) == normalize_name(place.zone):
        score += 1
    if place.type == "attraction" and score == 0:
        score = 1
    return score


def suggestions_for(
    slot: SlotDraft, products: Sequence[Product], settings: SchedulerSettings
) -> List[ProductSuggestion]:
    if slot.place is None or not products:
        return []
    scored = []
    for product in products:
        relevance = product_relevance(slot.place, product, slot.start)
        if relevance > 0:
            scored.append((relevance, product))
    scored.sort(key=lambda item: (-item[0], item[1].title, item[1].id))
    return [
        ProductSuggestion(
            id=product.id,
            title=product.title,
            short_pitch=product.short_pitch,
            price_cents=product.price_cents,
            duration_minutes=product.duration_minutes,
            product_type=product.product_type,
            relevance=relevance,
        )
        for relevance, product in scored[: settings.max_products]
    ]


def attach_products(slots: Sequence[SlotDraft], products: Sequence[Product], settings: SchedulerSettings) -> int:
    """Fill ``slot.products`` in place; returns how many slots got at least one."""
    matched = 0
    for slot in slots:
        if slot.kind not in BOUND_KINDS:
            continue
        slot.products = suggestions_for(slot, products, settings)
        if slot.products:
            matched += 1
    return matched
