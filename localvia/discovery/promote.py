"""Turning discovered candidates into catalog places."""
from __future__ import annotations

from typing import Iterable, List

from localvia.catalog import Catalog
from localvia.errors import InputInvalid
from localvia.logs import get_logger
from localvia.schemas import CandidatePlace, Place, PlaceAttributes
from localvia.tools.text import normalize_name

logger = get_logger(__name__)


def candidate_attributes(candidate: CandidatePlace) -> PlaceAttributes:
    data = {name: getattr(candidate, name) for name in PlaceAttributes.model_fields}
    if not data.get("local_one_liner") and candidate.description:
        data["local_one_liner"] = candidate.description
    return PlaceAttributes.model_validate(data)


def candidate_to_place(candidate: CandidatePlace, city_id: str) -> Place:
    """Transient place used when scheduling straight from a discovery run."""
    slug = normalize_name(candidate.name).replace(" ", "-")
    attrs = candidate_attributes(candidate)
    return Place(id=f"candidate:{slug}", city_id=city_id, **attrs.model_dump())


def promote_candidates(catalog: Catalog, city_id: str, candidates: Iterable[CandidatePlace]) -> List[Place]:
    """Upsert accepted candidates; repeating a promotion updates, never duplicates."""
    if not city_id or not city_id.strip():
        raise InputInvalid("city id is required")
    promoted: List[Place] = []
    for candidate in candidates:
        promoted.append(catalog.upsert_place(city_id, candidate_attributes(candidate)))
    logger.info("Promoted %d candidate(s) into city %s", len(promoted), city_id)
    return promoted
