"""Place catalog boundary.

The core only needs five operations from storage: look up a city, list its
places, add-on products and curated zones, and upsert a promoted place.
``InMemoryCatalog`` backs local runs and tests; ``MongoCatalog`` is the
durable store.
"""
from __future__ import annotations

import os
import uuid
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError
from pymongo import MongoClient, ReturnDocument

from localvia.logs import get_logger
from localvia.schemas import City, CityZone, Place, PlaceAttributes, Product
from localvia.tools.text import normalize_name

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class Catalog(Protocol):
    def get_city(self, city_id: str) -> Optional[City]: ...

    def places_for_city(self, city_id: str) -> List[Place]: ...

    def products_for_city(self, city_id: str) -> List[Product]: ...

    def zones_for_city(self, city_id: str) -> List[CityZone]: ...

    def upsert_place(self, city_id: str, attrs: PlaceAttributes) -> Place: ...


def _validated(model: Type[ModelT], docs: Iterable[Dict[str, Any]]) -> List[ModelT]:
    """Validate stored documents, skipping (and logging) rows that no longer fit the model."""
    out: List[ModelT] = []
    for doc in docs:
        try:
            out.append(model.model_validate(doc))
        except ValidationError as exc:
            logger.warning("Skipping invalid %s document %s: %s", model.__name__, doc.get("id"), exc)
    return out


def _place_fields(attrs: PlaceAttributes) -> Dict[str, Any]:
    return {name: getattr(attrs, name) for name in PlaceAttributes.model_fields}


class InMemoryCatalog:
    def __init__(
        self,
        cities: Optional[List[City]] = None,
        places: Optional[List[Place]] = None,
        products: Optional[List[Product]] = None,
        zones: Optional[List[CityZone]] = None,
    ):
        self._cities: Dict[str, City] = {c.id: c for c in cities or []}
        self._places: Dict[Tuple[str, str], Place] = {}
        for place in places or []:
            self._places[(place.city_id, normalize_name(place.name))] = place
        self._products: List[Product] = list(products or [])
        self._zones: List[CityZone] = list(zones or [])

    def get_city(self, city_id: str) -> Optional[City]:
        return self._cities.get(city_id)

    def places_for_city(self, city_id: str) -> List[Place]:
        return [p for (cid, _), p in self._places.items() if cid == city_id]

    def products_for_city(self, city_id: str) -> List[Product]:
        return [p for p in self._products if p.city_id == city_id]

    def zones_for_city(self, city_id: str) -> List[CityZone]:
        return [z for z in self._zones if z.city_id == city_id]

    def upsert_place(self, city_id: str, attrs: PlaceAttributes) -> Place:
        key = (city_id, normalize_name(attrs.name))
        existing = self._places.get(key)
        place_id = existing.id if existing else str(uuid.uuid4())
        place = Place(id=place_id, city_id=city_id, **_place_fields(attrs))
        self._places[key] = place
        return place


class MongoCatalog:
    """Catalog stored in four collections: ``cities``, ``places``, ``products``
    and ``city_zones``.

    Places carry a ``name_key`` (normalized name) so that promotion upserts are
    idempotent on ``(city_id, name_key)``; a unique index enforces it.
    """

    def __init__(self, database: Any):
        self.db = database
        self.db["places"].create_index([("city_id", 1), ("name_key", 1)], unique=True)

    @classmethod
    def from_env(cls) -> "MongoCatalog":
        uri = os.getenv("MONGODB_URI")
        if not uri:
            raise RuntimeError("MONGODB_URI environment variable not configured")
        client = MongoClient(uri, serverSelectionTimeoutMS=3000)
        return cls(client[os.getenv("MONGODB_DB", "localvia")])

    def get_city(self, city_id: str) -> Optional[City]:
        doc = self.db["cities"].find_one({"id": city_id}) or self.db["cities"].find_one({"slug": city_id})
        return City.model_validate(doc) if doc else None

    def places_for_city(self, city_id: str) -> List[Place]:
        docs = self.db["places"].find({"city_id": city_id, "status": "approved"})
        return _validated(Place, docs)

    def products_for_city(self, city_id: str) -> List[Product]:
        docs = self.db["products"].find({"city_id": city_id, "status": "approved"})
        return _validated(Product, docs)

    def zones_for_city(self, city_id: str) -> List[CityZone]:
        docs = self.db["city_zones"].find({"city_id": city_id, "status": "approved"})
        return _validated(CityZone, docs)

    def upsert_place(self, city_id: str, attrs: PlaceAttributes) -> Place:
        name_key = normalize_name(attrs.name)
        fields = _place_fields(attrs)
        fields["best_days"] = list(fields["best_days"])
        fields["best_times"] = list(fields["best_times"])
        doc = self.db["places"].find_one_and_update(
            {"city_id": city_id, "name_key": name_key},
            {
                "$set": fields,
                "$setOnInsert": {"id": str(uuid.uuid4()), "status": "pending_review"},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        logger.info("Upserted place %s for city %s", attrs.name, city_id)
        return Place.model_validate(doc)
