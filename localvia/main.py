from __future__ import annotations

import os
import time
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from localvia.catalog import Catalog, InMemoryCatalog, MongoCatalog
from localvia.discovery.pipeline import discover
from localvia.discovery.promote import promote_candidates
from localvia.errors import (
    CityNotFound,
    DeadlineExceeded,
    ExtractionUnavailable,
    InputInvalid,
    LocalviaError,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
)
from localvia.llm import ExtractionClient
from localvia.logs import get_logger
from localvia.planner import generate_itinerary
from localvia.schemas import DiscoverRequest, ItineraryRequest, PrefillRequest, PromoteRequest

logger = get_logger(__name__)

app = FastAPI(title="Localvia Planning API")

# Operators can narrow this via LOCALVIA_ALLOWED_ORIGINS (comma separated).
raw_origins = os.getenv("LOCALVIA_ALLOWED_ORIGINS") or "*"
allowed_origins = [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
if not allowed_origins:
    allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_catalog: Optional[Catalog] = None


def get_catalog() -> Catalog:
    """Mongo-backed catalog when MONGODB_URI is set, otherwise an empty in-memory one."""
    global _catalog
    if _catalog is None:
        if os.getenv("MONGODB_URI"):
            _catalog = MongoCatalog.from_env()
        else:
            logger.warning("MONGODB_URI not set; serving an empty in-memory catalog")
            _catalog = InMemoryCatalog()
    return _catalog


def get_extractor() -> ExtractionClient:
    return ExtractionClient()


def _deadline(seconds: Optional[float]) -> Optional[float]:
    return time.monotonic() + seconds if seconds else None


def _to_http(exc: LocalviaError) -> HTTPException:
    if isinstance(exc, InputInvalid):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, CityNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, UpstreamQuotaExhausted):
        return HTTPException(status_code=402, detail="Upstream credits exhausted, please retry later.")
    if isinstance(exc, UpstreamRateLimited):
        return HTTPException(status_code=429, detail="Upstream rate limit reached, please retry shortly.")
    if isinstance(exc, DeadlineExceeded):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, ExtractionUnavailable):
        return HTTPException(status_code=503, detail=str(exc))
    logger.error("Unmapped planning error", exc_info=exc)
    return HTTPException(status_code=502, detail=str(exc))


def _validate(model: Any, payload: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc


@app.post("/api/discover")
async def api_discover(payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
    """Run a discovery pass for one city and return ranked candidates."""
    req: DiscoverRequest = _validate(DiscoverRequest, payload)
    try:
        result = await discover(
            req.city_id,
            req.city_name,
            req.region,
            req.country,
            deadline=_deadline(req.deadline_seconds),
        )
    except LocalviaError as exc:
        raise _to_http(exc) from exc
    return result.model_dump(mode="json")


@app.post("/api/itinerary")
def api_itinerary(
    payload: Dict[str, Any] = Body(...),
    catalog: Catalog = Depends(get_catalog),
) -> Dict[str, Any]:
    req: ItineraryRequest = _validate(ItineraryRequest, payload)
    summarizer = ExtractionClient() if req.use_ai_summaries else None
    try:
        result = generate_itinerary(
            req.preferences,
            catalog,
            candidates=req.candidates,
            deadline=_deadline(req.deadline_seconds),
            summarizer=summarizer,
        )
    except LocalviaError as exc:
        raise _to_http(exc) from exc
    return result.model_dump(mode="json")


@app.post("/api/cities/{city_id}/promote")
def api_promote(
    city_id: str,
    payload: Dict[str, Any] = Body(...),
    catalog: Catalog = Depends(get_catalog),
) -> Dict[str, Any]:
    req: PromoteRequest = _validate(PromoteRequest, payload)
    if catalog.get_city(city_id) is None:
        raise HTTPException(status_code=404, detail=f"unknown city {city_id!r}")
    try:
        places = promote_candidates(catalog, city_id, req.candidates)
    except LocalviaError as exc:
        raise _to_http(exc) from exc
    promoted: List[Dict[str, Any]] = [p.model_dump(mode="json") for p in places]
    return {"city_id": city_id, "promoted": promoted}


@app.post("/api/places/prefill")
def api_prefill(
    payload: Dict[str, Any] = Body(...),
    extractor: ExtractionClient = Depends(get_extractor),
) -> Dict[str, Any]:
    """Model-suggested attributes for a place a contributor is adding by hand."""
    req: PrefillRequest = _validate(PrefillRequest, payload)
    try:
        prefill = extractor.prefill_place(req.place_name, req.place_type, req.city_name, req.region)
    except LocalviaError as exc:
        raise _to_http(exc) from exc
    return prefill.model_dump(mode="json")
