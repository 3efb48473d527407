"""Discovery entry point: queries → dispatch → extraction → dedup → ranking."""
from __future__ import annotations

import time
from typing import Any, Optional

from localvia.config import DiscoverySettings
from localvia.discovery.aggregate import build_corpora, extract_candidates
from localvia.discovery.dedup import dedupe, filter_candidates, rank
from localvia.discovery.dispatcher import dispatch_queries
from localvia.discovery.queries import build_queries, full_location
from localvia.errors import DEADLINE, EXTRACTION_UNAVAILABLE, PARTIAL_DEGRADED, InputInvalid
from localvia.llm import ExtractionClient
from localvia.logs import get_logger
from localvia.schemas import DiscoveryResult
from localvia.tools.websearch import SourcePolicy, WebSearcher

logger = get_logger(__name__)


def _default_searcher(settings: DiscoverySettings) -> Any:
    policy = SourcePolicy(
        max_results=settings.results_per_query,
        max_block_chars=settings.max_block_chars,
    )
    return WebSearcher(policy, lang=settings.language)


def _default_extractor(settings: DiscoverySettings) -> Any:
    return ExtractionClient(
        attempts=settings.rate_limit_attempts,
        backoff=settings.rate_limit_backoff,
    )


async def discover(
    city_id: str,
    city_name: str,
    region: Optional[str] = None,
    country: Optional[str] = None,
    *,
    searcher: Any = None,
    extractor: Any = None,
    settings: Optional[DiscoverySettings] = None,
    deadline: Optional[float] = None,
) -> DiscoveryResult:
    """Discover ranked candidate places for one city.

    ``deadline`` is an absolute ``time.monotonic()`` value shared by every
    stage. Partial failures surface as ``degraded=True`` plus condition codes;
    ``InputInvalid`` and ``UpstreamQuotaExhausted`` are raised.
    """
    if not city_id or not str(city_id).strip():
        raise InputInvalid("city id is required")
    settings = settings or DiscoverySettings.from_env()
    queries = build_queries(city_name, region, country, language=settings.language)
    location = full_location(city_name, region, country)
    logger.info("Starting discovery for %s with %d queries", location, len(queries))

    searcher = searcher or _default_searcher(settings)
    report = await dispatch_queries(searcher, queries, settings, deadline=deadline)

    result = DiscoveryResult(
        city_id=city_id,
        succeeded_queries=len(report.succeeded),
        failed_queries=report.failure_count,
        sources_count=sum(len(o.blocks) for o in report.succeeded),
    )
    if report.degraded or not report.succeeded:
        result.degraded = True
        result.conditions.append(PARTIAL_DEGRADED)
    if not report.succeeded:
        logger.warning("No search query succeeded for %s", location)
        return result
    if deadline is not None and time.monotonic() >= deadline:
        result.degraded = True
        result.conditions.append(DEADLINE)
        return result

    corpora = build_corpora(
        report.succeeded,
        max_chars=settings.max_corpus_chars,
        max_corpora=settings.max_corpora,
    )
    extractor = extractor or _default_extractor(settings)
    raw, conditions = await extract_candidates(extractor, corpora, location, deadline=deadline)
    for condition in conditions:
        if condition not in result.conditions:
            result.conditions.append(condition)
    if EXTRACTION_UNAVAILABLE in conditions or DEADLINE in conditions:
        result.degraded = True

    merged = dedupe(raw, settings.dedup_distance_m, settings.dedup_match_missing_locators)
    kept = filter_candidates(merged, settings.min_confidence)
    result.candidates = rank(kept)
    logger.info(
        "Discovery for %s: %d raw, %d merged, %d kept%s",
        location,
        len(raw),
        len(merged),
        len(kept),
        " (degraded)" if result.degraded else "",
    )
    return result
