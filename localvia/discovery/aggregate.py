"""Corpus assembly and the sequential extraction step."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from itertools import zip_longest
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from localvia.discovery.dispatcher import QueryOutcome
from localvia.errors import (
    DEADLINE,
    EXTRACTION_UNAVAILABLE,
    MALFORMED_RESPONSE,
    ExtractionUnavailable,
    UpstreamMalformed,
    UpstreamQuotaExhausted,
)
from localvia.logs import get_logger
from localvia.schemas import CandidatePlace
from localvia.tools.text import normalize_name

logger = get_logger(__name__)


@dataclass
class Corpus:
    text: str = ""
    sources: Dict[str, str] = field(default_factory=dict)  # source id -> query id
    bodies: Dict[str, str] = field(default_factory=dict)  # source id -> normalized text


def build_corpora(
    outcomes: Sequence[QueryOutcome],
    *,
    max_chars: int = 20000,
    max_corpora: int = 2,
) -> List[Corpus]:
    """Group blocks into at most ``max_corpora`` corpora of bounded size.

    Blocks are interleaved across queries so that a size cut keeps every
    category represented instead of dropping the last queries wholesale.
    """
    interleaved: List[Tuple[str, Any]] = []
    for row in zip_longest(*[[(o.query.id, b) for b in o.blocks] for o in outcomes]):
        interleaved.extend(item for item in row if item is not None)

    corpora: List[Corpus] = []
    current = Corpus()
    dropped = 0
    for idx, (query_id, block) in enumerate(interleaved, 1):
        source_id = f"S{idx}"
        chunk = f"[{source_id}] {block.title}\n{block.text}\n\n"
        if current.text and len(current.text) + len(chunk) > max_chars:
            corpora.append(current)
            current = Corpus()
        if len(corpora) >= max_corpora:
            dropped += 1
            continue
        current.text += chunk
        current.sources[source_id] = query_id
        current.bodies[source_id] = normalize_name(f"{block.title} {block.text}")
    if current.text and len(corpora) < max_corpora:
        corpora.append(current)

    if dropped:
        logger.info("Dropped %d block(s) beyond the corpus budget", dropped)
    return corpora


def _provenance(record: Dict[str, Any], corpus: Corpus) -> List[str]:
    cited = record.get("source_ids") or []
    if isinstance(cited, str):
        cited = [cited]
    found: List[str] = []
    for source_id in cited:
        query_id = corpus.sources.get(str(source_id).strip("[] "))
        if query_id and query_id not in found:
            found.append(query_id)
    key = normalize_name(record.get("name"))
    if key:
        # Bodies are normalized to single-spaced words, so padding gives whole-word matches.
        needle = f" {key} "
        for source_id, body in corpus.bodies.items():
            query_id = corpus.sources[source_id]
            if needle in f" {body} " and query_id not in found:
                found.append(query_id)
    return found


def parse_records(records: Sequence[Dict[str, Any]], corpus: Corpus) -> List[CandidatePlace]:
    """Validate raw extraction records; unknown types or bad values are dropped."""
    candidates: List[CandidatePlace] = []
    rejected = 0
    for record in records:
        payload = {k: v for k, v in record.items() if k != "source_ids"}
        payload["provenance"] = _provenance(record, corpus)
        try:
            candidates.append(CandidatePlace.model_validate(payload))
        except ValidationError:
            rejected += 1
    if rejected:
        logger.info("Rejected %d extraction record(s) failing validation", rejected)
    return candidates


async def extract_candidates(
    extractor: Any,
    corpora: Sequence[Corpus],
    location: str,
    *,
    deadline: Optional[float] = None,
) -> Tuple[List[CandidatePlace], List[str]]:
    """Run the extraction service over each corpus, one call at a time.

    Returns the parsed candidates together with the degradation conditions
    met along the way. Quota exhaustion is the only upstream failure raised.
    """
    candidates: List[CandidatePlace] = []
    conditions: List[str] = []
    for corpus in corpora:
        timeout = None if deadline is None else deadline - time.monotonic()
        if timeout is not None and timeout <= 0:
            conditions.append(DEADLINE)
            break
        try:
            records = await asyncio.wait_for(
                asyncio.to_thread(extractor.extract_candidates, corpus.text, location),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Extraction for %s did not finish before the deadline", location)
            conditions.append(DEADLINE)
            break
        except UpstreamMalformed:
            logger.warning("Extraction returned a malformed payload; treating as empty", exc_info=True)
            conditions.append(MALFORMED_RESPONSE)
            continue
        except UpstreamQuotaExhausted:
            raise
        except ExtractionUnavailable as exc:
            logger.warning("Extraction unavailable for %s: %s", location, exc)
            conditions.append(EXTRACTION_UNAVAILABLE)
            break
        candidates.extend(parse_records(records, corpus))
    return candidates, conditions
