"""Bounded-concurrency fan-out of search queries."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from localvia.config import DiscoverySettings
from localvia.discovery.queries import SearchQuery
from localvia.errors import UpstreamQuotaExhausted, UpstreamRateLimited
from localvia.logs import get_logger
from localvia.tools.websearch import ContentBlock

logger = get_logger(__name__)


@dataclass
class QueryOutcome:
    query: SearchQuery
    blocks: List[ContentBlock]


@dataclass
class DispatchReport:
    total: int
    succeeded: List[QueryOutcome] = field(default_factory=list)
    failed: List[Tuple[SearchQuery, str]] = field(default_factory=list)
    min_success_ratio: float = 0.5

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def degraded(self) -> bool:
        if self.total == 0:
            return False
        return len(self.succeeded) < self.min_success_ratio * self.total


async def dispatch_queries(
    searcher: Any,
    queries: Sequence[SearchQuery],
    settings: Optional[DiscoverySettings] = None,
    *,
    deadline: Optional[float] = None,
) -> DispatchReport:
    """Run every query against ``searcher.search`` under a fixed worker budget.

    ``deadline`` is an absolute ``time.monotonic()`` value. When it passes,
    in-flight queries are cancelled and counted as failures; whatever already
    finished is returned. Only quota exhaustion aborts the batch.
    """
    settings = settings or DiscoverySettings()
    report = DispatchReport(total=len(queries), min_success_ratio=settings.min_success_ratio)
    if not queries:
        return report

    semaphore = asyncio.Semaphore(settings.max_workers)

    async def _run(query: SearchQuery) -> List[ContentBlock]:
        async with semaphore:
            attempt = 1
            while True:
                try:
                    return await asyncio.wait_for(
                        searcher.search(query.text), timeout=settings.query_timeout
                    )
                except UpstreamRateLimited:
                    if attempt >= settings.rate_limit_attempts:
                        raise
                    await asyncio.sleep(settings.rate_limit_backoff * attempt)
                    attempt += 1

    tasks: Dict[asyncio.Task, SearchQuery] = {asyncio.create_task(_run(q)): q for q in queries}
    pending = set(tasks)
    outcomes: Dict[str, QueryOutcome] = {}

    try:
        while pending:
            timeout = None if deadline is None else deadline - time.monotonic()
            if timeout is not None and timeout <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                break
            for task in done:
                query = tasks[task]
                exc = task.exception()
                if isinstance(exc, UpstreamQuotaExhausted):
                    raise exc
                if exc is not None:
                    reason = "timeout" if isinstance(exc, asyncio.TimeoutError) else type(exc).__name__
                    logger.warning("Search failed for query '%s': %s", query.text, reason)
                    report.failed.append((query, reason))
                    continue
                blocks = [
                    ContentBlock(url=b.url, title=b.title, text=b.text[: settings.max_block_chars])
                    for b in (task.result() or [])
                    if b.text
                ]
                if not blocks:
                    logger.info("Search query '%s' returned no content", query.text)
                    report.failed.append((query, "empty"))
                    continue
                logger.info("Search query '%s' produced %d block(s)", query.text, len(blocks))
                outcomes[query.id] = QueryOutcome(query=query, blocks=blocks)
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    for task in pending:
        query = tasks[task]
        logger.warning("Search query '%s' cancelled at deadline", query.text)
        report.failed.append((query, "deadline"))

    # Keep dispatch order so corpora are stable run to run.
    report.succeeded = [outcomes[q.id] for q in queries if q.id in outcomes]
    logger.info(
        "Dispatched %d queries: %d succeeded, %d failed%s",
        report.total,
        len(report.succeeded),
        report.failure_count,
        " (degraded)" if report.degraded else "",
    )
    return report
