from dataclasses import dataclass
from typing import List, Optional, Sequence, Dict, Iterable
from urllib.parse import urlparse
import os
import re

import httpx

from localvia.errors import UpstreamQuotaExhausted, UpstreamRateLimited
from localvia.logs import get_logger
from .text import clean_block

logger = get_logger(__name__)


@dataclass
class SourcePolicy:
    allow_domains: Optional[Sequence[str]] = None
    deny_domains: Optional[Sequence[str]] = None
    max_results: int = 5
    max_per_domain: int = 2
    max_block_chars: int = 2000

    def allowed(self, url: str) -> bool:
        def match_any(patterns: Optional[Sequence[str]]) -> bool:
            return bool(patterns) and any(re.search(p, url) for p in patterns)
        if self.deny_domains and match_any(self.deny_domains):
            return False
        if self.allow_domains:
            return match_any(self.allow_domains)
        return True


@dataclass
class ContentBlock:
    url: str
    title: str
    text: str


class WebSearcher:
    """
    Search+scrape client. Each hit comes back with its page body as markdown so a
    single call yields text the extraction service can read.
    """
    SEARCH_ENDPOINT = "https://api.firecrawl.dev/v1/search"

    def __init__(
        self,
        policy: SourcePolicy,
        *,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        lang: str = "it",
        country: str = "IT",
    ):
        self.policy = policy
        self.api_key = api_key or os.getenv("FIRECRAWL_API_KEY")
        self.endpoint = endpoint or os.getenv("LOCALVIA_SEARCH_ENDPOINT") or self.SEARCH_ENDPOINT
        self.lang = lang
        self.country = country

    async def search(self, query: str, timeout: float = 20.0) -> List[ContentBlock]:
        """Run one search and return policy-filtered, truncated content blocks.

        HTTP 429 maps to ``UpstreamRateLimited`` and 402 to
        ``UpstreamQuotaExhausted``; other transport or status failures propagate
        as ``httpx`` errors and are treated by the dispatcher as a failed query.
        """
        if not self.api_key:
            raise RuntimeError("FIRECRAWL_API_KEY environment variable not configured")

        payload = {
            "query": query,
            "limit": self.policy.max_results * 2,
            "lang": self.lang,
            "country": self.country,
            "scrapeOptions": {"formats": ["markdown"], "onlyMainContent": True},
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(self.endpoint, json=payload, headers=headers)
            if response.status_code == 429:
                raise UpstreamRateLimited(f"search rate limited for query '{query}'")
            if response.status_code == 402:
                raise UpstreamQuotaExhausted("search provider credits exhausted")
            response.raise_for_status()
            data = response.json()

        raw_results: Iterable[Dict] = data.get("data") or data.get("results") or []
        return self._apply_policy(raw_results)

    def _apply_policy(self, results: Iterable[Dict]) -> List[ContentBlock]:
        filtered: List[ContentBlock] = []
        seen_urls: set[str] = set()
        per_domain: Dict[str, int] = {}

        for result in results:
            if not isinstance(result, dict):
                continue
            url = result.get("url") or ""
            if not url or url in seen_urls:
                continue
            if not self.policy.allowed(url):
                continue

            domain = self._domain_for(url)
            if not domain:
                continue
            if per_domain.get(domain, 0) >= self.policy.max_per_domain:
                continue

            body = result.get("markdown") or result.get("content") or result.get("description") or ""
            text = clean_block(body, self.policy.max_block_chars)
            if not text:
                continue
            filtered.append(ContentBlock(url=url, title=result.get("title") or url, text=text))
            seen_urls.add(url)
            per_domain[domain] = per_domain.get(domain, 0) + 1

            if len(filtered) >= self.policy.max_results:
                break

        return filtered

    @staticmethod
    def _domain_for(url: str) -> str:
        try:
            parsed = urlparse(url)
        except ValueError:
            return ""
        return (parsed.netloc or "").lower()
