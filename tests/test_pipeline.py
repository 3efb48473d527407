import asyncio

import pytest

from localvia.config import DiscoverySettings
from localvia.discovery import pipeline
from localvia.discovery.aggregate import Corpus, build_corpora, parse_records
from localvia.discovery.dispatcher import QueryOutcome
from localvia.discovery.queries import SearchQuery
from localvia.errors import (
    EXTRACTION_UNAVAILABLE,
    MALFORMED_RESPONSE,
    PARTIAL_DEGRADED,
    ExtractionUnavailable,
    InputInvalid,
    UpstreamMalformed,
    UpstreamQuotaExhausted,
)
from localvia.tools.websearch import ContentBlock


def _ten_queries(city_name, region=None, country=None, *, language="it"):
    return [SearchQuery(id=f"q{i}-c{i}", category=f"c{i}", text=f"query {i} {city_name}") for i in range(10)]


class FakeSearcher:
    def __init__(self, failing=()):
        self.failing = set(failing)

    async def search(self, text):
        index = int(text.split()[1])
        if index in self.failing:
            await asyncio.sleep(1.0)
        return [ContentBlock(url=f"https://blog.it/{index}", title=f"Guide {index}", text=f"Bar Del Fico and Osteria {index}")]


class FakeExtractor:
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.corpora = []

    def extract_candidates(self, corpus, location):
        self.corpora.append(corpus)
        if self.error is not None:
            raise self.error
        return list(self.records)


RECORDS = [
    {"name": "Bar Del Fico", "place_type": "bar", "confidence": 0.8, "source_ids": ["S1"]},
    {"name": "bar del fico", "place_type": "bar", "confidence": 0.7, "why_people_go": ["aperitivo"]},
    {"name": "Osteria 7", "place_type": "restaurant", "confidence": 0.6},
    {"name": "Somewhere vague", "place_type": "attraction", "confidence": 0.3},
    {"name": "Disco Ufo", "place_type": "spaceship", "confidence": 0.9},
]


def _settings():
    return DiscoverySettings(max_workers=10, query_timeout=0.05)


def test_six_of_ten_timeouts_still_yield_flagged_candidates(monkeypatch):
    monkeypatch.setattr(pipeline, "build_queries", _ten_queries)
    extractor = FakeExtractor(RECORDS)

    result = asyncio.run(
        pipeline.discover(
            "roma",
            "Roma",
            "Lazio",
            searcher=FakeSearcher(failing=range(6)),
            extractor=extractor,
            settings=_settings(),
        )
    )

    assert result.degraded is True
    assert PARTIAL_DEGRADED in result.conditions
    assert result.succeeded_queries == 4
    assert result.failed_queries == 6
    assert [c.name for c in result.candidates] == ["Bar Del Fico", "Osteria 7"]
    bar = result.candidates[0]
    assert "aperitivo" in bar.why_people_go
    # Cited source plus every block that mentions the bar.
    assert bar.corroboration == 4
    assert "[S1] Guide 6" in extractor.corpora[0]


def test_healthy_run_is_not_degraded(monkeypatch):
    monkeypatch.setattr(pipeline, "build_queries", _ten_queries)
    result = asyncio.run(
        pipeline.discover("roma", "Roma", searcher=FakeSearcher(), extractor=FakeExtractor(RECORDS), settings=_settings())
    )
    assert result.degraded is False
    assert result.conditions == []
    assert result.sources_count == 10


def test_malformed_extraction_counts_as_zero_results(monkeypatch):
    monkeypatch.setattr(pipeline, "build_queries", _ten_queries)
    extractor = FakeExtractor(error=UpstreamMalformed("bad payload"))

    result = asyncio.run(
        pipeline.discover("roma", "Roma", searcher=FakeSearcher(), extractor=extractor, settings=_settings())
    )

    assert result.candidates == []
    assert MALFORMED_RESPONSE in result.conditions


def test_unavailable_extraction_degrades(monkeypatch):
    monkeypatch.setattr(pipeline, "build_queries", _ten_queries)
    extractor = FakeExtractor(error=ExtractionUnavailable("down"))

    result = asyncio.run(
        pipeline.discover("roma", "Roma", searcher=FakeSearcher(), extractor=extractor, settings=_settings())
    )

    assert result.degraded is True
    assert EXTRACTION_UNAVAILABLE in result.conditions


def test_quota_exhaustion_is_fatal(monkeypatch):
    monkeypatch.setattr(pipeline, "build_queries", _ten_queries)
    extractor = FakeExtractor(error=UpstreamQuotaExhausted("credits"))

    with pytest.raises(UpstreamQuotaExhausted):
        asyncio.run(
            pipeline.discover("roma", "Roma", searcher=FakeSearcher(), extractor=extractor, settings=_settings())
        )


def test_all_queries_failing_returns_flagged_empty_result(monkeypatch):
    monkeypatch.setattr(pipeline, "build_queries", _ten_queries)
    extractor = FakeExtractor(RECORDS)

    result = asyncio.run(
        pipeline.discover(
            "roma", "Roma", searcher=FakeSearcher(failing=range(10)), extractor=extractor, settings=_settings()
        )
    )

    assert result.candidates == []
    assert result.degraded is True
    assert extractor.corpora == []


def test_blank_inputs_rejected_before_io():
    class ExplodingSearcher:
        async def search(self, text):
            raise AssertionError("no I/O expected")

    with pytest.raises(InputInvalid):
        asyncio.run(pipeline.discover("", "Roma", searcher=ExplodingSearcher(), settings=_settings()))
    with pytest.raises(InputInvalid):
        asyncio.run(pipeline.discover("roma", " ", searcher=ExplodingSearcher(), settings=_settings()))


def test_corpora_respect_size_budget():
    query = SearchQuery(id="q0-a", category="a", text="a")
    blocks = [ContentBlock(url=f"https://x.it/{i}", title=f"T{i}", text="y" * 900) for i in range(10)]

    corpora = build_corpora([QueryOutcome(query=query, blocks=blocks)], max_chars=2000, max_corpora=2)

    assert len(corpora) == 2
    assert all(len(c.text) <= 2000 for c in corpora)
    assert list(corpora[0].sources) == ["S1", "S2"]


def test_provenance_matches_whole_names_only():
    outcomes = [
        QueryOutcome(
            query=SearchQuery(id="q0-art", category="art", text="art"),
            blocks=[ContentBlock(url="https://x.it/a", title="Chiese", text="Il barocco leccese al tramonto")],
        ),
        QueryOutcome(
            query=SearchQuery(id="q1-bars", category="bars", text="bars"),
            blocks=[ContentBlock(url="https://x.it/b", title="Aperitivo", text="Il Bar, in piazza, apre alle 18")],
        ),
    ]
    corpus = build_corpora(outcomes, max_chars=2000, max_corpora=1)[0]

    [candidate] = parse_records([{"name": "Bar", "place_type": "bar", "confidence": 0.8}], corpus)

    assert candidate.provenance == ["q1-bars"]


def test_records_with_unknown_time_labels_are_rejected_not_unconstrained():
    records = [
        {"name": "Enoteca", "place_type": "bar", "confidence": 0.8, "best_times": ["brunch"]},
        {"name": "Belvedere", "place_type": "view", "confidence": 0.8, "best_times": ["Evening"]},
    ]

    candidates = parse_records(records, Corpus())

    assert [(c.name, c.best_times) for c in candidates] == [("Belvedere", ["evening"])]
