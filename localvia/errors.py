"""Error taxonomy shared by the discovery and scheduling pipelines."""
from __future__ import annotations


class LocalviaError(Exception):
    """Base class for every typed failure raised by the core."""


class InputInvalid(LocalviaError, ValueError):
    """Raised before any I/O when a request is missing required input."""


class CityNotFound(LocalviaError):
    """Raised when the catalog has no city for the requested reference."""


class ExtractionUnavailable(LocalviaError):
    """The extraction or search provider refused to serve the request."""


class UpstreamRateLimited(ExtractionUnavailable):
    """Provider asked us to slow down. Retryable by the caller after backoff."""


class UpstreamQuotaExhausted(ExtractionUnavailable):
    """Provider credits are gone. Terminal for the calling request."""


class UpstreamMalformed(LocalviaError):
    """Provider answered but the payload violated the expected schema."""


class DeadlineExceeded(LocalviaError):
    """The caller's deadline expired before any usable output was produced."""


# Condition codes reported in result metadata instead of being raised.
PARTIAL_DEGRADED = "partial_degraded"
EXTRACTION_UNAVAILABLE = "extraction_unavailable"
MALFORMED_RESPONSE = "upstream_malformed"
EXHAUSTED = "exhausted"
DEADLINE = "deadline_exceeded"
