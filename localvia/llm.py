# localvia/llm.py
import json
import time
from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, OpenAI, RateLimitError
from pydantic import ValidationError

from localvia.config import ExtractionSettings
from localvia.errors import (
    ExtractionUnavailable,
    UpstreamMalformed,
    UpstreamQuotaExhausted,
    UpstreamRateLimited,
)
from localvia.logs import get_logger
from localvia.schemas import PLACE_TYPES, TIMES_OF_DAY, PlacePrefill

logger = get_logger(__name__)

EXTRACT_SYSTEM = """You are a local travel expert. Read the web content provided and extract
specific, real places located in {location}.

Rules:
- Only REAL and SPECIFIC places, never generic categories.
- Skip obvious international chains.
- Prefer authentic places appreciated by locals.
- At most 15 quality suggestions.
- Keep the place name exactly as written locally.
- source_ids lists the [S#] blocks that mention the place.
- confidence is 0.0-1.0; above 0.7 only with concrete evidence.
"""

EXTRACT_USER = """Analyse this web content and extract the places:

{corpus}
"""

SKELETON_SYSTEM = """You are a local itinerary planner. Given a fixed, already scheduled day
by day plan, write one short summary per day (<=160 characters) in a warm, practical
tone. Do not add places that are not listed.
"""

CANDIDATE_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "extract_places",
        "description": "Extract suggested places from web content",
        "parameters": {
            "type": "object",
            "properties": {
                "places": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "name": {"type": "string"},
                            "place_type": {"type": "string", "enum": list(PLACE_TYPES)},
                            "address": {"type": "string"},
                            "zone": {"type": "string"},
                            "latitude": {"type": "number"},
                            "longitude": {"type": "number"},
                            "description": {"type": "string"},
                            "why_people_go": {"type": "array", "items": {"type": "string"}},
                            "best_times": {
                                "type": "array",
                                "items": {"type": "string", "enum": list(TIMES_OF_DAY)},
                            },
                            "source_ids": {"type": "array", "items": {"type": "string"}},
                            "confidence": {"type": "number"},
                        },
                        "required": ["name", "place_type", "confidence"],
                    },
                }
            },
            "required": ["places"],
        },
    },
}

DAY_PLAN_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "create_day_plan",
        "description": "Return a structured skeleton with one entry per day",
        "parameters": {
            "type": "object",
            "properties": {
                "days": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "day_number": {"type": "number"},
                            "summary": {"type": "string"},
                            "slot_kinds": {
                                "type": "array",
                                "items": {
                                    "type": "string",
                                    "enum": ["activity", "meal", "break", "transfer"],
                                },
                            },
                        },
                        "required": ["day_number", "summary"],
                    },
                }
            },
            "required": ["days"],
        },
    },
}

PREFILL_SYSTEM = """You are a local expert who knows every corner of {city}. You help local
contributors fill in a curated place database. Answer only through the
prefill_place_data tool. Leave a field null when you are not sure of it.
"""

PREFILL_USER = """Look up "{name}", a {type_label} in {location}.
Provide: address, neighbourhood, cuisine (restaurants only), price range,
indoor/outdoor, best times to visit, social level 1-5 (1=quiet, 5=very social),
touristy vs local 1-5 (1=very touristy, 5=locals only), one local warning and
one catchy one-liner (each at most 100 characters).
"""

# Human labels for the prompt; unknown types are passed through verbatim.
PLACE_TYPE_LABELS: Dict[str, str] = {
    "attraction": "attraction or museum",
    "restaurant": "restaurant",
    "bar": "bar",
    "club": "club",
    "experience": "experience",
    "view": "viewpoint",
    "zone": "neighbourhood",
}

PREFILL_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "prefill_place_data",
        "description": "Pre-fill the attributes of a place",
        "parameters": {
            "type": "object",
            "properties": {
                "address": {"type": "string", "nullable": True},
                "zone": {"type": "string", "nullable": True},
                "cuisine_type": {"type": "string", "nullable": True},
                "price_range": {
                    "type": "string",
                    "enum": ["budget", "moderate", "expensive", "luxury"],
                    "nullable": True,
                },
                "indoor_outdoor": {"type": "string", "enum": ["indoor", "outdoor", "both"], "nullable": True},
                "best_times": {
                    "type": "array",
                    "items": {"type": "string", "enum": list(TIMES_OF_DAY)},
                },
                "social_level": {"type": "number", "minimum": 1, "maximum": 5, "nullable": True},
                "vibe_touristy_to_local": {"type": "number", "minimum": 1, "maximum": 5, "nullable": True},
                "local_warning": {"type": "string", "maxLength": 100, "nullable": True},
                "suggested_one_liner": {"type": "string", "maxLength": 100, "nullable": True},
            },
            "required": ["best_times"],
            "additionalProperties": False,
        },
    },
}


class ExtractionClient:
    """Thin wrapper over an OpenAI-compatible chat endpoint using tool calls.

    Provider failures are translated into the core's error taxonomy: throttling
    becomes ``UpstreamRateLimited`` (retried a fixed number of times first),
    exhausted credits become ``UpstreamQuotaExhausted`` and any schema
    violation becomes ``UpstreamMalformed``.
    """

    def __init__(
        self,
        settings: Optional[ExtractionSettings] = None,
        *,
        client: Any = None,
        attempts: int = 2,
        backoff: float = 1.5,
    ):
        self.settings = settings or ExtractionSettings.from_env()
        self.attempts = max(1, attempts)
        self.backoff = backoff
        if client is not None:
            self._client = client
        elif self.settings.api_key:
            self._client = OpenAI(api_key=self.settings.api_key, base_url=self.settings.base_url)
        else:
            logger.warning("OPENAI_API_KEY not set; extraction calls will be unavailable")
            self._client = None

    @property
    def configured(self) -> bool:
        return self._client is not None

    def extract_candidates(self, corpus: str, location: str) -> List[Dict[str, Any]]:
        """Return raw candidate records for one corpus. Validation happens upstream."""
        args = self._call_tool(
            CANDIDATE_TOOL,
            system=EXTRACT_SYSTEM.format(location=location),
            user=EXTRACT_USER.format(corpus=corpus),
        )
        places = args.get("places")
        if not isinstance(places, list):
            raise UpstreamMalformed("extract_places payload has no 'places' array")
        records = [item for item in places if isinstance(item, dict)]
        logger.info("Extraction returned %d candidate record(s) for %s", len(records), location)
        return records

    def draft_day_skeleton(self, prompt: str) -> List[Dict[str, Any]]:
        args = self._call_tool(DAY_PLAN_TOOL, system=SKELETON_SYSTEM, user=prompt)
        days = args.get("days")
        if not isinstance(days, list):
            raise UpstreamMalformed("create_day_plan payload has no 'days' array")
        return [day for day in days if isinstance(day, dict)]

    def prefill_place(
        self,
        place_name: str,
        place_type: Optional[str],
        city_name: str,
        region: Optional[str] = None,
    ) -> PlacePrefill:
        """Suggest attribute values for a place a contributor is about to add."""
        location = f"{city_name} ({region})" if region else city_name
        type_label = PLACE_TYPE_LABELS.get(place_type or "", place_type or "place")
        logger.info("Prefilling %s (%s) in %s", place_name, place_type, location)
        args = self._call_tool(
            PREFILL_TOOL,
            system=PREFILL_SYSTEM.format(city=city_name),
            user=PREFILL_USER.format(name=place_name, type_label=type_label, location=location),
        )
        try:
            return PlacePrefill.model_validate(args)
        except ValidationError as exc:
            raise UpstreamMalformed(f"prefill_place_data payload invalid: {exc.error_count()} error(s)") from exc

    def _call_tool(self, tool: Dict[str, Any], *, system: str, user: str) -> Dict[str, Any]:
        if self._client is None:
            raise ExtractionUnavailable("extraction client not configured")

        name = tool["function"]["name"]
        for attempt in range(1, self.attempts + 1):
            try:
                logger.info("Invoking model %s tool %s (attempt %d)", self.settings.model, name, attempt)
                resp = self._client.chat.completions.create(
                    model=self.settings.model,
                    messages=[
                        {"role": "system", "content": system},
                        {"role": "user", "content": user},
                    ],
                    temperature=self.settings.temperature,
                    tools=[tool],
                    tool_choice={"type": "function", "function": {"name": name}},
                )
                return _tool_arguments(resp, name)
            except RateLimitError as exc:
                if _is_quota_error(exc):
                    raise UpstreamQuotaExhausted("extraction provider quota exhausted") from exc
                if attempt >= self.attempts:
                    raise UpstreamRateLimited("extraction provider rate limited") from exc
                delay = self.backoff * attempt
                logger.warning("Extraction rate limited; retrying in %.1fs", delay)
                time.sleep(delay)
            except APIStatusError as exc:
                if exc.status_code == 402:
                    raise UpstreamQuotaExhausted("extraction provider credits exhausted") from exc
                raise ExtractionUnavailable(f"extraction provider returned {exc.status_code}") from exc
            except APIConnectionError as exc:
                raise ExtractionUnavailable("extraction provider unreachable") from exc
        raise UpstreamRateLimited("extraction provider rate limited")


def _is_quota_error(exc: RateLimitError) -> bool:
    code = getattr(exc, "code", None)
    if code == "insufficient_quota":
        return True
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        inner = body.get("error") if isinstance(body.get("error"), dict) else body
        return inner.get("code") == "insufficient_quota"
    return False


def _tool_arguments(resp: Any, name: str) -> Dict[str, Any]:
    try:
        call = resp.choices[0].message.tool_calls[0]
    except (AttributeError, IndexError, TypeError) as exc:
        raise UpstreamMalformed(f"response carries no {name} tool call") from exc
    if getattr(call.function, "name", None) != name:
        raise UpstreamMalformed(f"unexpected tool call {call.function.name!r}")
    try:
        parsed = json.loads(call.function.arguments or "")
    except (TypeError, ValueError) as exc:
        raise UpstreamMalformed(f"{name} arguments are not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise UpstreamMalformed(f"{name} arguments are not an object")
    return parsed
