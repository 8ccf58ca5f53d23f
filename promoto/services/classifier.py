"""Promoto — Post Classifier.

Asks an LLM which marketing category a restaurant post belongs to and, for
events, which occasion and date it is about. The classifier never fails the
pipeline: any provider or parsing problem yields a safe INFO result.
"""

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from promoto.ai.base_provider import AIProvider
from promoto.ai.registry import select_provider
from promoto.core.categories import CATEGORIES, FALLBACK_CATEGORY, VALID_CATEGORY_CODES
from promoto.core.logging import get_logger
from promoto.models.schemas import Classification

logger = get_logger("services.classifier")

MAX_PROMOTION_DAYS = 60
DEFAULT_PROMOTION_DAYS = 30


def _category_lines() -> str:
    return "\n".join(f"   - {code} ({d.name})" for code, d in CATEGORIES.items())


SYSTEM_PROMPT = f"""You classify restaurant social media posts for paid promotion.

From the post, extract:
1. category - exactly one of:
{_category_lines()}

2. event_date - date of the event (YYYY-MM-DD), only for EV_* categories, else null

3. event_identifier - short unique slug of the event (e.g. "valentines-2026",
   "jazz-night-kowalski-2026"), only for EV_* categories, else null

4. promotion_end_date - suggested last day of promotion (YYYY-MM-DD):
   - events: the event date
   - one-off promotions: the promotion end date, at most 14 days
   - recurring promotions: at most 60 days
   - products / brand / info: at most 30 days

Respond ONLY with a JSON object with the fields category, event_date,
event_identifier, promotion_end_date. No other text."""


def _today() -> date:
    return datetime.now(timezone.utc).date()


def extract_json_object(text: str) -> Dict[str, Any]:
    """Return the first JSON object embedded in free text."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
            if isinstance(obj, dict):
                return obj
        except json.JSONDecodeError:
            pass
        start = text.find("{", start + 1)
    raise ValueError("No JSON object found in LLM response")


def _parse_date(value: Any) -> Optional[date]:
    if not value or not isinstance(value, str):
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def default_classification(today: date | None = None) -> Classification:
    today = today or _today()
    return Classification(
        category=FALLBACK_CATEGORY,
        promotion_end_date=today + timedelta(days=DEFAULT_PROMOTION_DAYS),
    )


def normalize_classification(raw: Dict[str, Any], today: date | None = None) -> Classification:
    """Validate a raw LLM answer and apply the date policy."""
    today = today or _today()
    max_end = today + timedelta(days=MAX_PROMOTION_DAYS)

    category = raw.get("category")
    if category not in VALID_CATEGORY_CODES:
        logger.warning(f"Invalid category: {category!r}, defaulting to {FALLBACK_CATEGORY}")
        category = FALLBACK_CATEGORY

    event_date: Optional[date] = None
    event_identifier: Optional[str] = None
    if CATEGORIES[category].is_event_type:
        event_date = _parse_date(raw.get("event_date"))
        identifier = raw.get("event_identifier")
        if isinstance(identifier, str) and identifier.strip():
            event_identifier = identifier.strip().lower()

    end = _parse_date(raw.get("promotion_end_date"))
    if end is None:
        end = today + timedelta(days=DEFAULT_PROMOTION_DAYS)
    if event_date and end > event_date:
        end = event_date
    if end > max_end:
        end = max_end

    return Classification(
        category=category,
        event_identifier=event_identifier,
        event_date=event_date,
        promotion_end_date=end,
    )


class Classifier:
    """LLM-backed post classifier."""

    def __init__(self, provider: AIProvider | None = None):
        self._provider = provider

    def _get_provider(self) -> AIProvider:
        if self._provider is None:
            _, self._provider = select_provider("auto")
        return self._provider

    async def classify(self, content: str, today: date | None = None) -> Classification:
        today = today or _today()
        max_end = today + timedelta(days=MAX_PROMOTION_DAYS)
        user_prompt = (
            f"Today's date: {today.isoformat()}\n"
            f"Latest allowed promotion end date: {max_end.isoformat()}\n\n"
            f"Post to classify:\n{content}"
        )

        try:
            raw = await self._get_provider().complete(SYSTEM_PROMPT, user_prompt)
            logger.debug(f"LLM response: {raw[:300]}")
            result = normalize_classification(extract_json_object(raw), today)
        except Exception as e:
            logger.error(f"Failed to classify post, using defaults: {e}")
            return default_classification(today)

        logger.info(
            f"Classified post as {result.category}"
            + (f" (event {result.event_identifier})" if result.event_identifier else "")
        )
        return result
