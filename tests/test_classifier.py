import asyncio
import json
from datetime import date, timedelta

import pytest

from promoto.services.classifier import (
    Classifier,
    extract_json_object,
    normalize_classification,
)

TODAY = date(2026, 3, 1)


def classify(provider, content="Dziś jazz wieczorem!"):
    return asyncio.run(Classifier(provider=provider).classify(content, today=TODAY))


def test_extracts_first_object_from_chatter():
    text = 'Sure! Here it is: {"category": "LU_ONS", "x": {"y": 1}} and {"category": "BRAND"}'
    assert extract_json_object(text) == {"category": "LU_ONS", "x": {"y": 1}}


def test_extract_skips_broken_braces():
    assert extract_json_object('{oops} then {"a": 1}') == {"a": 1}


def test_extract_without_object_raises():
    with pytest.raises(ValueError):
        extract_json_object("no json here")


def test_unknown_category_becomes_info():
    result = normalize_classification({"category": "EV_MARS"}, TODAY)
    assert result.category == "INFO"


def test_event_fields_dropped_for_non_event_category():
    result = normalize_classification(
        {
            "category": "PR_ONS_JED",
            "event_identifier": "jazz-night",
            "event_date": "2026-03-10",
            "promotion_end_date": "2026-03-05",
        },
        TODAY,
    )
    assert result.event_identifier is None
    assert result.event_date is None
    assert result.promotion_end_date == date(2026, 3, 5)


def test_end_date_clamped_to_event_date():
    result = normalize_classification(
        {
            "category": "EV_ALL",
            "event_identifier": "Jazz-Night-2026",
            "event_date": "2026-03-10",
            "promotion_end_date": "2026-04-01",
        },
        TODAY,
    )
    assert result.event_identifier == "jazz-night-2026"
    assert result.event_date == date(2026, 3, 10)
    assert result.promotion_end_date == date(2026, 3, 10)


def test_end_date_clamped_to_sixty_days():
    result = normalize_classification(
        {"category": "PR_ONS_CYK", "promotion_end_date": "2027-01-01"}, TODAY
    )
    assert result.promotion_end_date == TODAY + timedelta(days=60)


def test_missing_end_date_defaults_to_thirty_days():
    result = normalize_classification({"category": "BRAND"}, TODAY)
    assert result.promotion_end_date == TODAY + timedelta(days=30)


def test_classify_reads_wrapped_answer(make_provider):
    answer = json.dumps({"category": "LU_DEL", "promotion_end_date": "2026-03-20"})
    result = classify(make_provider(f"```json\n{answer}\n```"))
    assert result.category == "LU_DEL"
    assert result.promotion_end_date == date(2026, 3, 20)


def test_provider_failure_yields_default(make_provider):
    result = classify(make_provider(error=RuntimeError("rate limited")))
    assert result.category == "INFO"
    assert result.event_identifier is None
    assert result.promotion_end_date == TODAY + timedelta(days=30)


def test_garbage_answer_yields_default(make_provider):
    result = classify(make_provider("I think this is about lunch."))
    assert result.category == "INFO"


def test_prompt_carries_date_limits(make_provider):
    provider = make_provider('{"category": "INFO"}')
    classify(provider, content="Nowe menu")
    assert "2026-03-01" in provider.prompts[0]
    assert "2026-04-30" in provider.prompts[0]
    assert "Nowe menu" in provider.prompts[0]
