"""
Analyzer output parsing and field normalization.
"""

import pytest

from helpers.ai_helpers import normalize_analysis, parse_json_response
from helpers.errors import AnalyzerMalformedResponse, UnsupportedCategory


# ============ parse_json_response ============


def test_parses_plain_json():
    assert parse_json_response('{"category": "idea"}') == {"category": "idea"}


def test_strips_code_fences():
    raw = 'Here you go:\n```json\n{"category": "mood", "intensity": 7}\n```'

    assert parse_json_response(raw) == {"category": "mood", "intensity": 7}


def test_repairs_truncated_output():
    raw = '{"category": "task", "title": "Call the dentist", "tags": ["health", "call'

    parsed = parse_json_response(raw)

    assert parsed["category"] == "task"
    assert parsed["tags"] == ["health", "call"]


def test_repairs_raw_newlines_inside_strings():
    raw = '{"category": "idea", "content": "line one\nline two"}'

    assert parse_json_response(raw)["content"] == "line one\nline two"


@pytest.mark.parametrize("raw", ["", "   ", "sorry, I cannot help with that", "{]"])
def test_unparseable_reply_is_malformed(raw):
    with pytest.raises(AnalyzerMalformedResponse):
        parse_json_response(raw)


# ============ normalize_analysis ============


def test_full_task_passes_through():
    fields = normalize_analysis(
        {
            "category": "task",
            "title": "Buy milk",
            "time": "08:00",
            "date": "2026-10-20",
            "location": "Corner shop",
            "reminders": ["07:30"],
            "status": "pending",
            "completed": False,
        }
    )

    assert fields.category == "task"
    assert fields.title == "Buy milk"
    assert fields.reminders == ["07:30"]
    assert fields.status == "pending"
    assert fields.completed is False


@pytest.mark.parametrize("category", ["todo", "note", "", None, 3, "Task"])
def test_unsupported_category_is_fatal(category):
    with pytest.raises(UnsupportedCategory) as exc:
        normalize_analysis({"category": category, "title": "x"})

    assert exc.value.category == category


def test_missing_category_is_fatal():
    with pytest.raises(UnsupportedCategory):
        normalize_analysis({"title": "no category"})


def test_type_key_is_accepted_for_category():
    assert normalize_analysis({"type": "idea"}).category == "idea"


def test_category_key_wins_over_type():
    assert normalize_analysis({"category": "mood", "type": "task"}).category == "mood"


@pytest.mark.parametrize("raw", [["task"], "task", 42, None])
def test_non_object_is_malformed(raw):
    with pytest.raises(AnalyzerMalformedResponse):
        normalize_analysis(raw)


def test_non_string_scalars_become_none():
    fields = normalize_analysis(
        {"category": "idea", "title": 12, "summary": ["a"], "time": {"h": 8}, "emotion_type": False}
    )

    assert fields.title is None
    assert fields.summary is None
    assert fields.time is None
    assert fields.emotion_type is None


def test_lists_keep_only_non_blank_strings_and_at_most_five():
    fields = normalize_analysis(
        {
            "category": "idea",
            "tags": [" a ", "", 3, "b", None, "c", "d", "e", "f"],
            "keywords": "not a list",
        }
    )

    assert fields.tags == ["a", "b", "c", "d", "e"]
    assert fields.keywords == []
    assert fields.reminders == []


@pytest.mark.parametrize(
    "value, expected",
    [
        (7, 7.0),
        (6.5, 6.5),
        ("8", 8.0),
        (" 3.5 ", 3.5),
        ("high", None),
        (True, None),
        (float("nan"), None),
        (float("inf"), None),
        (None, None),
        ([5], None),
        (10**400, None),
        ("1e400", None),
    ],
)
def test_intensity_is_a_finite_number_or_none(value, expected):
    assert normalize_analysis({"category": "mood", "intensity": value}).intensity == expected


@pytest.mark.parametrize("value", ["true", 1, 0, None, "yes"])
def test_completed_must_be_a_real_boolean(value):
    assert normalize_analysis({"category": "task", "completed": value}).completed is None


@pytest.mark.parametrize("value, expected", [("completed", "completed"), ("done", None), (1, None)])
def test_status_is_restricted(value, expected):
    assert normalize_analysis({"category": "task", "status": value}).status == expected


def test_unknown_keys_are_ignored():
    fields = normalize_analysis({"category": "idea", "confidence": 0.9})

    assert "confidence" not in fields.model_dump()
