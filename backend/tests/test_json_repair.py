"""
Tests for JSON extraction, cleaning and truncation repair of model output.
"""

import json

import pytest

from errors import ErrorCode, NormalizationError
from services.json_repair import (
    clean_json,
    extract_json_from_response,
    parse_json_object,
    parse_json_response,
    repair_json,
)


class TestExtract:
    def test_fenced_block(self):
        text = 'Here you go:\n```json\n{"a": 1}\n```\nHope that helps.'
        assert extract_json_from_response(text) == '{"a": 1}'

    def test_bare_fence(self):
        assert extract_json_from_response('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_braces_in_prose(self):
        text = 'Sure! {"should_intervene": false} Let me know.'
        assert extract_json_from_response(text) == '{"should_intervene": false}'

    def test_truncated_object_runs_to_end(self):
        assert extract_json_from_response('Result: {"a": 1, "b": [1, 2') == '{"a": 1, "b": [1, 2'

    def test_no_braces_returns_whole_text(self):
        assert extract_json_from_response("  [1, 2]  ") == "[1, 2]"

    def test_empty(self):
        assert extract_json_from_response("") is None
        assert extract_json_from_response("   \n") is None


class TestClean:
    def test_trailing_commas(self):
        assert clean_json('{"a": [1, 2,], "b": 3,}') == '{"a": [1, 2], "b": 3}'

    def test_line_comments_outside_strings(self):
        cleaned = clean_json('{"url": "http://example.com", // the link\n"a": 1}')
        assert '"http://example.com"' in cleaned
        assert "the link" not in cleaned

    def test_comma_inside_string_untouched(self):
        assert clean_json('{"a": "x,}"}') == '{"a": "x,}"}'

    def test_control_characters_removed(self):
        assert clean_json('{"a":\x07 1}') == '{"a": 1}'


class TestRepair:
    def test_first_candidate_closes_string_and_containers(self):
        candidates = repair_json('{"a": 1, "b": "hel')
        assert candidates[0] == '{"a": 1, "b": "hel"}'

    def test_trailing_separator_dropped(self):
        assert repair_json('{"a": [1, 2,')[0] == '{"a": [1, 2]}'

    def test_complete_value_with_trailing_text(self):
        assert repair_json('{"a": 1} and then {"b": 2}') == ['{"a": 1}']

    def test_cut_back_candidates_present(self):
        candidates = repair_json('{"a": 1, "b')
        assert '{"a": 1}' in candidates

    def test_partial_number_is_never_kept(self):
        assert repair_json('{"a": "x", "score": 0.') == ['{"a": "x"}', "{}"]

    def test_complete_literal_is_kept(self):
        assert repair_json('{"a": [1], "done": true')[0] == '{"a": [1], "done": true}'


class TestParseJsonResponse:
    def test_valid_json(self):
        assert parse_json_response('{"a": 1, "b": [true, null]}') == {"a": 1, "b": [True, None]}

    def test_fenced_with_prose(self):
        text = 'Analysis:\n```json\n{"has_deviation": false, "explanation": "ok"}\n```'
        assert parse_json_response(text) == {"has_deviation": False, "explanation": "ok"}

    def test_trailing_comma_and_comment(self):
        text = '{"should_intervene": true, // decided\n "reason": "now",}'
        assert parse_json_response(text) == {"should_intervene": True, "reason": "now"}

    def test_truncated_string_value(self):
        assert parse_json_response('{"reason": "Employee seems tir') == {"reason": "Employee seems tir"}

    def test_truncated_mid_key_drops_partial_key(self):
        assert parse_json_response('{"a": 1, "b') == {"a": 1}

    def test_truncated_nested_number(self):
        text = '{"insights": [{"type": "risk", "confidence": 0.'
        assert parse_json_response(text) == {"insights": [{"type": "risk"}]}

    def test_truncated_number_is_dropped_not_shortened(self):
        assert parse_json_response('{"reason": "ok", "score": 0.') == {"reason": "ok"}
        assert parse_json_response('{"reason": "ok", "score": 0.7') == {"reason": "ok"}

    def test_truncated_index_is_not_misread(self):
        # "insight_index": 12 cut after the first digit
        text = '{"should_intervene": true, "insight_index": 1'
        assert parse_json_response(text) == {"should_intervene": True}

    def test_partial_literal_dropped(self):
        assert parse_json_response('{"a": 1, "b": tr') == {"a": 1}

    def test_trailing_text_after_object(self):
        assert parse_json_response('{"a": 1} extra {"b": 2}') == {"a": 1}

    def test_raw_newline_inside_string(self):
        assert parse_json_response('{"text": "line one\nline two"}') == {"text": "line one\nline two"}

    def test_deterministic(self):
        text = '{"insights": [{"type": "risk", "interpretation": "Overl'
        assert parse_json_response(text) == parse_json_response(text)

    def test_prose_only_raises_with_raw_text(self):
        with pytest.raises(NormalizationError) as exc_info:
            parse_json_response("I think the employee is fine.")
        assert exc_info.value.raw_text == "I think the employee is fine."
        assert exc_info.value.code == ErrorCode.NORMALIZATION_FAILED

    def test_empty_raises_empty_code(self):
        with pytest.raises(NormalizationError) as exc_info:
            parse_json_response("   ")
        assert exc_info.value.code == ErrorCode.NORMALIZATION_EMPTY


class TestParseJsonObject:
    def test_object(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_array_rejected(self):
        with pytest.raises(NormalizationError):
            parse_json_object("[1, 2]")


def assert_faithful(recovered, original):
    """Every recovered value has its original type; scalars are exact, strings may be cut short."""
    assert type(recovered) is type(original)
    if isinstance(original, dict):
        for key, value in recovered.items():
            assert key in original
            assert_faithful(value, original[key])
    elif isinstance(original, list):
        assert len(recovered) <= len(original)
        for got, expected in zip(recovered, original):
            assert_faithful(got, expected)
    elif isinstance(original, str):
        assert original.startswith(recovered)
    else:
        assert recovered == original


DECISION_LIKE = {
    "should_intervene": True,
    "reason": "Employee repeats the workload concern",
    "intervention_type": "proactive_question",
    "priority": "high",
    "insight_index": 12,
    "confidence": 0.875,
    "minutes": 1500,
    "delta": -3.25e-2,
    "evidence": ["works weekends", "skipped lunch", 42],
    "state": {"sentiment": "negative", "engagement": 0.45, "flag": False, "note": None},
}


class TestTruncationSweep:
    """Cut a serialized object at every offset in its second half."""

    @pytest.mark.parametrize("compact", [False, True])
    def test_every_cut_keeps_types_and_values(self, compact):
        separators = (",", ":") if compact else None
        full = json.dumps(DECISION_LIKE, separators=separators)
        for offset in range(len(full) // 2, len(full) + 1):
            recovered = parse_json_response(full[:offset])
            assert isinstance(recovered, dict), full[:offset]
            assert_faithful(recovered, DECISION_LIKE)
