"""Tests for tolerant JSON recovery from model output."""

from cardgrade.grading.json_repair import (
    extract_first_json_object,
    parse_json_with_repair,
    repair_json_once,
)


class TestParseJsonWithRepair:
    """Verbatim, extracted and repaired readings."""

    def test_well_formed_json_has_no_warning(self) -> None:
        parsed = parse_json_with_repair('{"status": "ok", "estimated_grade_low": 8}')
        assert parsed is not None
        assert parsed.value == {"status": "ok", "estimated_grade_low": 8}
        assert parsed.warning is False

    def test_surrounding_whitespace_is_still_verbatim(self) -> None:
        parsed = parse_json_with_repair('\n  {"a": 1}  \n')
        assert parsed.value == {"a": 1}
        assert parsed.warning is False

    def test_embedded_object_in_prose(self) -> None:
        text = 'Some intro text\n{ "status": "ok", "estimated_grade_low": 8 }\nTrailing note'
        parsed = parse_json_with_repair(text)
        assert parsed is not None
        assert parsed.value["status"] == "ok"
        assert parsed.warning is True

    def test_smart_quotes_and_trailing_comma(self) -> None:
        text = '{ “status”: “ok”, "estimated_grade_low": 8, }'
        parsed = parse_json_with_repair(text)
        assert parsed is not None
        assert parsed.value["estimated_grade_low"] == 8
        assert parsed.warning is True

    def test_trailing_comma_in_array(self) -> None:
        parsed = parse_json_with_repair('{"labels": ["PSA 9", "PSA 8",]}')
        assert parsed.value == {"labels": ["PSA 9", "PSA 8"]}
        assert parsed.warning is True

    def test_unrecoverable_text_returns_none(self) -> None:
        assert parse_json_with_repair("the card looks great") is None
        assert parse_json_with_repair("{ not json at all") is None

    def test_non_string_input_returns_none(self) -> None:
        assert parse_json_with_repair(None) is None
        assert parse_json_with_repair(42) is None
        assert parse_json_with_repair({"a": 1}) is None

    def test_empty_string_returns_none(self) -> None:
        assert parse_json_with_repair("") is None
        assert parse_json_with_repair("   ") is None


class TestExtractFirstJsonObject:
    """Balanced brace scanning."""

    def test_braces_inside_strings_are_ignored(self) -> None:
        text = 'prefix {"a": "}{", "b": {"c": 2}} suffix {"d": 3}'
        assert extract_first_json_object(text) == '{"a": "}{", "b": {"c": 2}}'

    def test_escaped_quotes_inside_strings(self) -> None:
        text = 'x {"a": "say \\"}\\" now"} y'
        assert extract_first_json_object(text) == '{"a": "say \\"}\\" now"}'

    def test_unbalanced_returns_none(self) -> None:
        assert extract_first_json_object('{"a": {"b": 1}') is None

    def test_no_object_returns_none(self) -> None:
        assert extract_first_json_object("no braces here") is None


def test_repair_json_once_normalizes_quotes() -> None:
    assert repair_json_once("{‘a’: 1,}") == "{'a': 1}"
