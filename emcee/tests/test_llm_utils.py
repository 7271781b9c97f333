"""Tests for shared LLM response parsing utilities."""

from emcee.common.llm_utils import parse_llm_json, sniff_json_flag, strip_code_fences


class TestParseLlmJson:
    def test_valid_json(self):
        assert parse_llm_json('{"nameDetected": true}') == {"nameDetected": True}

    def test_json_with_markdown_fences(self):
        raw = '```json\n{"nameDetected": false, "confidence": 0.2}\n```'
        assert parse_llm_json(raw) == {"nameDetected": False, "confidence": 0.2}

    def test_json_embedded_in_text(self):
        raw = 'Sure! {"detectedAs": "steve"} Hope that helps.'
        assert parse_llm_json(raw) == {"detectedAs": "steve"}

    def test_non_object_json_returns_empty_dict(self):
        assert parse_llm_json("[1, 2, 3]") == {}

    def test_no_json_returns_empty_dict(self):
        assert parse_llm_json("no idea") == {}
        assert parse_llm_json("") == {}

    def test_invalid_json_with_braces_returns_empty(self):
        assert parse_llm_json('{"nameDetected": true, "confidence": }') == {}


class TestStripCodeFences:
    def test_plain_text_untouched(self):
        assert strip_code_fences("hello") == "hello"

    def test_fences_removed(self):
        assert strip_code_fences("```\nhello\n```") == "hello"


class TestSniffJsonFlag:
    def test_true_flag_in_broken_json(self):
        assert sniff_json_flag('{"nameDetected": true, "confidence": }', "nameDetected") is True

    def test_case_insensitive(self):
        assert sniff_json_flag('{"NAMEDETECTED" : TRUE', "nameDetected") is True

    def test_false_or_missing(self):
        assert sniff_json_flag('{"nameDetected": false', "nameDetected") is False
        assert sniff_json_flag("nothing here", "nameDetected") is False
        assert sniff_json_flag("", "nameDetected") is False
