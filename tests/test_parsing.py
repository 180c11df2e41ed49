"""
Tests for extracting JSON objects from free-form backend responses.
"""

import pytest

from worlddirector.generation.parsing import ParseError, parse_json


class TestParseJson:
    """Test backend response parsing."""

    def test_plain_object(self):
        assert parse_json('{"name": "Rex"}') == {"name": "Rex"}

    def test_extracts_object_from_surrounding_prose(self):
        text = 'Sure! Here is your character: {"name": "Rex", "hp": 10} Hope that helps.'
        assert parse_json(text) == {"name": "Rex", "hp": 10}

    def test_strips_markdown_fences(self):
        text = '```json\n{"name": "Vex"}\n```'
        assert parse_json(text) == {"name": "Vex"}

    def test_strips_reasoning_blocks(self):
        text = '<think>maybe {"name": "wrong"} is best</think>\n{"name": "Right"}'
        assert parse_json(text) == {"name": "Right"}

    def test_nested_objects_use_outermost_braces(self):
        text = 'Result: {"stats": {"health": 5}, "name": "Nested"}'
        assert parse_json(text) == {"stats": {"health": 5}, "name": "Nested"}

    def test_no_braces_raises(self):
        with pytest.raises(ParseError):
            parse_json("I cannot help with that request.")

    def test_empty_response_raises(self):
        with pytest.raises(ParseError):
            parse_json("")

    def test_malformed_json_raises(self):
        with pytest.raises(ParseError, match="Malformed"):
            parse_json('{"name": "Broken",}')

    def test_parse_error_is_value_error(self):
        """Callers catching ValueError also see parse failures."""
        with pytest.raises(ValueError):
            parse_json("nothing here")
