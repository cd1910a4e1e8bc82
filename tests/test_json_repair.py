"""Unit tests for JSON recovery from model output."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import pytest
from services.errors import MalformedResponseError
from services.json_repair import (
    convert_single_quotes,
    extract_json_object,
    parse_json_object,
    repair_json,
)


class TestExtractJsonObject:
    """Test suite for extract_json_object."""

    def test_object_surrounded_by_prose(self):
        text = 'Here is the evaluation: {"score": 85, "comments": ["ok"]} Hope this helps!'

        assert extract_json_object(text) == '{"score": 85, "comments": ["ok"]}'

    def test_first_balanced_object_wins(self):
        text = '{"a": {"b": [1, 2]}, "c": "}"} {"second": true}'

        assert extract_json_object(text) == '{"a": {"b": [1, 2]}, "c": "}"}'

    def test_truncated_object_closed(self):
        assert extract_json_object('{"summary": "Good proposal') == '{"summary": "Good proposal"}'
        assert extract_json_object('{"items": [1, 2') == '{"items": [1, 2]}'

    def test_no_object(self):
        assert extract_json_object("no json here") is None


class TestRepairJson:
    """Test suite for repair helpers."""

    def test_single_quotes_converted(self):
        assert convert_single_quotes("{'note': 'say \"hi\"'}") == '{"note": "say \\"hi\\""}'

    def test_escaped_apostrophe_kept(self):
        assert convert_single_quotes("{'note': 'it\\'s'}") == '{"note": "it\'s"}'

    def test_bare_keys_and_trailing_commas(self):
        assert repair_json("{name: 'Bob', score: 10,}") == '{"name": "Bob", "score": 10}'

    def test_string_contents_untouched(self):
        assert repair_json('{"text": "a, }", key: 1}') == '{"text": "a, }", "key": 1}'


class TestParseJsonObject:
    """Test suite for parse_json_object."""

    def test_valid_json(self):
        assert parse_json_object('{"score": 80, "comments": []}') == {"score": 80, "comments": []}

    def test_repaired_json(self):
        assert parse_json_object("{name: 'Bob', score: 10,}") == {"name": "Bob", "score": 10}

    def test_trailing_comma_in_array(self):
        assert parse_json_object('Result:\n{"items": [1, 2,],}') == {"items": [1, 2]}

    def test_apostrophes_in_double_quoted_strings(self):
        assert parse_json_object('{"note": "it\'s fine"}') == {"note": "it's fine"}

    def test_truncated_output_recovered(self):
        assert parse_json_object('{"summary": "Strong bid", "riskLevel": "lo') == {
            "summary": "Strong bid",
            "riskLevel": "lo"
        }

    @pytest.mark.parametrize("text", ["", "   ", "I cannot score this proposal.", "{score: }"])
    def test_unrecoverable_output_raises(self, text):
        with pytest.raises(MalformedResponseError):
            parse_json_object(text)
