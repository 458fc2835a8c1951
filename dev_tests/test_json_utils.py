"""
Tests for json_utils.py - orjson wrapper module.
"""

import pytest
import uuid
from io import StringIO

# Import the module under test
import json_utils as json
import orjson


class TestDumps:
    """Tests for json.dumps() function."""

    def test_serializes_empty_dict(self):
        """
        Given: An empty dictionary
        When: dumps() is called
        Then: Returns '{}' as str
        """
        result = json.dumps({})
        assert result == "{}"
        assert isinstance(result, str)  # Not bytes

    def test_serializes_uuid(self):
        value = uuid.UUID("12345678-1234-5678-1234-567812345678")
        assert json.dumps({"id": value}) == '{"id":"12345678-1234-5678-1234-567812345678"}'

    def test_non_string_keys(self):
        assert json.dumps({1: "a"}) == '{"1":"a"}'

    def test_indent_pretty_prints(self):
        result = json.dumps({"a": 1}, indent=2)
        assert result == '{\n  "a": 1\n}'

    def test_default_handles_unknown_types(self):
        class Token:
            def __str__(self):
                return "tok"

        assert json.dumps({"t": Token()}, default=str) == '{"t":"tok"}'

    def test_unknown_type_without_default_raises(self):
        with pytest.raises(TypeError):
            json.dumps({"s": {1, 2}})

    def test_unicode_is_kept(self):
        assert json.dumps({"name": "café"}) == '{"name":"café"}'


class TestLoads:

    def test_loads_str_and_bytes(self):
        assert json.loads('{"a": [1, 2]}') == {"a": [1, 2]}
        assert json.loads(b'{"a": true}') == {"a": True}

    def test_invalid_json_raises_decode_error(self):
        with pytest.raises(json.JSONDecodeError):
            json.loads("{not json")

    def test_decode_error_is_orjson_error(self):
        assert json.JSONDecodeError is orjson.JSONDecodeError


class TestFileHelpers:

    def test_dump_then_load(self):
        buffer = StringIO()
        json.dump({"files": ["a.pdf"]}, buffer)
        buffer.seek(0)
        assert json.load(buffer) == {"files": ["a.pdf"]}


class TestEncodeIdList:

    def test_empty_list(self):
        assert json.encode_id_list([]) == "[]"

    def test_ids_keep_order_and_become_strings(self):
        """
        Given: Server ids of mixed types
        When: encode_id_list() is called
        Then: A compact JSON array of strings comes back in the same order
        """
        assert json.encode_id_list(["b", "a", 7]) == '["b","a","7"]'

    def test_accepts_tuples(self):
        assert json.loads(json.encode_id_list(("x", "y"))) == ["x", "y"]
