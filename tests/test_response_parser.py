"""
Tests for decoding JSON objects out of LLM responses.
"""

from labeling.response_parser import ParseFallback, ParseOk, decode_json_object


class TestDecodeJsonObject:
    """Accepted shapes and fallbacks."""

    def test_plain_object(self):
        result = decode_json_object('{"nameRo": "Facturi", "nameEn": "Invoices"}')
        assert result == ParseOk({"nameRo": "Facturi", "nameEn": "Invoices"})

    def test_fenced_block_wins_over_surrounding_prose(self):
        text = 'Sure {not json}\n```json\n{"a": 1}\n```\nDone.'
        assert decode_json_object(text) == ParseOk({"a": 1})

    def test_object_embedded_in_prose(self):
        text = 'Here is the result: {"groups": []} hope it helps'
        assert decode_json_object(text) == ParseOk({"groups": []})

    def test_comments_are_stripped(self):
        text = '{\n  "a": 1, // first\n  /* note */ "b": "https://example.com"\n}'
        assert decode_json_object(text) == ParseOk({"a": 1, "b": "https://example.com"})

    def test_empty_response(self):
        result = decode_json_object("   ")
        assert isinstance(result, ParseFallback)
        assert result.reason == "empty response"

    def test_array_is_not_an_object(self):
        result = decode_json_object("```json\n[1, 2]\n```")
        assert isinstance(result, ParseFallback)
        assert "expected a JSON object" in result.reason

    def test_no_json_keeps_truncated_raw(self):
        text = "no json here " * 100
        result = decode_json_object(text)
        assert isinstance(result, ParseFallback)
        assert result.reason == "no JSON object found"
        assert result.raw == text[:500]
