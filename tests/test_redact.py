"""Tests for redaction module."""
from samharvest.parse.redact import REDACTED, redact_dict, redact_json, redact_string


def test_redact_string_api_key_query_param():
    """Test redaction of api_key in a request URL."""
    text = "GET https://api.sam.gov/opportunities/v2/search?api_key=abc123secret&limit=10"
    result = redact_string(text)
    assert REDACTED in result
    assert "abc123secret" not in result
    assert "limit=10" in result


def test_redact_string_header_echo():
    """Test redaction of an echoed X-Api-Key header."""
    text = '{"headers": {"X-Api-Key": "hdr-secret-99"}}'
    result = redact_string(text)
    assert "hdr-secret-99" not in result


def test_redact_string_literal_secret():
    """Test redaction of the raw key wherever it appears."""
    text = "invalid key supplied: k-777-zzz"
    result = redact_string(text, secret="k-777-zzz")
    assert result == f"invalid key supplied: {REDACTED}"


def test_redact_string_empty():
    """Test empty and None input."""
    assert redact_string("") == ""
    assert redact_string(None) is None


def test_redact_dict_secret_keys():
    """Test redaction of secret keys in dict."""
    data = {"api_key": "secret", "params": {"limit": "10", "API_KEY": "secret"}}
    result = redact_dict(data)
    assert result["api_key"] == REDACTED
    assert result["params"]["API_KEY"] == REDACTED
    assert result["params"]["limit"] == "10"


def test_redact_json_preserves_structure():
    """Test that redaction preserves JSON structure."""
    data = {
        "api_calls_used": 3,
        "rate_limited": False,
        "errors": ["backfill 2024-01-01..2024-01-03: 403 for ?api_key=leaked"],
        "planned": [{"context": "backfill"}],
    }
    result = redact_json(data, secret="leaked")
    assert result["api_calls_used"] == 3
    assert result["rate_limited"] is False
    assert "leaked" not in result["errors"][0]
    assert result["planned"] == [{"context": "backfill"}]
