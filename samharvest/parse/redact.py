"""Redaction module to mask the API key in error messages and logs."""
import re
from typing import Any, Dict, Optional

REDACTED = "[REDACTED]"

_SECRET_KEYS = ("api_key", "apikey", "x-api-key")

_PATTERNS = [
    (re.compile(r"(api_key=)[^&\s'\"]+", re.IGNORECASE), r"\g<1>" + REDACTED),
    (re.compile(r"(x-api-key[\"']?\s*[:=]\s*[\"']?)[^\"'\s,}]+", re.IGNORECASE), r"\g<1>" + REDACTED),
]


def redact_string(text: Optional[str], secret: Optional[str] = None) -> Optional[str]:
    """Redact the API key from a string (URL query params, echoed headers, the raw key)."""
    if not text:
        return text

    result = text
    for pattern, replacement in _PATTERNS:
        result = pattern.sub(replacement, result)
    if secret:
        result = result.replace(secret, REDACTED)
    return result


def redact_dict(data: Dict[str, Any], secret: Optional[str] = None) -> Dict[str, Any]:
    """Recursively redact secrets from a dictionary."""
    redacted = {}
    for key, value in data.items():
        if key.lower() in _SECRET_KEYS:
            redacted[key] = REDACTED
        else:
            redacted[key] = redact_json(value, secret)
    return redacted


def redact_json(data: Any, secret: Optional[str] = None) -> Any:
    """Redact secrets from JSON-serializable data."""
    if isinstance(data, dict):
        return redact_dict(data, secret)
    elif isinstance(data, list):
        return [redact_json(item, secret) for item in data]
    elif isinstance(data, str):
        return redact_string(data, secret)
    else:
        return data
