import json
import re
from typing import Any

# MySQL rejects identifiers of 64 characters or more once quoting is added.
MAX_IDENTIFIER_LENGTH = 64
MAX_PRIMARY_KEY_LENGTH = 255

_VARIABLE_NAME = re.compile(r"^[A-Za-z_]\w*$", re.ASCII)


def is_valid_identifier(name: Any) -> bool:
    return isinstance(name, str) and 0 < len(name) < MAX_IDENTIFIER_LENGTH


def is_valid_primary_key(key: Any) -> bool:
    return isinstance(key, str) and 0 < len(key) <= MAX_PRIMARY_KEY_LENGTH


def is_variable_name_like(name: Any) -> bool:
    return isinstance(name, str) and _VARIABLE_NAME.match(name) is not None


def is_nested_variable_name_like(name: Any) -> bool:
    """True for dotted JSON field paths such as ``address.city``."""
    if not isinstance(name, str):
        return False
    return all(is_variable_name_like(segment) for segment in name.split("."))


def ensure_json_document(value: Any) -> None:
    """Reject anything that is not a non-empty, serializable JSON object or array."""
    if not isinstance(value, (dict, list)):
        raise TypeError("document must be a JSON object or array")
    if not value:
        raise ValueError("document cannot be empty")
    try:
        json.dumps(value, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"document is not serializable to JSON: {exc}") from exc


def ensure_non_empty_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    if not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value
