"""Helpers shared by configuration and logging code."""

import re
from typing import Any

MIN_PORT = 1
MAX_PORT = 65535

_HOST_PORT = re.compile(r"^(?:(?P<host>[^\s:]+|\[[0-9a-fA-F:]+\]):)?(?P<port>\d+)$")


def validate_non_empty_string(value: str, field_name: str) -> str:
    """Validate that a string is not empty or only whitespace.

    Returns:
        Stripped string value

    Raises:
        ValueError: If string is empty or only whitespace
    """
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


def validate_local_address(value: str) -> str:
    """Validate a ``host:port`` or bare port address.

    Raises:
        ValueError: If the address is malformed or the port is out of range
    """
    value = validate_non_empty_string(value, "Local address")
    match = _HOST_PORT.match(value)
    if match is None:
        raise ValueError(f"Local address must be host:port or a port: {value!r}")

    port = int(match.group("port"))
    if not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"Port must be between {MIN_PORT} and {MAX_PORT}")
    return value


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask a secret for logging, keeping the last ``show_chars`` characters."""
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    masked_length = len(value) - show_chars
    return mask_char * masked_length + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with credential-like fields masked."""
    sensitive_fields = {"auth", "token", "password", "secret"}

    sanitized = {}
    for key, value in data.items():
        if any(field in key.lower() for field in sensitive_fields):
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value

    return sanitized
