"""Delivery address validation and normalisation."""

import re

# Letters, digits, whitespace, commas, dots, apostrophes, hyphens and slashes
_ADDRESS_CHARS = re.compile(r"^[A-Za-z0-9\s,.'/-]+$")
_WHITESPACE = re.compile(r"\s+")

ADDRESS_MAX_LENGTH = 500
BUILDING_NAME_MAX_LENGTH = 255
FLAT_NUMBER_MAX_LENGTH = 50


def sanitize_address_field(value: str) -> str:
    """Trim and collapse runs of whitespace to a single space."""
    return _WHITESPACE.sub(" ", value.strip())


def clean_address_field(value: str, field_name: str, max_length: int) -> str:
    """Validate and sanitize one address component.

    Raises:
        ValueError: If the value is empty, too long, or contains characters
            outside the allowed set.
    """
    cleaned = sanitize_address_field(value)
    if not cleaned:
        raise ValueError(f"{field_name} must not be empty")
    if len(cleaned) > max_length:
        raise ValueError(f"{field_name} must be at most {max_length} characters")
    if not _ADDRESS_CHARS.match(cleaned):
        raise ValueError(f"{field_name} contains invalid characters")
    return cleaned
