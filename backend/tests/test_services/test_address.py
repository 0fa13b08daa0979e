"""Tests for delivery address validation."""

import pytest

from milkdrop.services.address import FLAT_NUMBER_MAX_LENGTH, clean_address_field, sanitize_address_field


class TestSanitize:
    def test_collapses_whitespace(self):
        assert sanitize_address_field("  12 \t MG\n Road  ") == "12 MG Road"


class TestCleanAddressField:
    def test_accepts_common_punctuation(self):
        value = "Flat 4/B, St. Mary's Road - Phase 2"
        assert clean_address_field(value, "address", 500) == value

    def test_rejects_empty(self):
        with pytest.raises(ValueError, match="must not be empty"):
            clean_address_field("   ", "address", 500)

    def test_rejects_too_long(self):
        with pytest.raises(ValueError, match="at most"):
            clean_address_field("1" * (FLAT_NUMBER_MAX_LENGTH + 1), "flat_number", FLAT_NUMBER_MAX_LENGTH)

    @pytest.mark.parametrize("value", ["<b>x</b>", "Road; DROP TABLE", "Main Rd #5"])
    def test_rejects_unsafe_characters(self, value):
        with pytest.raises(ValueError, match="invalid characters"):
            clean_address_field(value, "address", 500)
