"""Unit tests for Kenyan phone number helpers."""

import pytest

from src.core.phone import (
    format_phone_for_display,
    is_valid_kenyan_phone,
    normalize_phone,
    sanitize_phone,
)


class TestValidation:

    @pytest.mark.parametrize(
        "phone",
        [
            "0712345678",
            "0112345678",
            "+254712345678",
            "254712345678",
            "712345678",
            "0712 345 678",
            "0712-345-678",
            "(0712) 345678",
        ],
    )
    def test_accepts_supported_formats(self, phone):
        assert is_valid_kenyan_phone(phone) is True

    @pytest.mark.parametrize(
        "phone",
        ["", "12345", "0812345678", "07123456789", "+255712345678", "07123abc78"],
    )
    def test_rejects_invalid(self, phone):
        assert is_valid_kenyan_phone(phone) is False

    def test_sanitize_strips_separators(self):
        assert sanitize_phone(" 0712-345 (678) ") == "0712345678"


class TestNormalization:

    @pytest.mark.parametrize(
        "phone",
        ["0712345678", "+254712345678", "254712345678", "712345678", "0712 345 678"],
    )
    def test_normalizes_to_gateway_format(self, phone):
        assert normalize_phone(phone) == "254712345678"

    def test_airtel_prefix(self):
        assert normalize_phone("0112345678") == "254112345678"

    def test_invalid_raises(self):
        with pytest.raises(ValueError, match="Invalid Kenyan phone number"):
            normalize_phone("12345")


class TestDisplay:

    def test_international_to_local(self):
        assert format_phone_for_display("254712345678") == "0712345678"
        assert format_phone_for_display("+254712345678") == "0712345678"

    def test_local_unchanged(self):
        assert format_phone_for_display("0712345678") == "0712345678"
