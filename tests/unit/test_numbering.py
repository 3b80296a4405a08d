"""Batch and document number formats."""

from datetime import date

import pytest

from commodity_kernel.domain.numbering import (
    commodity_prefix,
    format_batch_number,
    format_document_number,
    is_valid_batch_number,
)
from commodity_kernel.exceptions import ValidationError

DAY = date(2024, 3, 1)


class TestCommodityPrefix:

    @pytest.mark.parametrize(
        "code, prefix",
        [
            ("maize", "MAIZE"),
            ("Coffee-Arabica", "COFFEEARAB"),
            ("WHEAT_2", "WHEAT"),
        ],
    )
    def test_prefix(self, code, prefix):
        assert commodity_prefix(code) == prefix

    def test_too_short(self):
        with pytest.raises(ValidationError):
            commodity_prefix("X1")


class TestFormats:

    def test_batch_number(self):
        assert format_batch_number("MAIZE", DAY, 7) == "MAIZE-20240301-007"

    def test_batch_number_widens_past_999(self):
        number = format_batch_number("MAIZE", DAY, 1000)
        assert number == "MAIZE-20240301-1000"
        assert is_valid_batch_number(number)

    def test_document_number(self):
        assert format_document_number("PC", DAY, 12) == "PC-20240301-0012"

    @pytest.mark.parametrize(
        "number, valid",
        [
            ("MAIZE-20240301-001", True),
            ("maize-20240301-001", False),
            ("MAIZE-2024031-001", False),
            ("M-20240301-001", False),
            ("MAIZE-20240301-01", False),
        ],
    )
    def test_validation_pattern(self, number, valid):
        assert is_valid_batch_number(number) is valid
