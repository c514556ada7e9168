# backend/tests/schemas/test_pagination.py
"""
Tests for the pagination schema and the shared field validators.
"""

from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from fundledger.schemas.pagination import PaginatedResponse, PaginationMeta
from fundledger.schemas.validators import (
    normalize_funding_source,
    validate_currency,
    validate_date_range,
    validate_symbol,
)


class TestPaginationMeta:
    """Tests for PaginationMeta class."""

    def test_create_basic(self):
        meta = PaginationMeta.create(total=45, page=2, limit=20)

        assert meta.total == 45
        assert meta.page == 2
        assert meta.limit == 20

    @pytest.mark.parametrize(
        "total,limit,expected",
        [(0, 20, 1), (1, 20, 1), (20, 20, 1), (21, 20, 2), (45, 20, 3)],
    )
    def test_total_pages(self, total, limit, expected):
        assert PaginationMeta.create(total=total, page=1, limit=limit).total_pages == expected

    def test_navigation_first_page(self):
        meta = PaginationMeta.create(total=45, page=1, limit=20)

        assert meta.has_next is True
        assert meta.has_previous is False

    def test_navigation_last_page(self):
        meta = PaginationMeta.create(total=45, page=3, limit=20)

        assert meta.has_next is False
        assert meta.has_previous is True

    def test_exactly_full_last_page(self):
        assert PaginationMeta.create(total=40, page=2, limit=20).has_next is False

    def test_computed_fields_serialized(self):
        dumped = PaginationMeta.create(total=5, page=1, limit=2).model_dump()

        assert dumped["total_pages"] == 3
        assert dumped["has_next"] is True
        assert dumped["has_previous"] is False

    @pytest.mark.parametrize("field,value", [("total", -1), ("page", 0), ("limit", 0)])
    def test_rejects_out_of_range(self, field, value):
        params = {"total": 10, "page": 1, "limit": 10, field: value}

        with pytest.raises(ValidationError):
            PaginationMeta(**params)


class TestPaginatedResponse:

    def test_wraps_items(self):
        response = PaginatedResponse[int](
            items=[1, 2],
            pagination=PaginationMeta.create(total=2, page=1, limit=10),
        )

        assert response.items == [1, 2]
        assert response.pagination.total_pages == 1


class TestValidateCurrency:

    @pytest.mark.parametrize("value,expected", [("vnd", "VND"), (" usd ", "USD"), ("EUR", "EUR")])
    def test_normalizes(self, value, expected):
        assert validate_currency(value) == expected

    @pytest.mark.parametrize("value", ["", "US", "USDT", "V1D"])
    def test_rejects(self, value):
        with pytest.raises(ValueError):
            validate_currency(value)


class TestValidateSymbol:

    @pytest.mark.parametrize("value,expected", [("fpt", "FPT"), ("e1vfvn30", "E1VFVN30"), ("brk.b", "BRK.B")])
    def test_normalizes(self, value, expected):
        assert validate_symbol(value) == expected

    @pytest.mark.parametrize("value", ["", "-ABC", "A B", "X" * 51])
    def test_rejects(self, value):
        with pytest.raises(ValueError):
            validate_symbol(value)


class TestNormalizeFundingSource:

    def test_trims(self):
        assert normalize_funding_source("  VCB  ") == "VCB"

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_is_untagged(self, value):
        assert normalize_funding_source(value) is None

    def test_too_long(self):
        with pytest.raises(ValueError):
            normalize_funding_source("x" * 101)


class TestValidateDateRange:

    def test_valid_range(self):
        assert validate_date_range(date(2024, 1, 1), date(2024, 1, 31)) == (date(2024, 1, 1), date(2024, 1, 31))

    def test_single_day(self):
        day = date(2024, 2, 29)
        assert validate_date_range(day, day) == (day, day)

    def test_inverted(self):
        with pytest.raises(ValueError, match="start_date"):
            validate_date_range(date(2024, 2, 1), date(2024, 1, 1))

    def test_future_end(self):
        with pytest.raises(ValueError, match="future"):
            validate_date_range(date(2024, 1, 1), date.today() + timedelta(days=1))

    def test_before_1970(self):
        with pytest.raises(ValueError):
            validate_date_range(date(1969, 12, 31), date(2024, 1, 1))
