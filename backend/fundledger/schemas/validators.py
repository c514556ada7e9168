# backend/fundledger/schemas/validators.py
"""
Reusable validation functions for Pydantic schemas.

- Currency code validation
- Asset symbol normalization
- Funding source normalization
- Date range validation
"""

import re
from datetime import date

# =============================================================================
# CONSTANTS
# =============================================================================

# ISO 4217 (3 uppercase letters)
CURRENCY_PATTERN = re.compile(r'^[A-Z]{3}$')

# Symbols: exchange tickers, fund codes, bond ISINs
SYMBOL_PATTERN = re.compile(r'^[A-Z0-9][A-Z0-9._\-]{0,49}$')

FUNDING_SOURCE_MAX_LENGTH = 100

MIN_VALID_DATE = date(1970, 1, 1)


def validate_currency(value: str) -> str:
    """
    Validate and normalize a currency code.

    Raises:
        ValueError: Not a 3-letter code
    """
    if not value:
        raise ValueError("Currency cannot be empty")

    normalized = value.strip().upper()
    if not CURRENCY_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid currency format: '{normalized}'. "
            "Currency must be a 3-letter ISO code (e.g., VND, USD)"
        )
    return normalized


def validate_symbol(value: str) -> str:
    """Uppercase and check an asset symbol (e.g. 'fpt' -> 'FPT', 'E1VFVN30')."""
    if not value:
        raise ValueError("Symbol cannot be empty")

    normalized = value.strip().upper()
    if not SYMBOL_PATTERN.match(normalized):
        raise ValueError(
            f"Invalid symbol: '{normalized}'. "
            "Use letters, digits, dots, dashes or underscores (max 50 characters)"
        )
    return normalized


def normalize_funding_source(value: str | None) -> str | None:
    """Trim a funding source tag; blank means untagged."""
    if value is None:
        return None
    normalized = value.strip()
    if len(normalized) > FUNDING_SOURCE_MAX_LENGTH:
        raise ValueError(f"Funding source cannot exceed {FUNDING_SOURCE_MAX_LENGTH} characters")
    return normalized or None


def validate_date_range(start_date: date, end_date: date) -> tuple[date, date]:
    """
    Validate an inclusive date range.

    Raises:
        ValueError: Range inverted, before 1970 or ending in the future
    """
    if start_date < MIN_VALID_DATE:
        raise ValueError(f"start_date cannot be before {MIN_VALID_DATE}")
    if end_date > date.today():
        raise ValueError("end_date cannot be in the future")
    if start_date > end_date:
        raise ValueError("start_date must be before or equal to end_date")
    return start_date, end_date
