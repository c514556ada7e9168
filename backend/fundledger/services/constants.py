# backend/fundledger/services/constants.py
"""
Business constants for the ledger and fund engine.

All precision constants are used with ROUND_HALF_EVEN (banker's rounding)
so repeated subscribe/redeem cycles do not accumulate a one-sided bias.
"""

from decimal import Decimal, ROUND_HALF_EVEN


# =============================================================================
# DECIMAL PRECISION CONSTANTS
# =============================================================================

# Rounding mode applied to every quantization in the engine
ROUNDING = ROUND_HALF_EVEN

# Currency amounts: 2 decimal places
# Used for: cash flows, subscription/redemption amounts, fund value, P&L
MONEY_PRECISION: Decimal = Decimal("0.01")

# Fund units: 6 decimal places
# More places than money because units are priced at fractional NAVs
UNIT_PRECISION: Decimal = Decimal("0.000001")

# NAV per unit and average cost per unit: 6 decimal places
NAV_PRECISION: Decimal = Decimal("0.000001")

# Asset quantities and market prices: 8 decimal places (fractional shares, crypto)
QUANTITY_PRECISION: Decimal = Decimal("0.00000001")

# Percentages: 4 decimal places (e.g., 12.3456%)
PERCENTAGE_PRECISION: Decimal = Decimal("0.0001")

# Type-safe zero for Decimal comparisons
ZERO: Decimal = Decimal("0")

HUNDRED: Decimal = Decimal("100")


# =============================================================================
# FUND CONVERSION
# =============================================================================

# Par NAV for a fund that starts without any value
# 10,000 per unit mirrors the par value used by local open-ended funds
INITIAL_NAV_PER_UNIT: Decimal = Decimal("10000")

# Lower bound for the unit count created when an existing portfolio is unitized
MIN_INITIAL_UNITS: Decimal = Decimal("1000")

# Tolerance for "one investor holds 100% of units" when converting back
FULL_OWNERSHIP_TOLERANCE: Decimal = Decimal("0.000001")


# =============================================================================
# LEDGER
# =============================================================================

# Label used in summaries for entries recorded without a funding source
UNKNOWN_FUNDING_SOURCE: str = "UNKNOWN"

# Prefix of the shared reference that links both legs of a transfer
TRANSFER_REFERENCE_PREFIX: str = "TRF"

# Prefixes for references of system-generated entries
SUBSCRIPTION_REFERENCE_PREFIX: str = "SUB"
REDEMPTION_REFERENCE_PREFIX: str = "RED"
TRADE_REFERENCE_PREFIX: str = "TRD"
DEPOSIT_REFERENCE_PREFIX: str = "DEP"

# Longest term accepted for a bank deposit
MAX_DEPOSIT_TERM_DAYS: int = 3650


# =============================================================================
# RATE LIMITING CONSTANTS
# =============================================================================
# Format follows slowapi/limits syntax: "100/minute", "10/hour", etc.

# Default rate limit for read endpoints (GET requests)
RATE_LIMIT_DEFAULT: str = "100/minute"

# Rate limit for write endpoints that move money or units
RATE_LIMIT_WRITE: str = "30/minute"

# Rate limit for bulk recomputation (snapshot batches, holdings rebuild)
RATE_LIMIT_BATCH: str = "10/minute"

# Rate limit for health check endpoints
# Higher limit for monitoring tools that poll frequently
RATE_LIMIT_HEALTH: str = "300/minute"


# =============================================================================
# RESOURCE LIMIT CONSTANTS
# =============================================================================

# Default page size for list endpoints
DEFAULT_PAGE_SIZE: int = 20

# Maximum number of items returned in a single list response
MAX_LIST_LIMIT: int = 1000
