# backend/fundledger/services/fund/calculators.py
"""
Fund-unit arithmetic.

Everything here is a pure function of its arguments:
- No database access, no clock, no shared state
- Decimal in, Decimal out, quantized with ROUND_HALF_EVEN
- Holding state is immutable; every operation returns a new HoldingState

Precision policy:
    money           2 dp   (MONEY_PRECISION)
    units           6 dp   (UNIT_PRECISION)
    NAV / avg cost  6 dp   (NAV_PRECISION)

Usage:
    state = HoldingState.empty()
    state = apply_subscription(state, units=Decimal("50"), amount=Decimal("500"))
    state, realized = apply_redemption(state, units=Decimal("20"), nav_per_unit=Decimal("12"))
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

from fundledger.services.constants import (
    INITIAL_NAV_PER_UNIT,
    MIN_INITIAL_UNITS,
    MONEY_PRECISION,
    NAV_PRECISION,
    PERCENTAGE_PRECISION,
    ROUNDING,
    UNIT_PRECISION,
    HUNDRED,
    ZERO,
)
from fundledger.services.exceptions import InsufficientUnitsError


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(MONEY_PRECISION, rounding=ROUNDING)


def quantize_units(value: Decimal) -> Decimal:
    return Decimal(value).quantize(UNIT_PRECISION, rounding=ROUNDING)


def quantize_nav(value: Decimal) -> Decimal:
    return Decimal(value).quantize(NAV_PRECISION, rounding=ROUNDING)


def quantize_percentage(value: Decimal) -> Decimal:
    return Decimal(value).quantize(PERCENTAGE_PRECISION, rounding=ROUNDING)


# =============================================================================
# NAV & UNITS
# =============================================================================

def calculate_nav_per_unit(total_value: Decimal, outstanding_units: Decimal) -> Decimal | None:
    """
    NAV per unit = total fund value / outstanding units.

    Returns:
        Quantized NAV, or None when no units are outstanding (undefined)
    """
    if outstanding_units <= ZERO:
        return None
    return quantize_nav(total_value / outstanding_units)


def units_for_amount(amount: Decimal, nav_per_unit: Decimal) -> Decimal:
    """
    Units bought by a cash amount at a NAV.

    Example:
        >>> units_for_amount(Decimal("500.00"), Decimal("10"))
        Decimal('50.000000')
    """
    if nav_per_unit <= ZERO:
        raise ValueError(f"NAV per unit must be positive, got {nav_per_unit}")
    return quantize_units(amount / nav_per_unit)


def amount_for_units(units: Decimal, nav_per_unit: Decimal) -> Decimal:
    """Cash value of units at a NAV, rounded to money precision."""
    return quantize_money(units * nav_per_unit)


def initial_fund_units(total_value: Decimal) -> Decimal:
    """
    Number of units created when an existing portfolio becomes a fund.

    One unit per 10,000 of value, never fewer than 1,000 units, so small
    portfolios still get a fine-grained unit price. A portfolio without
    value starts with no units.
    """
    if total_value <= ZERO:
        return quantize_units(ZERO)
    by_par = (total_value / INITIAL_NAV_PER_UNIT).quantize(Decimal("1"), rounding=ROUNDING)
    return quantize_units(max(MIN_INITIAL_UNITS, by_par))


# =============================================================================
# HOLDING STATE
# =============================================================================

@dataclass(frozen=True)
class HoldingState:
    """
    Position of one investor in one fund.

    Attributes:
        total_units: Units currently held (never negative)
        avg_cost_per_unit: total_investment / total_units
        total_investment: Cost basis of the units still held
        realized_pnl: Accumulated gain/loss on redeemed units
    """
    total_units: Decimal
    avg_cost_per_unit: Decimal
    total_investment: Decimal
    realized_pnl: Decimal

    @classmethod
    def empty(cls) -> HoldingState:
        return cls(
            total_units=quantize_units(ZERO),
            avg_cost_per_unit=quantize_nav(ZERO),
            total_investment=quantize_money(ZERO),
            realized_pnl=quantize_money(ZERO),
        )

    def current_value(self, nav_per_unit: Decimal | None) -> Decimal:
        if nav_per_unit is None:
            return quantize_money(ZERO)
        return amount_for_units(self.total_units, nav_per_unit)

    def unrealized_pnl(self, nav_per_unit: Decimal | None) -> Decimal:
        if nav_per_unit is None:
            return quantize_money(ZERO)
        return quantize_money(self.current_value(nav_per_unit) - self.total_investment)


def apply_subscription(state: HoldingState, units: Decimal, amount: Decimal) -> HoldingState:
    """
    Add purchased units to a holding.

    The average cost becomes the weighted average of the previous cost basis
    and the new purchase: (old investment + amount) / (old units + units).
    """
    if units <= ZERO:
        raise ValueError(f"Subscribed units must be positive, got {units}")

    total_units = quantize_units(state.total_units + units)
    total_investment = quantize_money(state.total_investment + amount)
    return replace(
        state,
        total_units=total_units,
        total_investment=total_investment,
        avg_cost_per_unit=quantize_nav(total_investment / total_units),
    )


def apply_redemption(
        state: HoldingState,
        units: Decimal,
        nav_per_unit: Decimal,
) -> tuple[HoldingState, Decimal]:
    """
    Remove redeemed units from a holding.

    realized P&L = (nav_per_unit - avg_cost_per_unit) × units.
    The average cost of the remaining units does not change.

    Returns:
        (new state, realized P&L of this redemption)

    Raises:
        InsufficientUnitsError: units exceed the holding
    """
    if units <= ZERO:
        raise ValueError(f"Redeemed units must be positive, got {units}")
    if units > state.total_units:
        raise InsufficientUnitsError(requested=units, available=state.total_units)

    realized = quantize_money(units * (nav_per_unit - state.avg_cost_per_unit))
    remaining_units = quantize_units(state.total_units - units)

    if remaining_units == ZERO:
        # Fully exited: drop any cost-basis residue left by rounding
        remaining_investment = quantize_money(ZERO)
        avg_cost = quantize_nav(ZERO)
    else:
        remaining_investment = quantize_money(state.total_investment - units * state.avg_cost_per_unit)
        avg_cost = state.avg_cost_per_unit

    new_state = replace(
        state,
        total_units=remaining_units,
        total_investment=remaining_investment,
        avg_cost_per_unit=avg_cost,
        realized_pnl=quantize_money(state.realized_pnl + realized),
    )
    return new_state, realized


def return_percentage(gain: Decimal, base: Decimal) -> Decimal | None:
    """gain / base × 100, or None for a zero base."""
    if base == ZERO:
        return None
    return quantize_percentage(gain / base * HUNDRED)
