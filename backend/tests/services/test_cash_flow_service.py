# backend/tests/services/test_cash_flow_service.py
"""
Tests for the cash-flow ledger service.

Test Coverage:
- Direction taxonomy and input validation on create
- Balance as of a date and per funding source
- Edit rules: cancelled entries, version checks, linked entries
- Cancel idempotence, delete
- Paged history ordering and filters
- Funding source summary and balance adjustment
"""

from datetime import date
from decimal import Decimal

import pytest

from fundledger.models import CashFlowStatus, CashFlowType, FlowDirection
from fundledger.services.cash_flow.types import resolve_direction, signed_amount
from fundledger.services.exceptions import (
    CashFlowNotFoundError,
    ConflictError,
    InvalidStateError,
    PortfolioNotFoundError,
    ValidationError,
)

from conftest import create_account, create_portfolio


class TestDirectionTaxonomy:
    """Every type maps to a fixed direction, except ADJUSTMENT."""

    @pytest.mark.parametrize("flow_type,direction", [
        (CashFlowType.DEPOSIT, FlowDirection.IN),
        (CashFlowType.WITHDRAWAL, FlowDirection.OUT),
        (CashFlowType.DIVIDEND, FlowDirection.IN),
        (CashFlowType.INTEREST, FlowDirection.IN),
        (CashFlowType.FEE, FlowDirection.OUT),
        (CashFlowType.TAX, FlowDirection.OUT),
        (CashFlowType.BUY_TRADE, FlowDirection.OUT),
        (CashFlowType.SELL_TRADE, FlowDirection.IN),
        (CashFlowType.DEPOSIT_SETTLEMENT, FlowDirection.IN),
        (CashFlowType.DEPOSIT_CREATION, FlowDirection.OUT),
    ])
    def test_fixed_direction(self, flow_type, direction):
        assert resolve_direction(flow_type) == direction

    def test_adjustment_requires_direction(self):
        with pytest.raises(ValueError):
            resolve_direction(CashFlowType.ADJUSTMENT)

    def test_contradicting_direction_rejected(self):
        with pytest.raises(ValueError):
            resolve_direction(CashFlowType.FEE, FlowDirection.IN)


class TestCreate:
    """Tests for CashFlowService.create."""

    def test_deposit_defaults(self, db, portfolio, cash_flow_service):
        """Currency comes from the portfolio, status defaults to COMPLETED."""
        entry = cash_flow_service.create(db, portfolio.id, "deposit", Decimal("1000000"), date(2024, 1, 10))

        assert entry.id is not None
        assert entry.type == CashFlowType.DEPOSIT
        assert entry.direction == FlowDirection.IN
        assert entry.amount == Decimal("1000000.00")
        assert entry.currency == "VND"
        assert entry.status == CashFlowStatus.COMPLETED
        assert entry.version == 1

    def test_amount_is_magnitude(self, db, portfolio, cash_flow_service):
        """Negative input is rejected instead of flipping the direction."""
        with pytest.raises(ValidationError) as exc_info:
            cash_flow_service.create(db, portfolio.id, "WITHDRAWAL", Decimal("-50"))
        assert exc_info.value.field == "amount"

    def test_zero_amount_rejected(self, db, portfolio, cash_flow_service):
        with pytest.raises(ValidationError):
            cash_flow_service.create(db, portfolio.id, "DEPOSIT", 0)

    def test_amount_rounding_to_zero_rejected(self, db, portfolio, cash_flow_service):
        with pytest.raises(ValidationError):
            cash_flow_service.create(db, portfolio.id, "DEPOSIT", Decimal("0.004"))

    def test_unknown_type_rejected(self, db, portfolio, cash_flow_service):
        with pytest.raises(ValidationError) as exc_info:
            cash_flow_service.create(db, portfolio.id, "BONUS", Decimal("10"))
        assert exc_info.value.field == "type"

    def test_adjustment_without_direction_rejected(self, db, portfolio, cash_flow_service):
        with pytest.raises(ValidationError) as exc_info:
            cash_flow_service.create(db, portfolio.id, "ADJUSTMENT", Decimal("10"))
        assert exc_info.value.field == "direction"

    def test_adjustment_with_direction(self, db, portfolio, cash_flow_service):
        entry = cash_flow_service.create(db, portfolio.id, "ADJUSTMENT", Decimal("10"), direction="OUT")
        assert entry.direction == FlowDirection.OUT
        assert signed_amount(entry) == Decimal("-10.00")

    def test_iso_datetime_string_accepted(self, db, portfolio, cash_flow_service):
        entry = cash_flow_service.create(db, portfolio.id, "DEPOSIT", "100", "2024-03-05T09:30:00")
        assert entry.flow_date == date(2024, 3, 5)

    def test_unparsable_date_rejected(self, db, portfolio, cash_flow_service):
        with pytest.raises(ValidationError):
            cash_flow_service.create(db, portfolio.id, "DEPOSIT", "100", "05/03/2024")

    def test_cannot_create_cancelled(self, db, portfolio, cash_flow_service):
        with pytest.raises(ValidationError):
            cash_flow_service.create(db, portfolio.id, "DEPOSIT", "100", status=CashFlowStatus.CANCELLED)

    def test_unknown_portfolio(self, db, cash_flow_service):
        with pytest.raises(PortfolioNotFoundError):
            cash_flow_service.create(db, 999, "DEPOSIT", "100")

    def test_portfolio_funding_source_is_default(self, db, owner, cash_flow_service):
        portfolio = create_portfolio(db, owner, funding_source="VCB")
        entry = cash_flow_service.create(db, portfolio.id, "DEPOSIT", "100")
        assert entry.funding_source == "VCB"


class TestBalance:
    """Tests for get_balance."""

    @pytest.fixture
    def ledger(self, db, portfolio, cash_flow_service):
        create = cash_flow_service.create
        create(db, portfolio.id, "DEPOSIT", "1000", date(2024, 1, 1), funding_source="BANK")
        create(db, portfolio.id, "DIVIDEND", "50", date(2024, 1, 15), funding_source="BANK")
        create(db, portfolio.id, "FEE", "20", date(2024, 2, 1), funding_source="BROKER")
        create(db, portfolio.id, "WITHDRAWAL", "100", date(2024, 2, 10), status=CashFlowStatus.PENDING)
        return portfolio

    def test_completed_inflows_minus_outflows(self, db, ledger, cash_flow_service):
        """The PENDING withdrawal does not count."""
        assert cash_flow_service.get_balance(db, ledger.id) == Decimal("1030.00")

    def test_as_of(self, db, ledger, cash_flow_service):
        assert cash_flow_service.get_balance(db, ledger.id, as_of=date(2024, 1, 31)) == Decimal("1050.00")

    def test_by_funding_source(self, db, ledger, cash_flow_service):
        assert cash_flow_service.get_balance(db, ledger.id, funding_source="BROKER") == Decimal("-20.00")

    def test_empty_ledger(self, db, portfolio, cash_flow_service):
        assert cash_flow_service.get_balance(db, portfolio.id) == Decimal("0.00")

    def test_completing_pending_entry_moves_balance(self, db, ledger, cash_flow_service):
        pending = cash_flow_service.list_all(db, ledger.id, status=CashFlowStatus.PENDING)[0]
        cash_flow_service.update(db, ledger.id, pending.id, {"status": "COMPLETED"})
        assert cash_flow_service.get_balance(db, ledger.id) == Decimal("930.00")


class TestUpdate:
    """Tests for CashFlowService.update."""

    @pytest.fixture
    def entry(self, db, portfolio, cash_flow_service):
        return cash_flow_service.create(db, portfolio.id, "DEPOSIT", "1000", date(2024, 1, 1))

    def test_edit_amount_bumps_version(self, db, portfolio, entry, cash_flow_service):
        updated = cash_flow_service.update(db, portfolio.id, entry.id, {"amount": "1200"})

        assert updated.amount == Decimal("1200.00")
        assert updated.version == 2

    def test_stale_version_rejected(self, db, portfolio, entry, cash_flow_service):
        cash_flow_service.update(db, portfolio.id, entry.id, {"description": "first"})

        with pytest.raises(ConflictError):
            cash_flow_service.update(db, portfolio.id, entry.id, {"description": "second"}, expected_version=1)

    def test_cancelled_entry_cannot_be_edited(self, db, portfolio, entry, cash_flow_service):
        cash_flow_service.cancel(db, portfolio.id, entry.id)

        with pytest.raises(InvalidStateError):
            cash_flow_service.update(db, portfolio.id, entry.id, {"amount": "5"})

    def test_completed_cannot_return_to_pending(self, db, portfolio, entry, cash_flow_service):
        with pytest.raises(InvalidStateError):
            cash_flow_service.update(db, portfolio.id, entry.id, {"status": "PENDING"})

    def test_change_type_recomputes_direction(self, db, portfolio, entry, cash_flow_service):
        updated = cash_flow_service.update(db, portfolio.id, entry.id, {"type": "FEE"})
        assert updated.direction == FlowDirection.OUT

    def test_rejected_edit_leaves_entry_untouched(self, db, portfolio, entry, cash_flow_service):
        """A later invalid field must not leave earlier fields half-applied."""
        with pytest.raises(ValidationError):
            cash_flow_service.update(
                db, portfolio.id, entry.id, {"amount": "999", "flow_date": "not-a-date"}
            )

        assert entry.amount == Decimal("1000.00")
        cash_flow_service.create(db, portfolio.id, "FEE", "10")
        db.refresh(entry)
        assert entry.amount == Decimal("1000.00")
        assert entry.version == 1
        assert cash_flow_service.get_balance(db, portfolio.id) == Decimal("990.00")

    def test_unknown_field_rejected(self, db, portfolio, entry, cash_flow_service):
        with pytest.raises(ValidationError):
            cash_flow_service.update(db, portfolio.id, entry.id, {"portfolio_id": 2})

    def test_entry_of_other_portfolio_not_found(self, db, owner, entry, cash_flow_service):
        other = create_portfolio(db, owner, name="Other")
        with pytest.raises(CashFlowNotFoundError):
            cash_flow_service.update(db, other.id, entry.id, {"amount": "5"})


class TestCancelAndDelete:
    """Tests for cancel and delete."""

    def test_cancel_is_idempotent(self, db, portfolio, cash_flow_service):
        entry = cash_flow_service.create(db, portfolio.id, "DEPOSIT", "1000")

        first = cash_flow_service.cancel(db, portfolio.id, entry.id)
        version = first.version
        second = cash_flow_service.cancel(db, portfolio.id, entry.id)

        assert second.status == CashFlowStatus.CANCELLED
        assert second.version == version
        assert cash_flow_service.get_balance(db, portfolio.id) == Decimal("0.00")

    def test_cancelled_entry_kept_for_audit(self, db, portfolio, cash_flow_service):
        entry = cash_flow_service.create(db, portfolio.id, "DEPOSIT", "1000")
        cash_flow_service.cancel(db, portfolio.id, entry.id)

        page = cash_flow_service.list_cash_flows(db, portfolio.id)
        assert page.total == 1

    def test_delete_removes_entry(self, db, portfolio, cash_flow_service):
        entry = cash_flow_service.create(db, portfolio.id, "DEPOSIT", "1000")
        cash_flow_service.delete(db, portfolio.id, entry.id)

        with pytest.raises(CashFlowNotFoundError):
            cash_flow_service.get_cash_flow(db, portfolio.id, entry.id)

    def test_cancel_on_fund_marks_nav_stale(self, db, empty_fund, cash_flow_service):
        entry = cash_flow_service.create(db, empty_fund.id, "DIVIDEND", "500")
        empty_fund.nav_is_stale = False
        db.commit()

        cash_flow_service.cancel(db, empty_fund.id, entry.id)
        db.refresh(empty_fund)

        assert empty_fund.nav_is_stale is True


class TestHistory:
    """Tests for list_cash_flows."""

    @pytest.fixture
    def entries(self, db, portfolio, cash_flow_service):
        create = cash_flow_service.create
        return [
            create(db, portfolio.id, "DEPOSIT", "100", date(2024, 1, 1)),
            create(db, portfolio.id, "DEPOSIT", "200", date(2024, 1, 5)),
            create(db, portfolio.id, "FEE", "5", date(2024, 1, 5)),
            create(db, portfolio.id, "DIVIDEND", "30", date(2024, 2, 1)),
        ]

    def test_newest_first_ties_in_insertion_order(self, db, portfolio, entries, cash_flow_service):
        page = cash_flow_service.list_cash_flows(db, portfolio.id)
        ids = [e.id for e in page.items]

        assert ids == [entries[3].id, entries[1].id, entries[2].id, entries[0].id]

    def test_paging(self, db, portfolio, entries, cash_flow_service):
        page = cash_flow_service.list_cash_flows(db, portfolio.id, page=2, limit=3)

        assert page.total == 4
        assert [e.id for e in page.items] == [entries[0].id]

    def test_filter_by_types(self, db, portfolio, entries, cash_flow_service):
        page = cash_flow_service.list_cash_flows(db, portfolio.id, types=["fee", "DIVIDEND"])
        assert page.total == 2

    def test_filter_by_date_range(self, db, portfolio, entries, cash_flow_service):
        page = cash_flow_service.list_cash_flows(
            db, portfolio.id, start_date=date(2024, 1, 2), end_date=date(2024, 1, 31)
        )
        assert page.total == 2

    def test_inverted_range_rejected(self, db, portfolio, cash_flow_service):
        with pytest.raises(ValidationError):
            cash_flow_service.list_cash_flows(
                db, portfolio.id, start_date=date(2024, 2, 1), end_date=date(2024, 1, 1)
            )


class TestFundingSourcesAndAdjustment:
    """Tests for funding_source_summary and adjust_balance."""

    def test_summary_groups_unknown(self, db, portfolio, cash_flow_service):
        cash_flow_service.create(db, portfolio.id, "DEPOSIT", "1000", funding_source="BANK")
        cash_flow_service.create(db, portfolio.id, "FEE", "10", funding_source="BANK")
        cash_flow_service.create(db, portfolio.id, "DEPOSIT", "50")

        summaries = {s.funding_source: s for s in cash_flow_service.funding_source_summary(db, portfolio.id)}

        assert set(summaries) == {"BANK", "UNKNOWN"}
        assert summaries["BANK"].net_amount == Decimal("990.00")
        assert summaries["BANK"].transaction_count == 2
        assert summaries["UNKNOWN"].total_inflow == Decimal("50.00")

    def test_adjust_up_records_deposit(self, db, portfolio, cash_flow_service):
        cash_flow_service.create(db, portfolio.id, "DEPOSIT", "100")

        entry = cash_flow_service.adjust_balance(db, portfolio.id, Decimal("250"))

        assert entry.type == CashFlowType.DEPOSIT
        assert entry.amount == Decimal("150.00")
        assert cash_flow_service.get_balance(db, portfolio.id) == Decimal("250.00")

    def test_adjust_down_records_withdrawal(self, db, portfolio, cash_flow_service):
        cash_flow_service.create(db, portfolio.id, "DEPOSIT", "100")

        entry = cash_flow_service.adjust_balance(db, portfolio.id, Decimal("40"))

        assert entry.type == CashFlowType.WITHDRAWAL
        assert entry.amount == Decimal("60.00")

    def test_adjust_to_same_balance_is_noop(self, db, portfolio, cash_flow_service):
        cash_flow_service.create(db, portfolio.id, "DEPOSIT", "100")
        assert cash_flow_service.adjust_balance(db, portfolio.id, Decimal("100")) is None

    def test_other_account_portfolios_isolated(self, db, portfolio, cash_flow_service):
        other_owner = create_account(db, name="Someone Else")
        other = create_portfolio(db, other_owner)
        cash_flow_service.create(db, other.id, "DEPOSIT", "100")

        assert cash_flow_service.get_balance(db, portfolio.id) == Decimal("0.00")
