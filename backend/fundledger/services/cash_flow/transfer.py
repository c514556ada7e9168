# backend/fundledger/services/cash_flow/transfer.py
"""
Transfers between funding sources.

A transfer moves cash from one named source (e.g. a bank account label) to
another inside the same portfolio. It never creates or destroys value: it
writes a WITHDRAWAL tagged with the source and a DEPOSIT tagged with the
destination, same amount, same flow_date, same TRF-... reference.

Both legs are added to one database transaction and committed together, so
a failure leaves neither entry behind. The transfer runs under the
per-portfolio lock because the source balance check reads, then writes.
"""

import logging
import uuid
from datetime import date
from typing import Any

from sqlalchemy.orm import Session

from fundledger.models import CashFlowStatus, CashFlowType
from fundledger.services.cash_flow.service import (
    CashFlowService,
    normalize_funding_source,
    parse_amount,
    parse_flow_date,
)
from fundledger.services.cash_flow.types import TransferResult
from fundledger.services.constants import TRANSFER_REFERENCE_PREFIX
from fundledger.services.exceptions import ValidationError
from fundledger.services.locking import PortfolioLockRegistry, portfolio_locks

logger = logging.getLogger(__name__)


def new_transfer_reference(transfer_date: date) -> str:
    """Shared reference for both legs, e.g. TRF-20240115-1a2b3c4d."""
    return f"{TRANSFER_REFERENCE_PREFIX}-{transfer_date:%Y%m%d}-{uuid.uuid4().hex[:8]}"


class TransferService:
    """
    Builds the two linked ledger entries of a transfer.

    Usage:
        result = TransferService().transfer(
            db, portfolio_id, "VIETCOMBANK", "CASH", Decimal("1000000"), date(2024, 1, 15)
        )
    """

    def __init__(
            self,
            cash_flow_service: CashFlowService | None = None,
            locks: PortfolioLockRegistry | None = None,
    ) -> None:
        self._locks = locks or portfolio_locks
        self._cash_flows = cash_flow_service or CashFlowService(locks=self._locks)

    def transfer(
            self,
            db: Session,
            portfolio_id: int,
            from_source: str,
            to_source: str,
            amount: Any,
            transfer_date: Any = None,
            description: str | None = None,
            allow_overdraft: bool = False,
    ) -> TransferResult:
        """
        Move cash from one funding source to another.

        Args:
            allow_overdraft: Proceed when the source balance is below the
                amount, logging a warning. The amount is never reduced.

        Raises:
            ValidationError: Equal or missing sources, non-positive amount,
                unparsable date, or insufficient source balance
            PortfolioNotFoundError: Unknown portfolio
            PortfolioBusyError: Portfolio lock not acquired in time
        """
        source = normalize_funding_source(from_source)
        destination = normalize_funding_source(to_source)
        if source is None:
            raise ValidationError("from_source is required", field="from_source")
        if destination is None:
            raise ValidationError("to_source is required", field="to_source")
        if source == destination:
            raise ValidationError("from_source and to_source must differ", field="to_source")

        parsed_amount = parse_amount(amount)
        flow_date = parse_flow_date(transfer_date, field="transfer_date")
        reference = new_transfer_reference(flow_date)
        note = description or f"Transfer from {source} to {destination}"
        warnings: list[str] = []

        with self._locks.hold(db, portfolio_id) as portfolio:
            available = self._cash_flows.get_balance(db, portfolio_id, funding_source=source)
            if available < parsed_amount:
                message = (
                    f"Funding source {source} has {available} available, "
                    f"transfer of {parsed_amount} requested"
                )
                if not allow_overdraft:
                    logger.warning("Rejected transfer for portfolio %s: %s", portfolio_id, message)
                    raise ValidationError(message, field="amount")
                logger.warning("Overdraft transfer for portfolio %s: %s", portfolio_id, message)
                warnings.append(message)

            withdrawal = self._cash_flows.build_entry(
                portfolio,
                flow_type=CashFlowType.WITHDRAWAL,
                amount=parsed_amount,
                flow_date=flow_date,
                description=note,
                funding_source=source,
                reference=reference,
                status=CashFlowStatus.COMPLETED,
            )
            deposit = self._cash_flows.build_entry(
                portfolio,
                flow_type=CashFlowType.DEPOSIT,
                amount=parsed_amount,
                flow_date=flow_date,
                description=note,
                funding_source=destination,
                reference=reference,
                status=CashFlowStatus.COMPLETED,
            )
            try:
                db.add_all([withdrawal, deposit])
                db.commit()
            except Exception:
                db.rollback()
                logger.exception("Transfer %s failed; no entries written", reference)
                raise

        db.refresh(withdrawal)
        db.refresh(deposit)
        logger.info(
            "Transferred %s from %s to %s in portfolio %s (%s)",
            parsed_amount, source, destination, portfolio_id, reference,
        )
        return TransferResult(
            withdrawal_entry=withdrawal,
            deposit_entry=deposit,
            reference=reference,
            warnings=warnings,
        )
