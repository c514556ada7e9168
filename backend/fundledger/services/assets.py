# backend/fundledger/services/assets.py
"""
Asset catalogue and price records.

This is the write side of the market-data boundary: an external feed (or an
operator) registers instruments and posts closing prices, which
DatabasePriceProvider then reads for valuations.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from fundledger.config import settings
from fundledger.models import Asset, AssetPrice, AssetType
from fundledger.services.constants import ZERO
from fundledger.services.exceptions import AssetNotFoundError, ConflictError, ValidationError

logger = logging.getLogger(__name__)


class AssetService:
    """Registers assets and records their prices."""

    @staticmethod
    def get_asset(db: Session, asset_id: int) -> Asset:
        asset = db.get(Asset, asset_id)
        if asset is None:
            raise AssetNotFoundError(asset_id)
        return asset

    def create_asset(
            self,
            db: Session,
            symbol: str,
            name: str | None = None,
            asset_type: AssetType | str = AssetType.STOCK,
            currency: str | None = None,
    ) -> Asset:
        """
        Register a new asset.

        Raises:
            ValidationError: Empty symbol or unknown asset type
            ConflictError: Symbol already registered
        """
        normalized = (symbol or "").strip().upper()
        if not normalized:
            raise ValidationError("Symbol cannot be empty", field="symbol")
        try:
            parsed_type = AssetType(asset_type)
        except ValueError:
            raise ValidationError(f"Unknown asset type: {asset_type!r}", field="asset_type") from None

        if db.scalar(select(Asset.id).where(Asset.symbol == normalized)) is not None:
            raise ConflictError(f"Asset {normalized} already exists")

        asset = Asset(
            symbol=normalized,
            name=name,
            asset_type=parsed_type,
            currency=(currency or settings.default_currency).upper(),
        )
        db.add(asset)
        db.commit()
        db.refresh(asset)
        logger.info("Registered asset %s (%s) as id %s", normalized, parsed_type.value, asset.id)
        return asset

    def list_assets(self, db: Session, asset_type: AssetType | None = None) -> list[Asset]:
        query = select(Asset).order_by(Asset.symbol)
        if asset_type is not None:
            query = query.where(Asset.asset_type == asset_type)
        return list(db.scalars(query).all())

    def record_price(self, db: Session, asset_id: int, price_date: date, price: Any) -> AssetPrice:
        """
        Store the closing price of an asset for a date.

        Posting a price for a date that already has one replaces it; feeds
        resend corrected closes.
        """
        self.get_asset(db, asset_id)
        try:
            value = Decimal(str(price))
        except InvalidOperation:
            raise ValidationError(f"Invalid price: {price!r}", field="price") from None
        if not value.is_finite() or value <= ZERO:
            raise ValidationError(f"price must be greater than 0, got {price}", field="price")

        record = db.scalars(
            select(AssetPrice).where(AssetPrice.asset_id == asset_id, AssetPrice.price_date == price_date)
        ).first()
        if record is None:
            record = AssetPrice(asset_id=asset_id, price_date=price_date, price=value)
            db.add(record)
        else:
            record.price = value
        db.commit()
        db.refresh(record)
        logger.debug("Price of asset %s on %s set to %s", asset_id, price_date, value)
        return record
