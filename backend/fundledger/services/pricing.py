# backend/fundledger/services/pricing.py
"""
Market prices for fund valuation.

The engine does not care how prices are ingested; it only needs "the
latest price of asset X on or before date D". PriceProvider is that seam.

PriceService wraps a provider with:
- a bounded timeout for the whole lookup (PriceLookupTimeoutError)
- exponential-backoff retries for transient provider failures
  (PriceProviderUnavailableError), via tenacity
- a completeness check: every requested asset must be priced
  (PriceNotAvailableError), NAV is never computed from partial prices

Only read paths (NAV refresh, valuation, snapshots) look prices up, so
retrying is safe.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from fundledger.config import settings
from fundledger.models import AssetPrice
from fundledger.services.exceptions import (
    PriceLookupTimeoutError,
    PriceNotAvailableError,
    PriceProviderUnavailableError,
)

logger = logging.getLogger(__name__)


class PriceProvider(ABC):
    """
    Source of asset prices.

    Implementations raise PriceProviderUnavailableError for transient
    failures (retried) and simply omit assets they cannot price.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs and error messages."""

    @abstractmethod
    def get_prices(self, asset_ids: list[int], as_of: date) -> dict[int, Decimal]:
        """
        Latest price on or before `as_of` for each asset.

        Returns:
            {asset_id: price} for the assets that have a price
        """


class DatabasePriceProvider(PriceProvider):
    """
    Reads prices recorded in the asset_prices table.

    Opens its own session per lookup because the lookup runs on a worker
    thread, never on the request's session.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @property
    def name(self) -> str:
        return "database"

    def get_prices(self, asset_ids: list[int], as_of: date) -> dict[int, Decimal]:
        if not asset_ids:
            return {}

        latest = (
            select(AssetPrice.asset_id, func.max(AssetPrice.price_date).label("price_date"))
            .where(AssetPrice.asset_id.in_(asset_ids), AssetPrice.price_date <= as_of)
            .group_by(AssetPrice.asset_id)
            .subquery()
        )
        query = select(AssetPrice.asset_id, AssetPrice.price).join(
            latest,
            (AssetPrice.asset_id == latest.c.asset_id) & (AssetPrice.price_date == latest.c.price_date),
        )

        with self._session_factory() as session:
            return {asset_id: price for asset_id, price in session.execute(query).all()}


class PriceService:
    """
    Bounded, retrying, all-or-nothing price lookups.

    Attributes:
        RETRY_MIN_WAIT / RETRY_MAX_WAIT: Backoff bounds in seconds
    """

    RETRY_MIN_WAIT: float = 0.1
    RETRY_MAX_WAIT: float = 2.0
    RETRY_MULTIPLIER: float = 0.2

    def __init__(
            self,
            provider: PriceProvider,
            timeout_seconds: float | None = None,
            max_attempts: int | None = None,
    ) -> None:
        self.provider = provider
        self.timeout_seconds = (
            settings.price_lookup_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.max_attempts = settings.price_lookup_retries if max_attempts is None else max_attempts
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {self.timeout_seconds}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="price-lookup")

    def close(self) -> None:
        """Stop the lookup threads; lookups already running finish in the background."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.debug("Closed price lookups via %s", self.provider.name)

    def get_prices(self, asset_ids: list[int], as_of: date) -> dict[int, Decimal]:
        """
        Price every asset in `asset_ids` as of a date.

        Raises:
            PriceLookupTimeoutError: No answer within timeout_seconds
            PriceProviderUnavailableError: Still failing after all retries
            PriceNotAvailableError: At least one asset has no price
        """
        wanted = sorted(set(asset_ids))
        if not wanted:
            return {}

        future = self._executor.submit(self._fetch_with_retry, wanted, as_of)
        try:
            prices = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            logger.error(
                "Price lookup via %s timed out after %ss for %d asset(s)",
                self.provider.name, self.timeout_seconds, len(wanted),
            )
            raise PriceLookupTimeoutError(self.timeout_seconds, provider=self.provider.name) from None

        missing = [asset_id for asset_id in wanted if prices.get(asset_id) is None]
        if missing:
            raise PriceNotAvailableError(missing, as_of=as_of, provider=self.provider.name)

        return {asset_id: Decimal(prices[asset_id]) for asset_id in wanted}

    def _fetch_with_retry(self, asset_ids: list[int], as_of: date) -> dict[int, Decimal]:

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type(PriceProviderUnavailableError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> dict[int, Decimal]:
            return self.provider.get_prices(asset_ids, as_of)

        return _inner()
