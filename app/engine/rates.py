"""
Rate quote client.

Fetches a token -> fiat exchange rate from the settlement provider and derives
the fee-adjusted totals. Inputs are checked before any network call. The
client never retries on its own; a Poller reschedules on RateUnavailable.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from app.config import settings
from app.engine.errors import InvalidInput, RateUnavailable
from app.engine.fees import FeeSchedule, calculate_fees
from app.engine.retry import ProviderError
from app.engine.validation import parse_decimal
from app.providers.base import SettlementProvider

logger = logging.getLogger("offramp.rates")

IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class RateQuote:
    """A point-in-time rate plus fee breakdown. Superseded, never mutated."""

    token: str
    fiat_currency: str
    network: str
    source_amount: Decimal
    rate: Decimal
    sender_fee: Decimal
    transaction_fee: Decimal
    total_amount: Decimal
    receive_amount: Decimal
    fetched_at: datetime

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "fiat_currency": self.fiat_currency,
            "network": self.network,
            "source_amount": str(self.source_amount),
            "rate": str(self.rate),
            "sender_fee": str(self.sender_fee),
            "transaction_fee": str(self.transaction_fee),
            "total_amount": str(self.total_amount),
            "receive_amount": str(self.receive_amount),
            "fetched_at": self.fetched_at.isoformat(),
        }


class RateQuoteClient:
    """Quotes conversions against a settlement provider."""

    def __init__(
        self,
        provider: SettlementProvider,
        fee_schedule: Optional[FeeSchedule] = None,
        network: Optional[str] = None,
    ):
        self.provider = provider
        self.fee_schedule = fee_schedule or FeeSchedule.from_settings()
        self.network = network or settings.default_network

    async def get_rate(
        self,
        token: Optional[str],
        amount,
        fiat_currency: Optional[str],
        network: Optional[str] = None,
    ) -> RateQuote:
        """
        Fetch a quote for converting `amount` of `token` into `fiat_currency`.

        Raises:
            InvalidInput: amount is not a positive number, or token/currency
                is missing or malformed. No network call is made.
            RateUnavailable: the provider failed or returned an unusable rate.
        """
        source_amount = self._check_inputs(token, amount, fiat_currency)
        token = token.strip().upper()
        fiat_currency = fiat_currency.strip().upper()
        network = network or self.network

        try:
            raw_rate = await self.provider.fetch_rate(token, str(source_amount), fiat_currency, network)
        except ProviderError as e:
            logger.warning(
                "Rate fetch failed for %s %s->%s: %s | %s",
                source_amount, token, fiat_currency, e, (e.body or "")[:200],
            )
            raise RateUnavailable(f"Exchange rate unavailable for {token}/{fiat_currency}", detail=e.body) from e

        rate = parse_decimal(raw_rate)
        if rate is None or rate <= 0:
            logger.warning("Provider returned unusable rate for %s/%s: %r", token, fiat_currency, raw_rate)
            raise RateUnavailable(
                f"Provider returned a non-numeric rate for {token}/{fiat_currency}",
                detail=str(raw_rate),
            )

        fees = calculate_fees(source_amount, token, fiat_currency, rate, self.fee_schedule)
        quote = RateQuote(
            token=token,
            fiat_currency=fiat_currency,
            network=network,
            source_amount=source_amount,
            rate=rate,
            sender_fee=fees.sender_fee,
            transaction_fee=fees.transaction_fee,
            total_amount=fees.total_amount,
            receive_amount=fees.receive_amount,
            fetched_at=datetime.now(timezone.utc),
        )
        logger.debug("Quote %s %s -> %s at %s", source_amount, token, fiat_currency, rate)
        return quote

    @staticmethod
    def _check_inputs(token, amount, fiat_currency) -> Decimal:
        errors = []
        if not token or not IDENTIFIER_RE.match(str(token).strip()):
            errors.append("Token must be a non-empty identifier")
        if not fiat_currency or not IDENTIFIER_RE.match(str(fiat_currency).strip()):
            errors.append("Fiat currency must be a non-empty identifier")

        parsed = parse_decimal(amount)
        if parsed is None:
            errors.append(f"Amount must be numeric: {amount}")
        elif parsed <= 0:
            errors.append("Amount must be greater than 0")

        if errors:
            raise InvalidInput("; ".join(errors), errors=errors)
        return parsed
