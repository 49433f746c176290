"""
Fee computation for rate quotes.

Fees are charged on top of the source amount:

    total_amount   = amount + sender_fee + transaction_fee
    receive_amount = amount * rate

The sender fee is a percentage of the amount; the transaction fee is a flat
per-token network fee. Token amounts are quantized to 6 decimal places and
fiat amounts to 2, so the total is an exact Decimal sum with no drift.
"""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from app.config import settings

TOKEN_PRECISION = Decimal("0.000001")
FIAT_PRECISION = Decimal("0.01")


@dataclass(frozen=True)
class FeeSchedule:
    """Static fee configuration."""

    sender_fee_percent: Decimal = Decimal("0.5")
    transaction_fees: dict[str, Decimal] = field(
        default_factory=lambda: {"USDC": Decimal("0.1"), "USDT": Decimal("0.1")}
    )
    default_transaction_fee: Decimal = Decimal("0.1")

    @classmethod
    def from_settings(cls) -> "FeeSchedule":
        return cls(
            sender_fee_percent=Decimal(settings.sender_fee_percent),
            transaction_fees={k.upper(): Decimal(v) for k, v in settings.transaction_fees.items()},
            default_transaction_fee=Decimal(settings.default_transaction_fee),
        )

    def transaction_fee_for(self, token: str) -> Decimal:
        return self.transaction_fees.get(token.upper(), self.default_transaction_fee)


@dataclass(frozen=True)
class FeeBreakdown:
    sender_fee: Decimal
    transaction_fee: Decimal
    total_amount: Decimal
    receive_amount: Decimal


def calculate_fees(
    amount: Decimal,
    token: str,
    fiat_currency: str,
    rate: Decimal,
    schedule: Optional[FeeSchedule] = None,
) -> FeeBreakdown:
    """
    Derive the fee breakdown for converting `amount` of `token` into `fiat_currency`.

    Pure and deterministic. `fiat_currency` does not change the fees under a
    static schedule; it is part of the signature so provider-supplied
    per-corridor schedules can slot in.
    """
    schedule = schedule or FeeSchedule()

    sender_fee = (amount * schedule.sender_fee_percent / Decimal("100")).quantize(
        TOKEN_PRECISION, rounding=ROUND_HALF_UP
    )
    transaction_fee = schedule.transaction_fee_for(token).quantize(
        TOKEN_PRECISION, rounding=ROUND_HALF_UP
    )
    total_amount = amount + sender_fee + transaction_fee
    receive_amount = (amount * rate).quantize(FIAT_PRECISION, rounding=ROUND_HALF_UP)

    return FeeBreakdown(
        sender_fee=sender_fee,
        transaction_fee=transaction_fee,
        total_amount=total_amount,
        receive_amount=receive_amount,
    )
