"""
Order request validation.

Before an order reaches the provider we verify:
  1. Token is present
  2. Amount is present, numeric and positive
  3. Fiat currency is present and a 3-letter code
  4. Payout institution is present
  5. Account identifier is present
  6. Optional rate, if given, is positive
  7. Optional return address, if given, is an EVM address

Every violation is collected, not just the first. A missing field produces
exactly one error.
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional

CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")
ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass
class OrderRequest:
    """A prospective settlement order, built once per submission attempt."""

    token: str
    amount: str
    fiat_currency: str
    institution: str
    account_identifier: str
    account_name: str = ""
    recipient_memo: Optional[str] = None
    reference: Optional[str] = None
    network: Optional[str] = None
    rate: Optional[str] = None
    return_address: Optional[str] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def parse_decimal(value) -> Optional[Decimal]:
    """Parse a finite Decimal from str/int/Decimal, or return None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return parsed if parsed.is_finite() else None


def validate_order(request: OrderRequest) -> ValidationResult:
    errors: list[str] = []

    if not _present(request.token):
        errors.append("Token is required")

    if not _present(request.amount):
        errors.append("Amount is required")
    else:
        amount = parse_decimal(request.amount)
        if amount is None:
            errors.append(f"Amount must be numeric: {request.amount}")
        elif amount <= 0:
            errors.append("Amount must be greater than 0")

    if not _present(request.fiat_currency):
        errors.append("Fiat currency is required")
    elif not CURRENCY_RE.match(request.fiat_currency.strip()):
        errors.append(f"Fiat currency must be a 3-letter code: {request.fiat_currency}")

    if not _present(request.institution):
        errors.append("Recipient institution is required")

    if not _present(request.account_identifier):
        errors.append("Recipient account identifier is required")

    if _present(request.rate):
        rate = parse_decimal(request.rate)
        if rate is None or rate <= 0:
            errors.append("Exchange rate must be greater than 0")

    if _present(request.return_address) and not ADDRESS_RE.match(request.return_address.strip()):
        errors.append("Return address must be a 0x-prefixed 40-hex-digit address")

    return ValidationResult(valid=not errors, errors=errors)


def _present(value) -> bool:
    if value is None:
        return False
    return bool(str(value).strip())
