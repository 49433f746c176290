"""Display helpers for rates and amounts."""

from decimal import Decimal


def format_rate(rate: Decimal, token: str, fiat_currency: str) -> str:
    """``1 USDC = 1,500.25 NGN``"""
    return f"1 {token.upper()} = {rate:,.2f} {fiat_currency.upper()}"


def format_token_amount(amount: Decimal, token: str) -> str:
    """Source leg, at token precision: ``10.600000 cUSD``"""
    return f"{amount:.6f} {token}"


def format_fiat_amount(amount: Decimal, fiat_currency: str) -> str:
    """Receive leg, 2 decimal places with grouping: ``15,002.50 NGN``"""
    return f"{amount:,.2f} {fiat_currency.upper()}"
