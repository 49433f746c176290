"""
Provider reference data: supported currencies, payout institutions, and
account-name verification.

Currency and institution lookups are idempotent reads, so they go through
with_retry. When the currency list cannot be fetched at all, the built-in
list of supported African fiat currencies is served instead so a payout form
can still render.
"""

import logging
from typing import Optional

from app.engine.errors import AccountVerificationFailed, CatalogUnavailable, InvalidInput
from app.engine.retry import ProviderError, RetryPolicy, with_retry
from app.providers.base import AccountVerification, Currency, Institution, SettlementProvider

logger = logging.getLogger("offramp.catalog")

FALLBACK_CURRENCIES = [
    Currency(code="NGN", name="Nigerian Naira", symbol="₦"),
    Currency(code="KES", name="Kenyan Shilling", symbol="KSh"),
    Currency(code="UGX", name="Ugandan Shilling", symbol="USh"),
    Currency(code="GHS", name="Ghanaian Cedi", symbol="₵"),
    Currency(code="TZS", name="Tanzanian Shilling", symbol="TSh"),
    Currency(code="ZAR", name="South African Rand", symbol="R"),
    Currency(code="EGP", name="Egyptian Pound", symbol="E£"),
    Currency(code="MAD", name="Moroccan Dirham", symbol="DH"),
]


class CatalogClient:
    def __init__(self, provider: SettlementProvider, retry_policy: Optional[RetryPolicy] = None):
        self.provider = provider
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    async def list_currencies(self) -> list[Currency]:
        try:
            return await with_retry(self.provider.list_currencies, policy=self.retry_policy)
        except ProviderError as e:
            logger.warning("Currency list unavailable, serving fallback list: %s", e)
            return list(FALLBACK_CURRENCIES)

    async def list_institutions(self, currency: Optional[str]) -> list[Institution]:
        if not currency or not currency.strip():
            raise InvalidInput("Missing currency parameter")
        currency = currency.strip().upper()
        try:
            return await with_retry(self.provider.list_institutions, currency, policy=self.retry_policy)
        except ProviderError as e:
            raise CatalogUnavailable(f"Failed to fetch institutions for {currency}", detail=e.body) from e

    async def verify_account(
        self,
        institution: Optional[str],
        account_identifier: Optional[str],
    ) -> AccountVerification:
        errors = []
        if not institution or not institution.strip():
            errors.append("Recipient institution is required")
        if not account_identifier or not account_identifier.strip():
            errors.append("Recipient account identifier is required")
        if errors:
            raise InvalidInput("; ".join(errors), errors=errors)

        try:
            verification = await self.provider.verify_account(institution.strip(), account_identifier.strip())
        except ProviderError as e:
            logger.warning("Account verification failed for %s: %s | %s", institution, e, (e.body or "")[:200])
            raise AccountVerificationFailed("Account verification failed", detail=e.body) from e

        if not verification.verified:
            logger.warning("Account verification for %s returned no account name", institution)
            raise AccountVerificationFailed(
                "Account verification failed",
                detail="Provider did not resolve an account name",
            )
        return verification
