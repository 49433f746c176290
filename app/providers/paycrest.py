"""
Paycrest settlement provider over HTTP.

Wraps the Paycrest v1 REST API:

    GET  /v1/rates/{token}/{amount}/{currency}?network=
    GET  /v1/currencies
    GET  /v1/institutions/{currency}
    POST /v1/orders
    GET  /v1/orders/{id}
    POST /v1/verify-account

Responses use the envelope {"status": ..., "message": ..., "data": ...}.
Transport and status failures are mapped onto the ProviderError hierarchy so
the engine can decide between retry and surfacing the failure.
"""

import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.engine.retry import RETRIABLE_STATUS_CODES, PermanentError, ProviderError, RateLimitError
from app.providers.base import (
    AccountVerification,
    Currency,
    Institution,
    ProviderOrder,
    ProviderOrderRequest,
    SettlementProvider,
)

logger = logging.getLogger("offramp.paycrest")


class PaycrestProvider(SettlementProvider):
    """Paycrest REST API client."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.paycrest_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.paycrest_api_key
        self.api_secret = api_secret if api_secret is not None else settings.paycrest_api_secret

        if not self.api_key or not self.api_secret:
            logger.warning("Paycrest API credentials not configured")

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
        )

    @property
    def name(self) -> str:
        return "paycrest"

    def _headers(self) -> dict[str, str]:
        return {
            "API-Key": self.api_key,
            "API-Secret": self.api_secret,
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}/v1{path}"
        try:
            resp = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(f"Paycrest transport error: {e}", status_code=503) from e

        if resp.status_code >= 400:
            body = resp.text
            logger.warning("Paycrest %s %s failed: %d %s", method, path, resp.status_code, body[:500])
            message = f"Paycrest API error: {resp.status_code} {resp.reason_phrase}"

            if resp.status_code == 429:
                retry_after = resp.headers.get("Retry-After")
                err = RateLimitError(message, retry_after=_parse_float(retry_after))
                err.body = body
                raise err
            if resp.status_code in RETRIABLE_STATUS_CODES or resp.status_code >= 500:
                raise ProviderError(message, status_code=resp.status_code, retriable=True, body=body)
            if resp.status_code == 404:
                raise ProviderError(message, status_code=404, retriable=False, body=body)
            raise PermanentError(message, status_code=resp.status_code, body=body)

        try:
            payload = resp.json()
        except ValueError as e:
            raise ProviderError("Paycrest returned a non-JSON body", status_code=502, body=resp.text) from e

        if isinstance(payload, dict) and payload.get("status") not in (None, "success"):
            raise PermanentError(
                f"Paycrest API error: {payload.get('message') or payload.get('status')}",
                status_code=resp.status_code,
                body=resp.text,
            )
        return payload.get("data") if isinstance(payload, dict) else payload

    async def fetch_rate(self, token: str, amount: str, currency: str, network: str) -> str:
        data = await self._request(
            "GET",
            f"/rates/{token}/{amount}/{currency}",
            params={"network": network} if network else None,
        )
        return "" if data is None else str(data)

    async def list_currencies(self) -> list[Currency]:
        data = await self._request("GET", "/currencies") or []
        return [
            Currency(
                code=item.get("code", ""),
                name=item.get("name", ""),
                symbol=item.get("symbol", ""),
                type=item.get("type", "fiat"),
                networks=list(item.get("networks") or []),
            )
            for item in data
        ]

    async def list_institutions(self, currency: str) -> list[Institution]:
        data = await self._request("GET", f"/institutions/{currency}") or []
        return [
            Institution(
                code=item.get("code", ""),
                name=item.get("name", ""),
                type=item.get("type", "bank"),
                currency=item.get("currency", currency),
            )
            for item in data
        ]

    async def create_order(self, request: ProviderOrderRequest) -> ProviderOrder:
        data = await self._request("POST", "/orders", json=request.to_payload())
        return ProviderOrder.from_payload(data or {})

    async def fetch_order(self, order_id: str) -> ProviderOrder:
        data = await self._request("GET", f"/orders/{order_id}")
        return ProviderOrder.from_payload(data or {})

    async def verify_account(self, institution: str, account_identifier: str) -> AccountVerification:
        data = await self._request(
            "POST",
            "/verify-account",
            json={"institution": institution, "accountIdentifier": account_identifier},
        )
        # Paycrest returns the resolved account name as a bare string
        if isinstance(data, dict):
            account_name = data.get("accountName") or data.get("account_name") or ""
        else:
            account_name = str(data or "")
        return AccountVerification(
            account_name=account_name,
            account_identifier=account_identifier,
            institution=institution,
            verified=bool(account_name),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def _parse_float(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
