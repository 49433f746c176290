"""
Request-scoped dependencies.

The provider (and its HTTP connection pool) is shared. Engine clients are
built per request so quote and order state never leaks between sessions.
Tests swap the provider through `app.dependency_overrides[get_provider]`.
"""

import logging
from typing import Optional

from fastapi import Depends

from app.config import settings
from app.engine.catalog import CatalogClient
from app.engine.orders import OrderLifecycleClient
from app.engine.rates import RateQuoteClient
from app.providers.base import SettlementProvider
from app.providers.mock_provider import MockSettlementProvider
from app.providers.paycrest import PaycrestProvider

logger = logging.getLogger("offramp.api")

_provider: Optional[SettlementProvider] = None


def get_provider() -> SettlementProvider:
    """Return the configured settlement provider."""
    global _provider
    if _provider is None:
        if settings.use_mock_provider:
            logger.warning("Using mock settlement provider; do not enable in production")
            _provider = MockSettlementProvider()
        else:
            _provider = PaycrestProvider()
    return _provider


async def close_provider() -> None:
    global _provider
    if _provider is not None:
        await _provider.aclose()
        _provider = None


def get_rate_client(provider: SettlementProvider = Depends(get_provider)) -> RateQuoteClient:
    return RateQuoteClient(provider)


def get_order_client(provider: SettlementProvider = Depends(get_provider)) -> OrderLifecycleClient:
    return OrderLifecycleClient(provider)


def get_catalog_client(provider: SettlementProvider = Depends(get_provider)) -> CatalogClient:
    return CatalogClient(provider)
