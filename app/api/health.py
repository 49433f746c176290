"""Liveness endpoint."""

from fastapi import APIRouter, Depends

from app.api.deps import get_provider
from app.providers.base import SettlementProvider

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(provider: SettlementProvider = Depends(get_provider)):
    return {"success": True, "status": "ok", "provider": provider.name}
