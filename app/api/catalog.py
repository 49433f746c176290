"""
Reference data endpoints.

GET  /currencies              - Supported fiat currencies.
GET  /institutions?currency=  - Payout institutions for a currency.
POST /verify-account          - Resolve the account holder's name.
"""

from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.deps import get_catalog_client
from app.engine.catalog import CatalogClient

router = APIRouter(tags=["catalog"])


class VerifyAccountRequest(BaseModel):
    institution: Optional[str] = None
    account_identifier: Optional[str] = None


@router.get("/currencies")
async def list_currencies(client: CatalogClient = Depends(get_catalog_client)):
    currencies = await client.list_currencies()
    return {"success": True, "currencies": [asdict(c) for c in currencies]}


@router.get("/institutions")
async def list_institutions(
    currency: Optional[str] = Query(None, description="Fiat currency code"),
    client: CatalogClient = Depends(get_catalog_client),
):
    institutions = await client.list_institutions(currency)
    return {"success": True, "institutions": [asdict(i) for i in institutions]}


@router.post("/verify-account")
async def verify_account(
    body: VerifyAccountRequest,
    client: CatalogClient = Depends(get_catalog_client),
):
    verification = await client.verify_account(body.institution, body.account_identifier)
    return {"success": True, "account": asdict(verification)}
