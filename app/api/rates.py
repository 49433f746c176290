"""
Rate quote endpoint.

GET /rates?token=USDC&amount=1&currency=NGN&network=base

Missing or malformed parameters are rejected with 400 before the provider is
called; provider failures surface as 500 so the UI can show a retrying state.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.deps import get_rate_client
from app.engine.formatting import format_fiat_amount, format_rate, format_token_amount
from app.engine.rates import RateQuoteClient

router = APIRouter(tags=["rates"])


class QuoteOut(BaseModel):
    token: str
    fiat_currency: str
    network: str
    source_amount: str
    rate: str
    sender_fee: str
    transaction_fee: str
    total_amount: str
    receive_amount: str
    fetched_at: str


class QuoteResponse(BaseModel):
    success: bool = True
    quote: QuoteOut
    display: str
    total_display: str
    receive_display: str


@router.get("/rates", response_model=QuoteResponse)
async def get_rate(
    token: Optional[str] = Query(None, description="Token symbol, e.g. USDC"),
    amount: Optional[str] = Query(None, description="Amount in token units"),
    currency: Optional[str] = Query(None, description="Fiat currency code, e.g. NGN"),
    network: Optional[str] = Query(None, description="Chain network, e.g. base"),
    client: RateQuoteClient = Depends(get_rate_client),
):
    """Quote a token -> fiat conversion with fee breakdown."""
    quote = await client.get_rate(token, amount, currency, network)
    return QuoteResponse(
        quote=QuoteOut(**quote.to_dict()),
        display=format_rate(quote.rate, quote.token, quote.fiat_currency),
        total_display=format_token_amount(quote.total_amount, quote.token),
        receive_display=format_fiat_amount(quote.receive_amount, quote.fiat_currency),
    )
