from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from pricewatch.core.errors import PriceFetchError
from pricewatch.dependencies.services import get_price_source
from pricewatch.schemas.swap import SwapQuote
from pricewatch.services.price_source import PriceSource
from pricewatch.services.swap_service import quote_eth_to_btc

router = APIRouter(tags=["Swap"])


@router.get("/swap-rate", response_model=SwapQuote)
async def swap_rate(
    amount: Decimal = Query(..., gt=0, description="Amount of ETH to swap"),
    source: PriceSource = Depends(get_price_source),
):
    try:
        return await quote_eth_to_btc(source, amount)
    except PriceFetchError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Price provider unavailable: {e.reason}",
        )
