from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from pricewatch.dependencies.services import get_price_store
from pricewatch.enums.tokens import Token
from pricewatch.schemas.price import HourlyPrice
from pricewatch.services.price_store import PriceStore

router = APIRouter(prefix="/prices", tags=["Prices"])


# HOURLY AVERAGES
@router.get("/hourly", response_model=List[HourlyPrice])
def hourly_prices(
    hours: int = Query(24, ge=1, le=24 * 7),
    token: Optional[Token] = None,
    store: PriceStore = Depends(get_price_store),
):
    return store.hourly_averages(token=token, window_hours=hours)
