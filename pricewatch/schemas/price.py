from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from pricewatch.enums.tokens import Token


class PriceSample(BaseModel):
    token: Token
    price: Decimal
    observed_at: datetime
    id: Optional[int] = None


class HourlyPrice(BaseModel):
    token: Token
    hour: datetime
    avg_price: Decimal
