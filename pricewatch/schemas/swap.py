from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class SwapLeg(BaseModel):
    amount: Decimal
    currency: str


class SwapRates(BaseModel):
    ETH_USD: Decimal
    BTC_USD: Decimal


class SwapFees(BaseModel):
    percentage: str
    eth: Decimal
    usd: Decimal


class SwapQuote(BaseModel):
    input: SwapLeg
    output: SwapLeg
    exchangeRates: SwapRates
    fees: SwapFees
    timestamp: datetime
