import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pricewatch.core.config import settings
from pricewatch.core.errors import PriceFetchError
from pricewatch.enums.tokens import BTC_ADDRESS, TOKEN_ADDRESSES, Token
from pricewatch.schemas.swap import SwapFees, SwapLeg, SwapQuote, SwapRates
from pricewatch.services.price_source import PriceSource

SWAP_FEE_RATE = Decimal("0.0003")  # 0.03%


async def quote_eth_to_btc(
    price_source: PriceSource,
    amount_eth: Decimal,
    fetch_timeout_s: Optional[float] = None,
) -> SwapQuote:
    """
    Price `amount_eth` ETH in BTC using current USD prices for both.

    fee is charged on the input side:
    amount=1, ETH=2000 -> fee 0.0003 ETH / 0.60 USD
    """
    amount_eth = Decimal(str(amount_eth))
    if amount_eth <= 0:
        raise ValueError("amount must be positive")

    timeout = fetch_timeout_s or settings.PRICE_FETCH_TIMEOUT_SECONDS
    try:
        eth_usd = await asyncio.wait_for(price_source.price(TOKEN_ADDRESSES[Token.ETH]), timeout)
        btc_usd = await asyncio.wait_for(price_source.price(BTC_ADDRESS), timeout)
    except asyncio.TimeoutError as e:
        raise PriceFetchError("swap", "timed out") from e

    total_usd = amount_eth * eth_usd
    amount_btc = total_usd / btc_usd
    fee_eth = amount_eth * SWAP_FEE_RATE
    fee_usd = total_usd * SWAP_FEE_RATE

    return SwapQuote(
        input=SwapLeg(amount=amount_eth, currency="ETH"),
        output=SwapLeg(amount=amount_btc.quantize(Decimal("0.00000001")), currency="BTC"),
        exchangeRates=SwapRates(
            ETH_USD=eth_usd.quantize(Decimal("0.01")),
            BTC_USD=btc_usd.quantize(Decimal("0.01")),
        ),
        fees=SwapFees(
            percentage="0.03%",
            eth=fee_eth.quantize(Decimal("0.000001")),
            usd=fee_usd.quantize(Decimal("0.01")),
        ),
        timestamp=datetime.now(timezone.utc),
    )
