from decimal import Decimal

import pytest

from pricewatch.core.errors import PriceFetchError
from pricewatch.enums.tokens import Token
from pricewatch.services.swap_service import quote_eth_to_btc


@pytest.mark.asyncio
async def test_quote_converts_through_usd_and_charges_fee(price_source):
    price_source.set(Token.ETH, "2000")
    price_source.set("BTC", "40000")

    quote = await quote_eth_to_btc(price_source, Decimal("1.5"))

    assert quote.input.amount == Decimal("1.5")
    assert quote.input.currency == "ETH"
    assert quote.output.amount == Decimal("0.07500000")
    assert quote.output.currency == "BTC"
    assert quote.exchangeRates.ETH_USD == Decimal("2000.00")
    assert quote.exchangeRates.BTC_USD == Decimal("40000.00")
    assert quote.fees.percentage == "0.03%"
    assert quote.fees.eth == Decimal("0.000450")
    assert quote.fees.usd == Decimal("0.90")


@pytest.mark.asyncio
async def test_quote_propagates_provider_failure(price_source):
    price_source.set(Token.ETH, "2000")  # no BTC price

    with pytest.raises(PriceFetchError):
        await quote_eth_to_btc(price_source, Decimal("1"))


@pytest.mark.asyncio
async def test_quote_rejects_non_positive_amount(price_source):
    with pytest.raises(ValueError):
        await quote_eth_to_btc(price_source, Decimal("0"))
