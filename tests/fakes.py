import asyncio
from decimal import Decimal

from pricewatch.core.errors import NotificationError, PriceFetchError
from pricewatch.enums.tokens import BTC_ADDRESS, TOKEN_ADDRESSES, Token


class FakePriceSource:
    """In-memory PriceSource keyed by contract address."""

    def __init__(self):
        self.prices = {}
        self.calls = []
        self.failing = set()
        self.gate = None  # asyncio.Event: block every fetch until set

    def set(self, token, price):
        address = BTC_ADDRESS if token == "BTC" else TOKEN_ADDRESSES[Token(token)]
        self.prices[address] = Decimal(str(price))

    def fail(self, token):
        self.failing.add(TOKEN_ADDRESSES[Token(token)])

    async def price(self, asset):
        self.calls.append(asset)
        if self.gate is not None:
            await self.gate.wait()
        if asset in self.failing or asset not in self.prices:
            raise PriceFetchError(asset, "unavailable")
        return self.prices[asset]

    async def aclose(self):
        pass


class RecordingNotifier:
    def __init__(self, fail=False, delay=0.0):
        self.sent = []
        self.fail = fail
        self.delay = delay

    async def send(self, destination, subject, body):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise NotificationError(destination, "smtp down")
        self.sent.append((destination, subject, body))

    def to(self, destination):
        return [m for m in self.sent if m[0] == destination]
