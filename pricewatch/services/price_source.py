from decimal import Decimal, InvalidOperation
from typing import Optional, Protocol

import httpx
import structlog

from pricewatch.core.config import settings
from pricewatch.core.errors import PriceFetchError

log = structlog.get_logger("price_source")


class PriceSource(Protocol):
    async def price(self, asset: str) -> Decimal:
        """Current USD price for an asset identifier; raises PriceFetchError."""
        ...


class HttpPriceSource:
    """
    Token price client for a Moralis-style REST endpoint:
    GET {base_url}/erc20/{address}/price?chain=... -> {"usdPrice": ...}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        chain: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.PRICE_API_URL).rstrip("/")
        self.chain = chain or settings.PRICE_CHAIN
        api_key = api_key if api_key is not None else settings.PRICE_API_KEY
        headers = {"accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=headers,
            timeout=timeout_s or settings.PRICE_FETCH_TIMEOUT_SECONDS,
        )

    async def price(self, asset: str) -> Decimal:
        url = f"{self.base_url}/erc20/{asset}/price"
        try:
            resp = await self._client.get(url, params={"chain": self.chain})
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise PriceFetchError(asset, str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise PriceFetchError(asset, "response was not JSON") from e

        raw = payload.get("usdPrice") if isinstance(payload, dict) else None
        if raw is None:
            raise PriceFetchError(asset, "no usdPrice in response")
        try:
            value = Decimal(str(raw))
        except InvalidOperation as e:
            raise PriceFetchError(asset, f"unparseable usdPrice {raw!r}") from e
        if not value.is_finite() or value <= 0:
            raise PriceFetchError(asset, f"non-positive usdPrice {raw!r}")

        log.debug("price_fetched", asset=asset, usd=str(value))
        return value

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
