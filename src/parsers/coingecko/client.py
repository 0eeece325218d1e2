"""CoinGecko API client: ecosystem discovery, coin detail and market data.

Pro keys go in x-cg-pro-api-key. Without a key the public endpoint is used,
which tolerates roughly 30 calls/min.
"""

import asyncio
from typing import Any

import httpx
from loguru import logger

from src.parsers.coingecko.models import CoinGeckoCoinDetail, CoinGeckoMarketItem
from src.parsers.rate_limiter import RateLimiter
from src.pipeline.types import MarketMetrics

BASE_URL = "https://api.coingecko.com/api/v3"
MAX_RETRIES = 2
RETRY_DELAYS = [2.0, 6.0]

# Providers are inconsistent about the BSC platform key
BSC_PLATFORM_KEYS = ("binance-smart-chain", "bnb-smart-chain", "binancecoin", "bsc")
LIQUIDITY_PROXY_RATIO = 0.1


class CoinGeckoApiError(Exception):
    """CoinGecko API error."""


def bsc_address_from_platforms(platforms: dict[str, str | None]) -> str | None:
    for key in BSC_PLATFORM_KEYS:
        addr = platforms.get(key)
        if addr:
            return addr
    return None


class CoinGeckoClient:
    """Async client for CoinGecko /coins endpoints.

    Coin detail responses are memoized for the lifetime of the client, which
    is one pipeline run: the resolver and the enricher both read /coins/{id}.
    """

    def __init__(
        self,
        api_key: str = "",
        base_url: str = BASE_URL,
        category: str = "bnb-chain-ecosystem",
        rate_limiter: RateLimiter | None = None,
        requests_per_minute: float = 30.0,
    ) -> None:
        self.category = category
        self._rate_limiter = rate_limiter or RateLimiter(requests_per_minute, name="coingecko")
        self._detail_cache: dict[str, CoinGeckoCoinDetail] = {}
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-cg-pro-api-key"] = api_key
        self._client = httpx.AsyncClient(base_url=base_url, timeout=20.0, headers=headers)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Rate-limited request with retry on 429/5xx/timeouts."""
        last_exc: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.request(method, path, **kwargs)

                if resp.status_code == 429 or resp.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        logger.debug(
                            f"[COINGECKO] {resp.status_code}, retry {attempt + 1} in {delay}s: {path}"
                        )
                        await asyncio.sleep(delay)
                        continue
                    raise CoinGeckoApiError(f"HTTP {resp.status_code} after retries: {path}")

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                raise CoinGeckoApiError(f"HTTP {e.response.status_code}: {path}") from e
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_exc = e
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[COINGECKO] {type(e).__name__}, retry {attempt + 1} in {delay}s: {path}")
                    await asyncio.sleep(delay)
                    continue
                raise CoinGeckoApiError(
                    f"Request failed after {MAX_RETRIES + 1} attempts: {path}: {e}"
                ) from e
            except httpx.RequestError as e:
                raise CoinGeckoApiError(f"Request failed: {path}: {e}") from e

        raise CoinGeckoApiError(f"Request failed after retries: {path}") from last_exc

    async def get_markets(
        self,
        order: str = "market_cap_desc",
        page: int = 1,
        per_page: int = 250,
    ) -> list[CoinGeckoMarketItem]:
        """One page of /coins/markets for the configured ecosystem category."""
        data = await self._request(
            "GET",
            "/coins/markets",
            params={
                "vs_currency": "usd",
                "category": self.category,
                "order": order,
                "per_page": per_page,
                "page": page,
                "sparkline": "false",
            },
        )
        if not isinstance(data, list):
            raise CoinGeckoApiError(f"Unexpected /coins/markets payload: {type(data).__name__}")
        items = []
        for raw in data:
            try:
                items.append(CoinGeckoMarketItem.model_validate(raw))
            except Exception as e:
                logger.debug(f"[COINGECKO] Skipping malformed market row: {e}")
        logger.debug(f"[COINGECKO] markets order={order} page={page}: {len(items)} items")
        return items

    async def get_coin_detail(self, coin_id: str) -> CoinGeckoCoinDetail:
        cached = self._detail_cache.get(coin_id)
        if cached is not None:
            return cached
        data = await self._request(
            "GET",
            f"/coins/{coin_id}",
            params={
                "localization": "false",
                "tickers": "false",
                "market_data": "true",
                "community_data": "false",
                "developer_data": "false",
            },
        )
        detail = CoinGeckoCoinDetail.model_validate(data)
        self._detail_cache[coin_id] = detail
        return detail

    async def get_bsc_address(self, coin_id: str) -> str | None:
        detail = await self.get_coin_detail(coin_id)
        return bsc_address_from_platforms(detail.platforms)

    async def get_market_data(self, coin_id: str) -> MarketMetrics:
        """Price, volume, 7d/30d change and ATH drawdown from coin detail."""
        md = (await self.get_coin_detail(coin_id)).market_data
        price = md.current_price.get("usd")
        volume = md.total_volume.get("usd")
        ath = md.ath.get("usd")

        drawdown = None
        if ath and price:
            drawdown = (ath - price) / ath * 100

        return MarketMetrics(
            price_usd=price,
            volume_24h_usd=volume,
            liquidity_usd=volume * LIQUIDITY_PROXY_RATIO if volume else None,
            price_change_7d=md.price_change_percentage_7d,
            price_change_30d=md.price_change_percentage_30d,
            ath=ath,
            ath_drawdown_percent=drawdown,
        )

    async def close(self) -> None:
        await self._client.aclose()
