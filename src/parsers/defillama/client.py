"""DeFiLlama client: TVL enrichment for DeFi projects.

Public API, no key. ~600 req/min is safe in practice.
The BSC protocol list is fetched once per run and cached on the instance;
call clear_protocol_cache() at the start of each enrichment pass.
"""

import asyncio
import re
from typing import Any

import httpx
from loguru import logger

from src.parsers.defillama.models import DefiLlamaProtocol, DefiLlamaProtocolDetail
from src.parsers.rate_limiter import RateLimiter
from src.pipeline.types import TvlMetrics

BASE_URL = "https://api.llama.fi"
MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]

BSC_CHAIN_NAMES = {"bsc", "binance"}
_NORMALIZE_RE = re.compile(r"[\s\-_.]")


class DefiLlamaApiError(Exception):
    """DeFiLlama API error."""


def _normalize(name: str) -> str:
    return _NORMALIZE_RE.sub("", name.lower())


def _pct_change(now: float, then: float) -> float | None:
    if then <= 0:
        return None
    return (now - then) / then * 100


class DefiLlamaClient:
    """Async client for DeFiLlama /protocols and /protocol/{slug}."""

    def __init__(
        self,
        base_url: str = BASE_URL,
        rate_limiter: RateLimiter | None = None,
        requests_per_minute: float = 600.0,
        burst: int = 10,
    ) -> None:
        self._rate_limiter = rate_limiter or RateLimiter(requests_per_minute, burst, name="defillama")
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=30.0, headers={"Accept": "application/json"}
        )
        self._protocols: list[DefiLlamaProtocol] | None = None
        self._cache_lock = asyncio.Lock()

    async def _request(self, path: str) -> Any:
        """Rate-limited GET with retry. Returns None on 404."""
        last_exc: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.get(path)
                if resp.status_code == 404:
                    return None
                if resp.status_code == 429 or resp.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        logger.debug(f"[DEFILLAMA] {resp.status_code}, retry {attempt + 1} in {delay}s: {path}")
                        await asyncio.sleep(delay)
                        continue
                    raise DefiLlamaApiError(f"HTTP {resp.status_code} after retries: {path}")
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as e:
                raise DefiLlamaApiError(f"HTTP {e.response.status_code}: {path}") from e
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_exc = e
                if attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                    continue
                raise DefiLlamaApiError(f"Request failed after {MAX_RETRIES + 1} attempts: {path}: {e}") from e
            except httpx.RequestError as e:
                raise DefiLlamaApiError(f"Request failed: {path}: {e}") from e

        raise DefiLlamaApiError(f"Request failed after retries: {path}") from last_exc

    def clear_protocol_cache(self) -> None:
        self._protocols = None

    async def get_protocols(self) -> list[DefiLlamaProtocol]:
        """BSC-listed protocols. Fetched once, then served from cache."""
        if self._protocols is not None:
            return self._protocols
        async with self._cache_lock:
            if self._protocols is not None:
                return self._protocols
            data = await self._request("/protocols") or []
            protocols = [DefiLlamaProtocol.model_validate(p) for p in data]
            self._protocols = [
                p for p in protocols if any(c.lower() in BSC_CHAIN_NAMES for c in p.chains)
            ]
            logger.info(f"[DEFILLAMA] {len(protocols)} protocols, {len(self._protocols)} on BSC")
            return self._protocols

    async def find_slug(self, project_name: str) -> str | None:
        """Exact slug/name match first, then a containment match either way."""
        needle = _normalize(project_name)
        if not needle:
            return None
        protocols = await self.get_protocols()

        for p in protocols:
            if p.slug.lower() == needle or _normalize(p.name) == needle:
                return p.slug

        for p in protocols:
            hay = _normalize(p.name)
            if hay and (needle in hay or hay in needle):
                logger.debug(f'[DEFILLAMA] Fuzzy match: "{project_name}" -> "{p.slug}"')
                return p.slug

        return None

    async def get_protocol_detail(self, slug: str) -> DefiLlamaProtocolDetail | None:
        data = await self._request(f"/protocol/{slug}")
        if data is None:
            return None
        return DefiLlamaProtocolDetail.model_validate(data)

    async def get_tvl(self, project_name: str) -> TvlMetrics:
        """Resolve a slug by name and read current TVL plus 7d/30d change."""
        slug = await self.find_slug(project_name)
        if not slug:
            return TvlMetrics()

        detail = await self.get_protocol_detail(slug)
        if detail is None:
            return TvlMetrics(slug=slug)

        values = [pt.totalLiquidityUSD for pt in detail.tvl]
        bsc_tvl = detail.currentChainTvls.get("BSC", detail.currentChainTvls.get("Binance"))
        tvl_usd = bsc_tvl if bsc_tvl is not None else (values[-1] if values else None)

        change_7d = change_30d = None
        if values:
            now = values[-1]
            d7 = values[-8] if len(values) >= 8 else now
            d30 = values[-31] if len(values) >= 31 else now
            change_7d = _pct_change(now, d7)
            change_30d = _pct_change(now, d30)

        return TvlMetrics(
            tvl_usd=tvl_usd,
            tvl_change_7d=change_7d,
            tvl_change_30d=change_30d,
            slug=slug,
        )

    async def close(self) -> None:
        await self._client.aclose()
