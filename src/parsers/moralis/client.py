"""Moralis EVM API client for BSC: contract verification, holders, transfers.

Free tier: 25 req/s and 40K compute units per day. Every call reserves its CU
cost on the shared ComputeUnitLimiter before the token-bucket wait, so an
exhausted budget surfaces as BudgetExhaustedError instead of an HTTP 429.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from loguru import logger

from src.parsers.moralis.models import (
    MoralisOwnersPage,
    MoralisTokenHolder,
    MoralisTokenMetadata,
    MoralisTransfer,
    MoralisTransfersPage,
)
from src.parsers.rate_limiter import ComputeUnitLimiter
from src.pipeline.types import OnChainMetrics

BASE_URL = "https://deep-index.moralis.io/api/v2.2"
BSC_CHAIN = "0x38"
MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]

# Compute-unit weights per endpoint
CU_METADATA = 10
CU_OWNERS = 50
CU_TRANSFERS = 50

TOP_HOLDERS_LIMIT = 11
TRANSFERS_LIMIT = 500
CONCENTRATION_THRESHOLD = 80.0  # top-5 share of supply


class MoralisApiError(Exception):
    """Moralis API error."""


class MoralisClient:
    """Async client for Moralis /erc20 endpoints on BSC."""

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        rate_limiter: ComputeUnitLimiter | None = None,
        requests_per_minute: float = 1500.0,
        burst: int = 25,
        daily_cu_budget: int = 40_000,
    ) -> None:
        self._rate_limiter = rate_limiter or ComputeUnitLimiter(
            requests_per_minute, burst, max_cu=daily_cu_budget, name="moralis"
        )
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=15.0,
            headers={"X-API-Key": api_key, "Accept": "application/json"},
        )

    @property
    def remaining_cu(self) -> int:
        return self._rate_limiter.remaining_cu

    async def _request(self, path: str, cu_cost: int, **kwargs: Any) -> Any:
        """GET with CU reservation and retry for transient errors.

        Returns None on 404. BudgetExhaustedError is never retried.
        """
        last_exc: Exception | None = None
        params = {"chain": BSC_CHAIN, **kwargs.pop("params", {})}

        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire(cu_cost)
            try:
                resp = await self._client.get(path, params=params, **kwargs)

                if resp.status_code == 404:
                    return None
                if resp.status_code == 401:
                    raise MoralisApiError("Invalid API key (401)")
                if resp.status_code == 429 or resp.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        logger.debug(f"[MORALIS] {resp.status_code}, retry {attempt + 1} in {delay}s: {path}")
                        await asyncio.sleep(delay)
                        continue
                    raise MoralisApiError(f"HTTP {resp.status_code} after retries: {path}")

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                raise MoralisApiError(f"HTTP {e.response.status_code}: {path}") from e
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_exc = e
                if attempt < MAX_RETRIES:
                    delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                    logger.debug(f"[MORALIS] {type(e).__name__}, retry {attempt + 1} in {delay}s: {path}")
                    await asyncio.sleep(delay)
                    continue
                raise MoralisApiError(f"Request failed after {MAX_RETRIES + 1} attempts: {path}: {e}") from e
            except httpx.RequestError as e:
                raise MoralisApiError(f"Request failed: {path}: {e}") from e

        raise MoralisApiError(f"Request failed after retries: {path}") from last_exc

    async def get_token_metadata(self, address: str) -> MoralisTokenMetadata | None:
        """ERC-20 metadata for a BSC contract, None when not a token there."""
        data = await self._request(
            "/erc20/metadata", CU_METADATA, params={"addresses[0]": address}
        )
        if not data or not isinstance(data, list):
            return None
        meta = MoralisTokenMetadata.model_validate(data[0])
        # Moralis returns a stub row with null name/symbol for unknown addresses
        if meta.name is None and meta.symbol is None and meta.total_supply is None:
            return None
        return meta

    async def get_top_holders(
        self, address: str, limit: int = TOP_HOLDERS_LIMIT
    ) -> list[MoralisTokenHolder]:
        data = await self._request(
            f"/erc20/{address}/owners", CU_OWNERS, params={"limit": limit, "order": "DESC"}
        )
        if not data:
            return []
        return MoralisOwnersPage.model_validate(data).result

    async def get_holder_total(self, address: str) -> int | None:
        """Total holder count from the `total` field of a limit=1 owners page."""
        data = await self._request(f"/erc20/{address}/owners", CU_OWNERS, params={"limit": 1})
        if not data:
            return None
        return MoralisOwnersPage.model_validate(data).total

    async def get_transfers_since(
        self, address: str, since_iso: str, limit: int = TRANSFERS_LIMIT
    ) -> list[MoralisTransfer]:
        data = await self._request(
            f"/erc20/{address}/transfers",
            CU_TRANSFERS,
            params={"from_date": since_iso, "limit": limit},
        )
        if not data:
            return []
        return MoralisTransfersPage.model_validate(data).result

    async def get_on_chain_metrics(self, address: str) -> OnChainMetrics:
        """Holders, top-11 concentration and 24h transfer activity for a contract."""
        since = (datetime.now(UTC) - timedelta(hours=24)).isoformat()
        holders, transfers = await asyncio.gather(
            self.get_top_holders(address),
            self.get_transfers_since(address, since),
        )

        try:
            holder_count = await self.get_holder_total(address)
        except MoralisApiError as e:
            # Holder total is optional; older tokens often lack it
            logger.debug(f"[MORALIS] holder total unavailable for {address}: {e}")
            holder_count = None

        top11 = None
        if holders:
            top11 = sum(h.percentage_relative_to_total_supply or 0.0 for h in holders[:11])
        top5 = sum(h.percentage_relative_to_total_supply or 0.0 for h in holders[:5])

        return OnChainMetrics(
            holder_count=holder_count,
            top11_holders_percent=top11,
            is_concentrated=top5 > CONCENTRATION_THRESHOLD,
            transfers_24h=len(transfers),
            active_addresses_24h=len({t.from_address for t in transfers}),
        )

    async def close(self) -> None:
        await self._client.aclose()
