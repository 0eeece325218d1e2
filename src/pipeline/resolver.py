"""Phase 1.5: resolve and verify each project's BSC token contract.

Cascade per candidate, first hit wins:
  1. MANUAL_OVERRIDES (by CoinGecko id, case-insensitive), source=manual
  2. CoinGecko /coins/{id} platforms, every BSC key alias
  3. Moralis /erc20/metadata verification of whichever address was found
No registry address is a valid terminal state (contract_address=None), not a
failure. Errors stay on the candidate's resolution and never abort others.
"""

import time
from dataclasses import dataclass

from loguru import logger

from src.parsers.coingecko.client import CoinGeckoApiError, CoinGeckoClient, bsc_address_from_platforms
from src.parsers.coingecko.models import CoinGeckoCoinDetail
from src.parsers.moralis.client import MoralisApiError, MoralisClient
from src.parsers.moralis.models import MoralisTokenMetadata
from src.parsers.rate_limiter import BudgetExhaustedError
from src.parsers.twitter.client import extract_handle
from src.pipeline.types import DiscoveredProject, TokenResolution
from src.utils.async_batch import bounded_gather

NO_ADDRESS_ERROR = "No BSC address in CoinGecko platforms"
NOT_TOKEN_ERROR = "Contract not found or not ERC-20 on BSC"


@dataclass(frozen=True)
class ManualOverride:
    external_id: str
    contract_address: str
    symbol: str


# Edge cases where CoinGecko platforms is missing or wrong for BSC.
MANUAL_OVERRIDES: dict[str, ManualOverride] = {
    o.external_id.lower(): o
    for o in [
        # ManualOverride("seraph", "0xd6b48ccf41a62eb3891e58d0f006b19b01d50cca", "SERAPH"),
    ]
}


@dataclass
class ResolverStats:
    total: int = 0
    resolved: int = 0
    verified: int = 0
    manual_overrides: int = 0
    no_token: int = 0
    failed: int = 0


@dataclass
class ResolverResult:
    resolutions: dict[str, TokenResolution]
    stats: ResolverStats
    duration_ms: int


class Resolver:
    def __init__(
        self,
        coingecko: CoinGeckoClient,
        moralis: MoralisClient | None,
        overrides: dict[str, ManualOverride] | None = None,
        concurrency: int = 5,
    ) -> None:
        self._coingecko = coingecko
        self._moralis = moralis
        self._overrides = {
            k.lower(): v for k, v in (MANUAL_OVERRIDES if overrides is None else overrides).items()
        }
        self._concurrency = concurrency

    async def _verify(self, address: str) -> tuple[MoralisTokenMetadata | None, str | None]:
        """On-chain metadata check. Never raises; the error string explains a miss."""
        if self._moralis is None:
            return None, "Chain verifier not configured"
        try:
            meta = await self._moralis.get_token_metadata(address)
        except BudgetExhaustedError as e:
            return None, f"Verification skipped: {e}"
        except MoralisApiError as e:
            return None, f"Verification failed: {e}"
        if meta is None:
            return None, NOT_TOKEN_ERROR
        return meta, None

    async def _detail(self, project: DiscoveredProject) -> CoinGeckoCoinDetail:
        return await self._coingecko.get_coin_detail(project.external_id)

    @staticmethod
    def _build(
        address: str,
        source: str,
        meta: MoralisTokenMetadata | None,
        error: str | None,
        detail: CoinGeckoCoinDetail | None,
    ) -> TokenResolution:
        return TokenResolution(
            contract_address=address,
            source=source,
            verified=bool(meta and meta.verified_contract),
            on_chain_name=meta.name if meta else None,
            on_chain_symbol=meta.symbol if meta else None,
            total_supply=meta.total_supply if meta else None,
            decimals=meta.decimals_int if meta else None,
            error=error,
            categories=tuple(detail.category_tags) if detail else (),
            twitter_handle=extract_handle(detail.links.twitter_screen_name) if detail else None,
        )

    async def resolve_one(self, project: DiscoveredProject) -> TokenResolution:
        override = self._overrides.get(project.external_id.lower())
        if override is not None:
            logger.info(f"[RESOLVE] Override: {project.name} -> {override.contract_address}")
            try:
                detail = await self._detail(project)
            except CoinGeckoApiError as e:
                # Detail only feeds categories/handle here; the override address stands
                logger.debug(f"[RESOLVE] detail unavailable for override {project.external_id}: {e}")
                detail = None
            meta, error = await self._verify(override.contract_address)
            return self._build(override.contract_address, "manual", meta, error, detail)

        try:
            detail = await self._detail(project)
        except CoinGeckoApiError as e:
            logger.warning(f"[RESOLVE] {project.name}: CoinGecko detail failed: {e}")
            return TokenResolution(
                contract_address=None, source=None, verified=False,
                error=f"CoinGecko detail failed: {e}",
            )

        address = bsc_address_from_platforms(detail.platforms)
        if address is None:
            return TokenResolution(
                contract_address=None,
                source=None,
                verified=False,
                error=NO_ADDRESS_ERROR,
                categories=tuple(detail.category_tags),
                twitter_handle=extract_handle(detail.links.twitter_screen_name),
            )

        meta, error = await self._verify(address)
        # Chain verifier confirmed the token; otherwise the address is registry-only
        source = "moralis" if meta is not None else "coingecko"
        return self._build(address, source, meta, error, detail)

    async def _safe_resolve(self, project: DiscoveredProject) -> TokenResolution:
        try:
            return await self.resolve_one(project)
        except Exception as e:
            logger.warning(f"[RESOLVE] {project.name}: unexpected error: {e}")
            return TokenResolution(
                contract_address=None, source=None, verified=False, error=f"Resolution error: {e}"
            )

    async def resolve(self, projects: list[DiscoveredProject]) -> ResolverResult:
        t0 = time.monotonic()
        logger.info(f"[RESOLVE] Resolving token addresses for {len(projects)} projects")

        results = await bounded_gather(projects, self._safe_resolve, self._concurrency)
        resolutions = {p.external_id: r for p, r in zip(projects, results)}

        stats = ResolverStats(total=len(projects))
        for r in resolutions.values():
            if r.contract_address:
                stats.resolved += 1
            if r.verified:
                stats.verified += 1
            if r.source == "manual":
                stats.manual_overrides += 1
            if r.contract_address is None:
                if r.error == NO_ADDRESS_ERROR:
                    stats.no_token += 1
                else:
                    stats.failed += 1

        duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"[RESOLVE] {stats.resolved} resolved, {stats.verified} verified, "
            f"{stats.no_token} no-token, {stats.failed} failed in {duration_ms}ms"
        )
        return ResolverResult(resolutions=resolutions, stats=stats, duration_ms=duration_ms)
