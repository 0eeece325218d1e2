"""Phase 2: multi-source enrichment.

Per candidate, three independent blocks fetched concurrently:
  - TVL (DeFiLlama): DeFi-category projects only
  - on-chain (Moralis): verified contract address only
  - market (CoinGecko coin detail): any project with a CoinGecko id
Each block is wrapped on its own, so one provider failing never blocks the
other two. Social enrichment runs afterwards in social_enricher.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TypeVar

from loguru import logger

from src.parsers.category_map import map_category
from src.parsers.coingecko.client import CoinGeckoClient
from src.parsers.defillama.client import DefiLlamaClient
from src.parsers.moralis.client import MoralisClient
from src.parsers.rate_limiter import BudgetExhaustedError
from src.pipeline.types import (
    BlockResult,
    DiscoveredProject,
    EnrichedProject,
    Failed,
    Missing,
    Ok,
    TokenResolution,
)
from src.utils.async_batch import bounded_gather

T = TypeVar("T")


@dataclass
class EnricherStats:
    total: int = 0
    tvl_matches: int = 0
    moralis_enriched: int = 0
    moralis_skipped: int = 0
    market_data_enriched: int = 0
    failures: int = 0


@dataclass
class EnricherResult:
    projects: list[EnrichedProject]
    stats: EnricherStats
    duration_ms: int


def refine_category(project: DiscoveredProject, resolution: TokenResolution) -> str:
    """Registry tags from coin detail win over the discovery-time hint."""
    if resolution.categories:
        return map_category(list(resolution.categories))
    return project.category_hint


async def fetch_block(
    label: str, name: str, fetch: Callable[[], Awaitable[T]]
) -> BlockResult[T]:
    """Run one provider fetch and tag the outcome."""
    try:
        return Ok(await fetch())
    except BudgetExhaustedError as e:
        logger.info(f"[ENRICH] {label} skipped for {name}: {e}")
        return Failed(str(e), skipped=True)
    except Exception as e:
        logger.warning(f"[ENRICH] {label} failed for {name}: {e}")
        return Failed(f"{type(e).__name__}: {e}")


class Enricher:
    def __init__(
        self,
        coingecko: CoinGeckoClient,
        moralis: MoralisClient | None,
        defillama: DefiLlamaClient,
        concurrency: int = 5,
    ) -> None:
        self._coingecko = coingecko
        self._moralis = moralis
        self._defillama = defillama
        self._concurrency = concurrency

    async def enrich_one(
        self, project: DiscoveredProject, resolution: TokenResolution
    ) -> EnrichedProject:
        category = refine_category(project, resolution)
        name = project.name

        if category == "defi":
            tvl_task = fetch_block("TVL", name, lambda: self._defillama.get_tvl(name))
        else:
            tvl_task = asyncio.sleep(0, result=Missing(f"category {category} has no TVL"))

        address = resolution.contract_address
        if address and resolution.verified and self._moralis is not None:
            on_chain_task = fetch_block(
                "on-chain", name, lambda: self._moralis.get_on_chain_metrics(address)
            )
        elif self._moralis is None:
            on_chain_task = asyncio.sleep(0, result=Missing("chain verifier not configured"))
        else:
            on_chain_task = asyncio.sleep(0, result=Missing("no verified contract"))

        if project.external_id:
            market_task = fetch_block(
                "market", name, lambda: self._coingecko.get_market_data(project.external_id)
            )
        else:
            market_task = asyncio.sleep(0, result=Missing("no CoinGecko id"))

        tvl, on_chain, market = await asyncio.gather(tvl_task, on_chain_task, market_task)

        return EnrichedProject(
            project=project,
            resolution=resolution,
            category=category,
            on_chain=on_chain,
            market=market,
            tvl=tvl,
            enriched_at=datetime.now(UTC),
        )

    async def enrich(
        self,
        projects: list[DiscoveredProject],
        resolutions: dict[str, TokenResolution],
    ) -> EnricherResult:
        t0 = time.monotonic()
        logger.info(f"[ENRICH] Enriching {len(projects)} projects")
        self._defillama.clear_protocol_cache()

        def _resolution_for(p: DiscoveredProject) -> TokenResolution:
            return resolutions.get(p.external_id) or TokenResolution(
                contract_address=None, source=None, verified=False, error="No resolution"
            )

        enriched = await bounded_gather(
            projects, lambda p: self.enrich_one(p, _resolution_for(p)), self._concurrency
        )

        stats = EnricherStats(total=len(enriched))
        for e in enriched:
            stats.tvl_matches += e.tvl_enriched
            stats.moralis_enriched += e.moralis_enriched
            stats.market_data_enriched += e.market_data_enriched
            if isinstance(e.on_chain, Failed) and e.on_chain.skipped:
                stats.moralis_skipped += 1
            for block in (e.tvl, e.on_chain, e.market):
                if isinstance(block, Failed) and not block.skipped:
                    stats.failures += 1

        duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"[ENRICH] done in {duration_ms / 1000:.1f}s: DeFiLlama={stats.tvl_matches}, "
            f"Moralis={stats.moralis_enriched} (skipped {stats.moralis_skipped}), "
            f"MarketData={stats.market_data_enriched}, failures={stats.failures}"
        )
        return EnricherResult(projects=enriched, stats=stats, duration_ms=duration_ms)
