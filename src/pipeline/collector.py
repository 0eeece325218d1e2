"""Phase 1: discover ecosystem projects from CoinGecko.

Full mode runs two passes concurrently:
  - pass 1: top-N by market_cap_desc, ranks 1..N
  - pass 2: lowest-volume page (volume_asc), items not in pass 1, first M,
    ranks N+1..N+M, flagged emerging
Incremental mode runs pass 2 only and drops ids the caller already knows.
Ranks are assigned after both passes materialize. Provider errors propagate.
"""

import asyncio
import math
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime

from loguru import logger

from src.parsers.category_map import map_category
from src.parsers.coingecko.client import CoinGeckoClient
from src.parsers.coingecko.models import CoinGeckoMarketItem
from src.pipeline.types import DiscoveredProject

MARKETS_PAGE_SIZE = 250
EMERGING_PAGE_SIZE = 50

MODE_FULL = "full"
MODE_INCREMENTAL = "incremental"


@dataclass
class CollectorStats:
    pass1_count: int = 0
    emerging_count: int = 0
    total: int = 0
    with_market_cap: int = 0
    category_breakdown: dict[str, int] = field(default_factory=dict)


@dataclass
class CollectorResult:
    projects: list[DiscoveredProject]
    stats: CollectorStats
    duration_ms: int


def _to_project(
    item: CoinGeckoMarketItem, rank: int, is_emerging: bool, now: datetime
) -> DiscoveredProject:
    return DiscoveredProject(
        external_id=item.id,
        name=item.name or item.id,
        symbol=item.symbol.upper(),
        ecosystem_rank=rank,
        market_cap_usd=item.market_cap,
        price_change_24h=item.price_change_percentage_24h,
        image_url=item.image,
        # Markets rows carry no tags; refined from coin detail during enrichment
        category_hint=map_category(None),
        is_emerging=is_emerging,
        discovered_at=now,
    )


class Collector:
    def __init__(self, coingecko: CoinGeckoClient) -> None:
        self._coingecko = coingecko

    async def _fetch_top(self, top_n: int) -> list[CoinGeckoMarketItem]:
        items: list[CoinGeckoMarketItem] = []
        for page in range(1, math.ceil(top_n / MARKETS_PAGE_SIZE) + 1):
            per_page = min(MARKETS_PAGE_SIZE, top_n - len(items))
            batch = await self._coingecko.get_markets("market_cap_desc", page, MARKETS_PAGE_SIZE)
            items.extend(batch[:per_page])
            if len(batch) < MARKETS_PAGE_SIZE or len(items) >= top_n:
                break
        return items[:top_n]

    async def _fetch_emerging(self) -> list[CoinGeckoMarketItem]:
        return await self._coingecko.get_markets("volume_asc", 1, EMERGING_PAGE_SIZE)

    async def collect(
        self,
        top_n: int = 200,
        emerging_limit: int = 22,
        mode: str = MODE_FULL,
        existing_ids: set[str] | None = None,
    ) -> CollectorResult:
        if mode not in (MODE_FULL, MODE_INCREMENTAL):
            raise ValueError(f"Unknown collect mode: {mode}")
        t0 = time.monotonic()

        if mode == MODE_INCREMENTAL:
            logger.info(
                f"[COLLECT] incremental: up to {emerging_limit} emerging, "
                f"skipping {len(existing_ids or ())} known ids"
            )
            top_items: list[CoinGeckoMarketItem] = []
            emerging_items = await self._fetch_emerging()
            excluded = set(existing_ids or ())
        else:
            logger.info(f"[COLLECT] full: top {top_n} + {emerging_limit} emerging")
            top_items, emerging_items = await asyncio.gather(
                self._fetch_top(top_n) if top_n > 0 else asyncio.sleep(0, result=[]),
                self._fetch_emerging(),
            )
            excluded = set()

        seen: set[str] = set()
        pass1: list[CoinGeckoMarketItem] = []
        for item in top_items:
            if item.id not in seen:
                seen.add(item.id)
                pass1.append(item)

        pass2: list[CoinGeckoMarketItem] = []
        for item in emerging_items:
            if len(pass2) >= emerging_limit:
                break
            if item.id in seen or item.id in excluded:
                continue
            seen.add(item.id)
            pass2.append(item)

        now = datetime.now(UTC)
        projects = [_to_project(item, i + 1, False, now) for i, item in enumerate(pass1)]
        projects += [_to_project(item, top_n + i + 1, True, now) for i, item in enumerate(pass2)]

        stats = CollectorStats(
            pass1_count=len(pass1),
            emerging_count=len(pass2),
            total=len(projects),
            with_market_cap=sum(1 for p in projects if p.market_cap_usd is not None),
            category_breakdown=dict(Counter(p.category_hint for p in projects)),
        )
        duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"[COLLECT] {stats.total} projects ({stats.pass1_count} top, "
            f"{stats.emerging_count} emerging) in {duration_ms}ms"
        )
        return CollectorResult(projects=projects, stats=stats, duration_ms=duration_ms)
