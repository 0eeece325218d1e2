"""Shared test fixtures: record builders and a controllable clock."""

from datetime import UTC, datetime

import pytest

from src.pipeline.types import (
    AnalyzedProject,
    DiscoveredProject,
    EnrichedProject,
    MarketMetrics,
    Missing,
    Ok,
    OnChainMetrics,
    TokenResolution,
    TvlMetrics,
)


class FakeClock:
    """Seconds-based clock for RateLimiter; advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


def _project(**kwargs) -> DiscoveredProject:
    defaults = {
        "external_id": "pancakeswap-token",
        "name": "PancakeSwap",
        "symbol": "CAKE",
        "ecosystem_rank": 10,
        "market_cap_usd": 600_000_000.0,
        "price_change_24h": 1.5,
        "image_url": None,
        "category_hint": "other",
        "is_emerging": False,
        "discovered_at": datetime(2026, 1, 1, tzinfo=UTC),
    }
    defaults.update(kwargs)
    return DiscoveredProject(**defaults)


def _resolution(**kwargs) -> TokenResolution:
    defaults = {
        "contract_address": "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82",
        "source": "moralis",
        "verified": True,
        "on_chain_symbol": "CAKE",
    }
    defaults.update(kwargs)
    return TokenResolution(**defaults)


def _enriched(
    project: DiscoveredProject | None = None,
    resolution: TokenResolution | None = None,
    category: str = "defi",
    on_chain=None,
    market=None,
    tvl=None,
    social=None,
) -> EnrichedProject:
    return EnrichedProject(
        project=project or _project(),
        resolution=resolution or _resolution(),
        category=category,
        on_chain=on_chain if on_chain is not None else Ok(OnChainMetrics(holder_count=20_000)),
        market=market if market is not None else Ok(MarketMetrics(price_usd=2.0, volume_24h_usd=50_000_000.0)),
        tvl=tvl if tvl is not None else Ok(TvlMetrics(tvl_usd=1_500_000_000.0, slug="pancakeswap")),
        social=social if social is not None else Missing("social enrichment not run"),
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_project():
    return _project


@pytest.fixture
def make_resolution():
    return _resolution


@pytest.fixture
def make_enriched():
    return _enriched


@pytest.fixture
def make_scored():
    """Builds a ScoredProject through the real Scorer."""
    from src.pipeline.scorer import Scorer

    def _build(enriched: EnrichedProject | None = None, **kwargs):
        return Scorer().score_one(enriched or _enriched(**kwargs))

    return _build


@pytest.fixture
def make_analyzed(make_scored):
    def _build(scored=None, analysis=None, **kwargs):
        return AnalyzedProject(scored=scored or make_scored(**kwargs), analysis=analysis)

    return _build
