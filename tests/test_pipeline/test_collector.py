"""Tests for ecosystem discovery."""

import pytest

from src.parsers.category_map import map_category
from src.parsers.coingecko.client import CoinGeckoApiError
from src.parsers.coingecko.models import CoinGeckoMarketItem
from src.pipeline.collector import Collector


def _items(prefix: str, n: int) -> list[CoinGeckoMarketItem]:
    return [
        CoinGeckoMarketItem(id=f"{prefix}-{i}", name=f"{prefix} {i}", symbol=prefix, market_cap=1e6 * (n - i))
        for i in range(n)
    ]


class FakeCoinGecko:
    def __init__(self, top: list, low_volume: list, fail: bool = False) -> None:
        self.top = top
        self.low_volume = low_volume
        self.fail = fail
        self.calls: list[tuple[str, int, int]] = []

    async def get_markets(self, order: str = "market_cap_desc", page: int = 1, per_page: int = 250):
        self.calls.append((order, page, per_page))
        if self.fail:
            raise CoinGeckoApiError("HTTP 503 after retries: /coins/markets")
        if order == "volume_asc":
            return self.low_volume[:per_page]
        start = (page - 1) * per_page
        return self.top[start : start + per_page]


@pytest.mark.asyncio
async def test_full_mode_counts_and_ranks():
    """Top 10 plus 5 emerging that do not overlap pass 1."""
    top = _items("top", 10)
    low = top[:3] + _items("low", 8)
    collector = Collector(FakeCoinGecko(top, low))

    result = await collector.collect(top_n=10, emerging_limit=5)

    assert result.stats.pass1_count == 10
    assert result.stats.emerging_count == 5
    assert result.stats.total == 15
    ranks = [p.ecosystem_rank for p in result.projects]
    assert ranks == list(range(1, 16))
    emerging = [p for p in result.projects if p.is_emerging]
    assert [p.external_id for p in emerging] == [f"low-{i}" for i in range(5)]
    assert all(p.ecosystem_rank > 10 for p in emerging)
    assert len({p.external_id for p in result.projects}) == 15


@pytest.mark.asyncio
async def test_full_mode_paginates_top_pass():
    top = _items("top", 300)
    fake = FakeCoinGecko(top, [])
    result = await Collector(fake).collect(top_n=260, emerging_limit=0)

    assert result.stats.pass1_count == 260
    assert ("market_cap_desc", 2, 250) in fake.calls
    assert result.projects[-1].ecosystem_rank == 260


@pytest.mark.asyncio
async def test_incremental_mode_excludes_known_ids():
    low = _items("low", 10)
    fake = FakeCoinGecko(_items("top", 5), low)
    known = {"low-0", "low-1", "low-2"}

    result = await Collector(fake).collect(
        top_n=200, emerging_limit=4, mode="incremental", existing_ids=known
    )

    assert [p.external_id for p in result.projects] == ["low-3", "low-4", "low-5", "low-6"]
    assert [p.ecosystem_rank for p in result.projects] == [201, 202, 203, 204]
    assert all(p.is_emerging for p in result.projects)
    assert all(order == "volume_asc" for order, _, _ in fake.calls)


@pytest.mark.asyncio
async def test_provider_error_propagates():
    with pytest.raises(CoinGeckoApiError):
        await Collector(FakeCoinGecko([], [], fail=True)).collect(top_n=10)


@pytest.mark.asyncio
async def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        await Collector(FakeCoinGecko([], [])).collect(mode="weekly")


@pytest.mark.asyncio
async def test_stats_count_market_cap_and_categories():
    top = [
        CoinGeckoMarketItem(id="a", name="A", symbol="a", market_cap=5e6),
        CoinGeckoMarketItem(id="b", name="B", symbol="b", market_cap=None),
    ]
    result = await Collector(FakeCoinGecko(top, [])).collect(top_n=2, emerging_limit=0)

    assert result.stats.with_market_cap == 1
    assert result.stats.category_breakdown == {"other": 2}
    assert result.projects[0].symbol == "A"


@pytest.mark.parametrize(
    "tags,expected",
    [
        (["Meme", "BNB Chain Ecosystem"], "meme"),
        (["Decentralized Exchange (DEX)"], "defi"),
        (["Lending/Borrowing Protocols"], "defi"),
        (["GameFi", "Play To Earn"], "gaming"),
        (["Oracle"], "infra"),
        ("NFT Marketplace", "nft"),
        (["BNB Chain Ecosystem"], "other"),
        ([], "other"),
        (None, "other"),
    ],
)
def test_map_category(tags, expected):
    assert map_category(tags) == expected
