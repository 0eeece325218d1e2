"""Tests for the DeFiLlama TVL client."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.parsers.defillama.client import DefiLlamaClient


def _resp(data, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json = lambda: data
    return resp


PROTOCOLS = [
    {"name": "PancakeSwap AMM", "slug": "pancakeswap-amm", "chains": ["Binance", "Ethereum"]},
    {"name": "Venus", "slug": "venus", "chains": ["BSC"]},
    {"name": "Uniswap V3", "slug": "uniswap-v3", "chains": ["Ethereum"]},
]


def _detail(points: list[float], bsc: float | None = None) -> dict:
    data = {
        "name": "Venus",
        "tvl": [{"date": i, "totalLiquidityUSD": v} for i, v in enumerate(points)],
        "currentChainTvls": {},
    }
    if bsc is not None:
        data["currentChainTvls"]["BSC"] = bsc
    return data


@pytest.mark.asyncio
async def test_protocols_filtered_to_bsc_and_cached():
    client = DefiLlamaClient()
    with patch.object(client, "_client") as mock_http:
        mock_http.get = AsyncMock(return_value=_resp(PROTOCOLS))
        first = await client.get_protocols()
        second = await client.get_protocols()

    assert [p.slug for p in first] == ["pancakeswap-amm", "venus"]
    assert first is second
    assert mock_http.get.await_count == 1

    client.clear_protocol_cache()
    with patch.object(client, "_client") as mock_http:
        mock_http.get = AsyncMock(return_value=_resp(PROTOCOLS))
        await client.get_protocols()
    assert mock_http.get.await_count == 1
    await client.close()


@pytest.mark.asyncio
async def test_find_slug_exact_then_fuzzy():
    client = DefiLlamaClient()
    with patch.object(client, "_client") as mock_http:
        mock_http.get = AsyncMock(return_value=_resp(PROTOCOLS))
        assert await client.find_slug("Venus") == "venus"
        assert await client.find_slug("PancakeSwap") == "pancakeswap-amm"
        assert await client.find_slug("Uniswap") is None


@pytest.mark.asyncio
async def test_get_tvl_computes_changes():
    client = DefiLlamaClient()
    points = [100.0] * 23 + [150.0] * 7 + [200.0]  # 31 points
    responses = [_resp(PROTOCOLS), _resp(_detail(points, bsc=180.0))]
    with patch.object(client, "_client") as mock_http:
        mock_http.get = AsyncMock(side_effect=responses)
        tvl = await client.get_tvl("Venus")

    assert tvl.slug == "venus"
    assert tvl.tvl_usd == 180.0
    assert tvl.tvl_change_30d == pytest.approx(100.0)
    assert tvl.tvl_change_7d == pytest.approx((200 - 150) / 150 * 100)


@pytest.mark.asyncio
async def test_get_tvl_without_match_is_empty():
    client = DefiLlamaClient()
    with patch.object(client, "_client") as mock_http:
        mock_http.get = AsyncMock(return_value=_resp(PROTOCOLS))
        tvl = await client.get_tvl("Some Game")

    assert tvl.is_empty()
    assert tvl.slug is None
