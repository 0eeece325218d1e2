"""Tests for the CoinGecko client."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.parsers.coingecko.client import (
    CoinGeckoApiError,
    CoinGeckoClient,
    bsc_address_from_platforms,
)


def _resp(data, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json = lambda: data
    return resp


DETAIL = {
    "id": "pancakeswap-token",
    "name": "PancakeSwap",
    "symbol": "cake",
    "platforms": {"binance-smart-chain": "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"},
    "categories": ["Decentralized Exchange (DEX)", None, "BNB Chain Ecosystem"],
    "links": {"twitter_screen_name": "PancakeSwap", "homepage": ["https://pancakeswap.finance"]},
    "market_data": {
        "current_price": {"usd": 2.0},
        "total_volume": {"usd": 80_000_000},
        "ath": {"usd": 40.0},
        "price_change_percentage_7d": -3.2,
        "price_change_percentage_30d": 12.5,
    },
}


def test_bsc_address_from_any_alias():
    assert bsc_address_from_platforms({"bnb-smart-chain": "0xabc"}) == "0xabc"
    assert bsc_address_from_platforms({"ethereum": "0xdef", "binance-smart-chain": ""}) is None
    assert bsc_address_from_platforms({}) is None


@pytest.mark.asyncio
async def test_get_markets_parses_rows_and_skips_malformed():
    client = CoinGeckoClient()
    rows = [
        {"id": "a", "name": "A", "symbol": "a", "market_cap": 1e9},
        {"name": "no id"},
        {"id": "b", "name": "B", "symbol": "b", "market_cap": None},
    ]
    with patch.object(client, "_client") as mock_http:
        mock_http.request = AsyncMock(return_value=_resp(rows))
        items = await client.get_markets("market_cap_desc", 1, 250)

    assert [i.id for i in items] == ["a", "b"]
    params = mock_http.request.call_args.kwargs["params"]
    assert params["category"] == "bnb-chain-ecosystem"
    assert params["order"] == "market_cap_desc"
    await client.close()


@pytest.mark.asyncio
async def test_coin_detail_is_cached():
    client = CoinGeckoClient()
    with patch.object(client, "_client") as mock_http:
        mock_http.request = AsyncMock(return_value=_resp(DETAIL))
        first = await client.get_coin_detail("pancakeswap-token")
        second = await client.get_coin_detail("pancakeswap-token")

    assert first is second
    assert mock_http.request.await_count == 1
    assert first.category_tags == ["Decentralized Exchange (DEX)", "BNB Chain Ecosystem"]
    assert first.links.twitter_screen_name == "PancakeSwap"


@pytest.mark.asyncio
async def test_market_data_derives_liquidity_and_drawdown():
    client = CoinGeckoClient()
    with patch.object(client, "_client") as mock_http:
        mock_http.request = AsyncMock(return_value=_resp(DETAIL))
        market = await client.get_market_data("pancakeswap-token")
        address = await client.get_bsc_address("pancakeswap-token")

    assert market.price_usd == 2.0
    assert market.volume_24h_usd == 80_000_000
    assert market.liquidity_usd == pytest.approx(8_000_000)
    assert market.ath_drawdown_percent == pytest.approx(95.0)
    assert market.price_change_30d == 12.5
    assert address == "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"


@pytest.mark.asyncio
async def test_retries_on_429_then_succeeds():
    client = CoinGeckoClient()
    with (
        patch.object(client, "_client") as mock_http,
        patch("src.parsers.coingecko.client.asyncio.sleep", new=AsyncMock()) as sleep,
    ):
        mock_http.request = AsyncMock(side_effect=[_resp({}, 429), _resp([])])
        items = await client.get_markets()

    assert items == []
    assert mock_http.request.await_count == 2
    sleep.assert_awaited_once_with(2.0)


@pytest.mark.asyncio
async def test_persistent_5xx_raises_api_error():
    client = CoinGeckoClient()
    with (
        patch.object(client, "_client") as mock_http,
        patch("src.parsers.coingecko.client.asyncio.sleep", new=AsyncMock()),
    ):
        mock_http.request = AsyncMock(return_value=_resp({}, 503))
        with pytest.raises(CoinGeckoApiError):
            await client.get_markets()

    assert mock_http.request.await_count == 3


@pytest.mark.asyncio
async def test_non_list_markets_payload_raises():
    client = CoinGeckoClient()
    with patch.object(client, "_client") as mock_http:
        mock_http.request = AsyncMock(return_value=_resp({"error": "bad category"}))
        with pytest.raises(CoinGeckoApiError):
            await client.get_markets()
