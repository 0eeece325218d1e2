"""Tests for token identity resolution."""

import pytest

from src.parsers.coingecko.client import CoinGeckoApiError
from src.parsers.coingecko.models import CoinGeckoCoinDetail
from src.parsers.moralis.client import MoralisApiError
from src.parsers.moralis.models import MoralisTokenMetadata
from src.parsers.rate_limiter import BudgetExhaustedError
from src.pipeline.resolver import NO_ADDRESS_ERROR, NOT_TOKEN_ERROR, ManualOverride, Resolver

CAKE = "0x0e09fabb73bd3ade0a17ecc321fd13a19e81ce82"
OVERRIDE_ADDR = "0xd6b48ccf41a62eb3891e58d0f006b19b01d50cca"


class FakeCoinGecko:
    def __init__(self, details: dict[str, dict]) -> None:
        self.details = details

    async def get_coin_detail(self, coin_id: str) -> CoinGeckoCoinDetail:
        raw = self.details.get(coin_id)
        if raw is None:
            raise CoinGeckoApiError(f"HTTP 404: /coins/{coin_id}")
        return CoinGeckoCoinDetail.model_validate({"id": coin_id, **raw})


class FakeMoralis:
    def __init__(self, known: dict[str, MoralisTokenMetadata], error: Exception | None = None) -> None:
        self.known = known
        self.error = error
        self.calls: list[str] = []

    async def get_token_metadata(self, address: str):
        self.calls.append(address)
        if self.error is not None:
            raise self.error
        return self.known.get(address)


def _meta(symbol: str, verified: bool = True) -> MoralisTokenMetadata:
    return MoralisTokenMetadata(
        name=symbol, symbol=symbol, decimals="18", total_supply="1000", verified_contract=verified
    )


@pytest.mark.asyncio
async def test_registry_address_verified_on_chain(make_project):
    cg = FakeCoinGecko({
        "pancakeswap-token": {
            "platforms": {"binance-smart-chain": CAKE},
            "categories": ["Decentralized Exchange (DEX)"],
            "links": {"twitter_screen_name": "PancakeSwap"},
        }
    })
    resolver = Resolver(cg, FakeMoralis({CAKE: _meta("Cake")}))

    r = await resolver.resolve_one(make_project())

    assert r.contract_address == CAKE
    assert r.source == "moralis"
    assert r.verified is True
    assert r.on_chain_symbol == "Cake"
    assert r.decimals == 18
    assert r.error is None
    assert r.categories == ("Decentralized Exchange (DEX)",)
    assert r.twitter_handle == "PancakeSwap"


@pytest.mark.asyncio
async def test_manual_override_wins(make_project):
    cg = FakeCoinGecko({"seraph": {"platforms": {"binance-smart-chain": CAKE}}})
    moralis = FakeMoralis({OVERRIDE_ADDR: _meta("SERAPH")})
    overrides = {"Seraph": ManualOverride("seraph", OVERRIDE_ADDR, "SERAPH")}
    resolver = Resolver(cg, moralis, overrides=overrides)

    r = await resolver.resolve_one(make_project(external_id="seraph", name="Seraph"))

    assert r.source == "manual"
    assert r.contract_address == OVERRIDE_ADDR
    assert r.verified is True
    assert moralis.calls == [OVERRIDE_ADDR]


@pytest.mark.asyncio
async def test_manual_override_survives_missing_detail(make_project):
    overrides = {"seraph": ManualOverride("seraph", OVERRIDE_ADDR, "SERAPH")}
    resolver = Resolver(FakeCoinGecko({}), FakeMoralis({}), overrides=overrides)

    r = await resolver.resolve_one(make_project(external_id="seraph"))

    assert r.source == "manual"
    assert r.contract_address == OVERRIDE_ADDR
    assert r.verified is False
    assert r.error == NOT_TOKEN_ERROR


@pytest.mark.asyncio
async def test_no_bsc_address_is_terminal_not_failure(make_project):
    cg = FakeCoinGecko({
        "bnb-greenfield": {"platforms": {"ethereum": "0xabc"}, "categories": ["Storage"]}
    })
    resolver = Resolver(cg, FakeMoralis({}))

    result = await resolver.resolve([make_project(external_id="bnb-greenfield")])
    r = result.resolutions["bnb-greenfield"]

    assert r.contract_address is None
    assert r.source is None
    assert r.verified is False
    assert r.error == NO_ADDRESS_ERROR
    assert r.categories == ("Storage",)
    assert result.stats.no_token == 1
    assert result.stats.failed == 0


@pytest.mark.asyncio
async def test_unverified_address_keeps_registry_source(make_project):
    cg = FakeCoinGecko({"x": {"platforms": {"bsc": CAKE}}})
    resolver = Resolver(cg, FakeMoralis({}))

    r = await resolver.resolve_one(make_project(external_id="x"))

    assert r.contract_address == CAKE
    assert r.source == "coingecko"
    assert r.verified is False
    assert r.error == NOT_TOKEN_ERROR


@pytest.mark.asyncio
async def test_budget_exhaustion_is_recorded_not_raised(make_project):
    cg = FakeCoinGecko({"x": {"platforms": {"bsc": CAKE}}})
    resolver = Resolver(cg, FakeMoralis({}, error=BudgetExhaustedError("moralis: CU budget exhausted")))

    r = await resolver.resolve_one(make_project(external_id="x"))

    assert r.contract_address == CAKE
    assert r.verified is False
    assert r.error.startswith("Verification skipped")


@pytest.mark.asyncio
async def test_one_failure_does_not_abort_others(make_project):
    cg = FakeCoinGecko({"good": {"platforms": {"bsc": CAKE}}})
    moralis = FakeMoralis({CAKE: _meta("CAKE")})
    resolver = Resolver(cg, moralis)
    projects = [make_project(external_id="missing"), make_project(external_id="good")]

    result = await resolver.resolve(projects)

    assert result.resolutions["missing"].contract_address is None
    assert result.resolutions["missing"].error.startswith("CoinGecko detail failed")
    assert result.resolutions["good"].verified is True
    assert result.stats.resolved == 1
    assert result.stats.verified == 1
    assert result.stats.failed == 1


@pytest.mark.asyncio
async def test_verifier_api_error_is_recorded(make_project):
    cg = FakeCoinGecko({"x": {"platforms": {"bsc": CAKE}}})
    resolver = Resolver(cg, FakeMoralis({}, error=MoralisApiError("HTTP 500 after retries")))

    r = await resolver.resolve_one(make_project(external_id="x"))

    assert r.source == "coingecko"
    assert r.error.startswith("Verification failed")


@pytest.mark.asyncio
async def test_without_verifier_addresses_stay_unverified(make_project):
    cg = FakeCoinGecko({"x": {"platforms": {"bsc": CAKE}}})
    r = await Resolver(cg, None).resolve_one(make_project(external_id="x"))

    assert r.contract_address == CAKE
    assert r.verified is False
