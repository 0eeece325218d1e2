"""Pydantic models for DeFiLlama API responses."""

from pydantic import BaseModel


class DefiLlamaProtocol(BaseModel):
    """Row from /protocols."""

    name: str = ""
    slug: str = ""
    chains: list[str] = []
    tvl: float | None = None
    change_1d: float | None = None
    change_7d: float | None = None

    model_config = {"extra": "ignore"}


class DefiLlamaTvlPoint(BaseModel):
    date: int = 0
    totalLiquidityUSD: float = 0.0

    model_config = {"extra": "ignore"}


class DefiLlamaProtocolDetail(BaseModel):
    """Response from /protocol/{slug}."""

    name: str = ""
    slug: str | None = None
    tvl: list[DefiLlamaTvlPoint] = []
    currentChainTvls: dict[str, float] = {}

    model_config = {"extra": "ignore"}
