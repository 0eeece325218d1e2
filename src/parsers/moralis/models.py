"""Pydantic models for Moralis EVM API (v2.2) responses."""

from pydantic import BaseModel


class MoralisTokenMetadata(BaseModel):
    """Row from /erc20/metadata."""

    address: str = ""
    name: str | None = None
    symbol: str | None = None
    decimals: str | int | None = None
    total_supply: str | None = None
    verified_contract: bool = False
    possible_spam: bool = False

    model_config = {"extra": "ignore"}

    @property
    def decimals_int(self) -> int | None:
        try:
            return int(self.decimals) if self.decimals is not None else None
        except (TypeError, ValueError):
            return None


class MoralisTokenHolder(BaseModel):
    """Row from /erc20/{address}/owners."""

    owner_address: str = ""
    balance: str | None = None
    percentage_relative_to_total_supply: float | None = None

    model_config = {"extra": "ignore"}


class MoralisOwnersPage(BaseModel):
    result: list[MoralisTokenHolder] = []
    cursor: str | None = None
    total: int | None = None

    model_config = {"extra": "ignore"}


class MoralisTransfer(BaseModel):
    """Row from /erc20/{address}/transfers."""

    from_address: str = ""
    to_address: str = ""
    value: str | None = None
    block_timestamp: str | None = None

    model_config = {"extra": "ignore"}


class MoralisTransfersPage(BaseModel):
    result: list[MoralisTransfer] = []
    cursor: str | None = None

    model_config = {"extra": "ignore"}
