"""Pydantic models for CoinGecko API responses."""

from pydantic import BaseModel


class CoinGeckoMarketItem(BaseModel):
    """Single row from /coins/markets."""

    id: str
    name: str = ""
    symbol: str = ""
    image: str | None = None
    market_cap: float | None = None
    market_cap_rank: int | None = None
    total_volume: float | None = None
    price_change_percentage_24h: float | None = None

    model_config = {"extra": "ignore"}


class CoinGeckoLinks(BaseModel):
    twitter_screen_name: str | None = None
    homepage: list[str] = []

    model_config = {"extra": "ignore"}


class CoinGeckoDetailMarketData(BaseModel):
    """market_data block of /coins/{id}. Price-like fields are keyed by currency."""

    current_price: dict[str, float | None] = {}
    total_volume: dict[str, float | None] = {}
    ath: dict[str, float | None] = {}
    price_change_percentage_7d: float | None = None
    price_change_percentage_30d: float | None = None

    model_config = {"extra": "ignore"}


class CoinGeckoCoinDetail(BaseModel):
    """Response from /coins/{id} (localization/tickers/community/developer off)."""

    id: str
    name: str = ""
    symbol: str = ""
    platforms: dict[str, str | None] = {}
    categories: list[str | None] = []
    links: CoinGeckoLinks = CoinGeckoLinks()
    market_data: CoinGeckoDetailMarketData = CoinGeckoDetailMarketData()

    model_config = {"extra": "ignore"}

    @property
    def category_tags(self) -> list[str]:
        return [c for c in self.categories if c]
