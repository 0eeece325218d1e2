"""Shared data types that flow between pipeline phases.

Every phase hands immutable records forward; nothing reads back from a later
stage. Metric blocks are wrapped in a tagged result so "never fetched",
"fetched but empty" and "fetch failed" stay distinguishable downstream.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


# --- Tagged block results ---


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Missing:
    """Block was never fetched (candidate not eligible for the provider)."""

    reason: str


@dataclass(frozen=True)
class Failed:
    """Fetch raised. skipped=True marks budget exhaustion rather than an error."""

    reason: str
    skipped: bool = False


BlockResult = Union[Ok[T], Missing, Failed]


def block_value(block: "BlockResult[T]") -> T | None:
    return block.value if isinstance(block, Ok) else None


def is_populated(block: "BlockResult") -> bool:
    """True only for Ok blocks whose value carries at least one metric."""
    return isinstance(block, Ok) and not block.value.is_empty()


# --- Discovery / resolution ---


class Verdict(str, Enum):
    SHIP = "SHIP"
    WATCH = "WATCH"
    SKIP = "SKIP"


@dataclass(frozen=True)
class DiscoveredProject:
    external_id: str
    name: str
    symbol: str
    ecosystem_rank: int
    market_cap_usd: float | None
    price_change_24h: float | None
    image_url: str | None
    category_hint: str
    is_emerging: bool
    discovered_at: datetime


@dataclass(frozen=True)
class TokenResolution:
    contract_address: str | None
    source: str | None  # coingecko | moralis | manual | None
    verified: bool
    on_chain_name: str | None = None
    on_chain_symbol: str | None = None
    total_supply: str | None = None
    decimals: int | None = None
    error: str | None = None
    # Captured from the registry detail call, used for category refinement
    categories: tuple[str, ...] = ()
    twitter_handle: str | None = None


# --- Metric blocks ---


@dataclass(frozen=True)
class OnChainMetrics:
    holder_count: int | None = None
    top11_holders_percent: float | None = None
    is_concentrated: bool = False  # top-5 hold > 80%
    transfers_24h: int | None = None
    active_addresses_24h: int | None = None

    def is_empty(self) -> bool:
        return (
            self.holder_count is None
            and self.top11_holders_percent is None
            and self.transfers_24h is None
            and self.active_addresses_24h is None
        )


@dataclass(frozen=True)
class MarketMetrics:
    price_usd: float | None = None
    volume_24h_usd: float | None = None
    liquidity_usd: float | None = None  # proxy: 10% of 24h volume
    price_change_7d: float | None = None
    price_change_30d: float | None = None
    ath: float | None = None
    ath_drawdown_percent: float | None = None

    def is_empty(self) -> bool:
        return self.price_usd is None and self.volume_24h_usd is None


class SocialStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class SocialMetrics:
    handle: str
    account_status: SocialStatus
    source: str  # grok_xsearch | twitter_api
    followers: int | None = None
    recent_post_count: int | None = None
    sentiment_score: float | None = None
    snippets: tuple[str, ...] = ()
    last_post_at: datetime | None = None
    days_since_last_post: int | None = None
    error: str | None = None

    def is_empty(self) -> bool:
        return (
            self.account_status == SocialStatus.UNAVAILABLE
            and self.followers is None
            and self.last_post_at is None
        )


@dataclass(frozen=True)
class TvlMetrics:
    tvl_usd: float | None = None
    tvl_change_7d: float | None = None
    tvl_change_30d: float | None = None
    slug: str | None = None

    def is_empty(self) -> bool:
        return self.tvl_usd is None


# --- Enriched / scored ---


@dataclass(frozen=True)
class EnrichedProject:
    project: DiscoveredProject
    resolution: TokenResolution
    category: str
    on_chain: BlockResult[OnChainMetrics]
    market: BlockResult[MarketMetrics]
    tvl: BlockResult[TvlMetrics]
    social: BlockResult[SocialMetrics] = Missing("social enrichment not run")
    enriched_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def external_id(self) -> str:
        return self.project.external_id

    @property
    def name(self) -> str:
        return self.project.name

    @property
    def has_token(self) -> bool:
        return self.resolution.contract_address is not None

    @property
    def on_chain_metrics(self) -> OnChainMetrics:
        return block_value(self.on_chain) or OnChainMetrics()

    @property
    def market_metrics(self) -> MarketMetrics:
        return block_value(self.market) or MarketMetrics()

    @property
    def tvl_metrics(self) -> TvlMetrics:
        return block_value(self.tvl) or TvlMetrics()

    @property
    def social_metrics(self) -> SocialMetrics | None:
        return block_value(self.social)

    @property
    def moralis_enriched(self) -> bool:
        return is_populated(self.on_chain)

    @property
    def market_data_enriched(self) -> bool:
        return is_populated(self.market)

    @property
    def social_enriched(self) -> bool:
        return is_populated(self.social)

    @property
    def tvl_enriched(self) -> bool:
        return is_populated(self.tvl)


@dataclass(frozen=True)
class ScoreFactor:
    key: str
    value: int
    weight: int
    weighted: float


@dataclass(frozen=True)
class CompositeScores:
    survival: int
    momentum: int
    community: int
    fundamentals: int


@dataclass(frozen=True)
class ScoreResult:
    score: int
    grade: str
    profile: str
    factors: tuple[ScoreFactor, ...]
    composite: CompositeScores
    scored_at: datetime

    def factor(self, key: str) -> ScoreFactor | None:
        for f in self.factors:
            if f.key == key:
                return f
        return None


class AlertLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class WhalePattern(str, Enum):
    STEALTH_ACCUMULATION = "stealth_accumulation"
    ALIGNED_CONVICTION = "aligned_conviction"
    SMART_MONEY_EXIT = "smart_money_exit"
    CONFIRMED_DECLINE = "confirmed_decline"


@dataclass(frozen=True)
class WhaleSignal:
    pattern: WhalePattern
    alert_level: AlertLevel
    holder_count: int | None
    top11_holders_percent: float
    is_concentrated: bool
    buy_ratio: float
    detected_at: datetime


@dataclass(frozen=True)
class ScoredProject:
    enriched: EnrichedProject
    scoring: ScoreResult
    verdict: Verdict
    whale_signal: WhaleSignal | None = None

    @property
    def external_id(self) -> str:
        return self.enriched.external_id

    @property
    def name(self) -> str:
        return self.enriched.name

    @property
    def category(self) -> str:
        return self.enriched.category


@dataclass(frozen=True)
class AiAnalysis:
    alive_summary: str | None
    post_mortem: str | None
    model: str
    analyzed_at: datetime


@dataclass(frozen=True)
class AnalyzedProject:
    scored: ScoredProject
    analysis: AiAnalysis | None = None

    @property
    def external_id(self) -> str:
        return self.scored.external_id

    @property
    def name(self) -> str:
        return self.scored.name
