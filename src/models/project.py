from datetime import date, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base


class Project(Base):
    """Latest merged state of one project, upserted every run."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_key: Mapped[str] = mapped_column(String(128))
    name: Mapped[str] = mapped_column(String(255))
    symbol: Mapped[str | None] = mapped_column(String(50))
    coingecko_id: Mapped[str | None] = mapped_column(String(128))
    image_url: Mapped[str | None] = mapped_column(String(500))
    category: Mapped[str] = mapped_column(String(20), default="other")
    ecosystem_rank: Mapped[int | None] = mapped_column(Integer)
    is_emerging: Mapped[bool] = mapped_column(Boolean, default=False)

    # Token (Moralis-verified)
    token_address: Mapped[str | None] = mapped_column(String(64))
    token_source: Mapped[str | None] = mapped_column(String(20))
    token_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    token_symbol: Mapped[str | None] = mapped_column(String(50))
    total_supply: Mapped[str | None] = mapped_column(String(100))
    decimals: Mapped[int | None] = mapped_column(Integer)
    resolution_error: Mapped[str | None] = mapped_column(String(500))

    # On-chain (Moralis)
    holder_count: Mapped[int | None] = mapped_column(Integer)
    top11_holders_percent: Mapped[float | None] = mapped_column(Float)
    is_concentrated: Mapped[bool] = mapped_column(Boolean, default=False)
    transfers_24h: Mapped[int | None] = mapped_column(Integer)
    active_addresses_24h: Mapped[int | None] = mapped_column(Integer)

    # Market (CoinGecko)
    price_usd: Mapped[float | None] = mapped_column(Float)
    volume_24h_usd: Mapped[float | None] = mapped_column(Float)
    liquidity_usd: Mapped[float | None] = mapped_column(Float)
    market_cap_usd: Mapped[float | None] = mapped_column(Float)
    price_change_24h: Mapped[float | None] = mapped_column(Float)
    price_change_7d: Mapped[float | None] = mapped_column(Float)
    price_change_30d: Mapped[float | None] = mapped_column(Float)
    ath: Mapped[float | None] = mapped_column(Float)
    ath_drawdown_percent: Mapped[float | None] = mapped_column(Float)

    # TVL (DeFiLlama)
    defillama_slug: Mapped[str | None] = mapped_column(String(128))
    tvl_usd: Mapped[float | None] = mapped_column(Float)
    tvl_change_7d: Mapped[float | None] = mapped_column(Float)
    tvl_change_30d: Mapped[float | None] = mapped_column(Float)

    # Social (X)
    twitter_handle: Mapped[str | None] = mapped_column(String(50))
    twitter_followers: Mapped[int | None] = mapped_column(Integer)
    twitter_status: Mapped[str | None] = mapped_column(String(20))
    last_post_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    days_since_last_post: Mapped[int | None] = mapped_column(Integer)
    sentiment_score: Mapped[float | None] = mapped_column(Float)

    # Scoring
    survival_score: Mapped[int | None] = mapped_column(Integer)
    grade: Mapped[str | None] = mapped_column(String(2))
    verdict: Mapped[str | None] = mapped_column(String(10))
    scoring_profile: Mapped[str | None] = mapped_column(String(30))
    factors: Mapped[list | None] = mapped_column(JSON)
    composite: Mapped[dict | None] = mapped_column(JSON)
    whale_signal: Mapped[dict | None] = mapped_column(JSON)

    # AI analysis
    alive_summary: Mapped[str | None] = mapped_column(Text)
    post_mortem: Mapped[str | None] = mapped_column(Text)
    ai_model: Mapped[str | None] = mapped_column(String(64))

    # Enrichment flags
    moralis_enriched: Mapped[bool] = mapped_column(Boolean, default=False)
    market_data_enriched: Mapped[bool] = mapped_column(Boolean, default=False)
    social_enriched: Mapped[bool] = mapped_column(Boolean, default=False)
    tvl_enriched: Mapped[bool] = mapped_column(Boolean, default=False)

    enriched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_scored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("project_key", name="uq_project_key"),
        Index("idx_projects_category", "category"),
        Index("idx_projects_score", "survival_score"),
    )


class ProjectSnapshot(Base):
    """One row per project per day: the metric subset worth charting."""

    __tablename__ = "project_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_key: Mapped[str] = mapped_column(String(128))
    snapshot_date: Mapped[date] = mapped_column(Date)
    survival_score: Mapped[int | None] = mapped_column(Integer)
    holder_count: Mapped[int | None] = mapped_column(Integer)
    price_usd: Mapped[float | None] = mapped_column(Float)
    volume_24h_usd: Mapped[float | None] = mapped_column(Float)
    tvl_usd: Mapped[float | None] = mapped_column(Float)
    transfers_24h: Mapped[int | None] = mapped_column(Integer)
    pipeline_run_id: Mapped[str | None] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("project_key", "snapshot_date", name="uq_snapshot_project_date"),
        Index("idx_snapshots_date", "snapshot_date"),
    )


class PipelineRunRecord(Base):
    __tablename__ = "pipeline_runs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    status: Mapped[str] = mapped_column(String(20))
    phase: Mapped[str] = mapped_column(String(20))
    trigger_type: Mapped[str] = mapped_column(String(20))
    mode: Mapped[str] = mapped_column(String(20))
    counts: Mapped[dict | None] = mapped_column(JSON)
    errors: Mapped[list | None] = mapped_column(JSON)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    duration_s: Mapped[float | None] = mapped_column(Float)
