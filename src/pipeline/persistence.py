"""Persistence sink: maps analyzed projects onto the SQLAlchemy models.

Every write is an idempotent PostgreSQL upsert keyed on `project_key` (and
`snapshot_date` for snapshots), so re-running a pipeline on the same day
overwrites instead of duplicating.
"""

import time
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.models.project import PipelineRunRecord, Project, ProjectSnapshot
from src.pipeline.run_state import PipelineRun
from src.pipeline.types import AnalyzedProject


def _sanitize(val: str | None) -> str | None:
    """Strip null bytes and control chars that PostgreSQL rejects."""
    if val is None:
        return None
    return val.replace("\x00", "").strip() or None


@dataclass
class StoreStats:
    stored: int = 0
    snapshots: int = 0
    failed: int = 0


@dataclass
class StoreResult:
    stats: StoreStats
    duration_ms: int


def project_fields(p: AnalyzedProject) -> dict[str, Any]:
    """Flatten one analyzed project into `projects` column values.

    Narrative columns are only included when an analysis was produced, so a
    skipped or failed generation keeps the previously stored text.
    """
    scored = p.scored
    e = scored.enriched
    d = e.project
    r = e.resolution
    oc, market, tvl = e.on_chain_metrics, e.market_metrics, e.tvl_metrics
    social = e.social_metrics
    signal = scored.whale_signal

    fields: dict[str, Any] = {
        "name": _sanitize(d.name) or d.external_id,
        "symbol": _sanitize(d.symbol),
        "coingecko_id": d.external_id,
        "image_url": d.image_url,
        "category": e.category,
        "ecosystem_rank": d.ecosystem_rank,
        "is_emerging": d.is_emerging,
        "token_address": r.contract_address,
        "token_source": r.source,
        "token_verified": r.verified,
        "token_symbol": _sanitize(r.on_chain_symbol),
        "total_supply": r.total_supply,
        "decimals": r.decimals,
        "resolution_error": r.error,
        "holder_count": oc.holder_count,
        "top11_holders_percent": oc.top11_holders_percent,
        "is_concentrated": oc.is_concentrated,
        "transfers_24h": oc.transfers_24h,
        "active_addresses_24h": oc.active_addresses_24h,
        "price_usd": market.price_usd,
        "volume_24h_usd": market.volume_24h_usd,
        "liquidity_usd": market.liquidity_usd,
        "market_cap_usd": d.market_cap_usd,
        "price_change_24h": d.price_change_24h,
        "price_change_7d": market.price_change_7d,
        "price_change_30d": market.price_change_30d,
        "ath": market.ath,
        "ath_drawdown_percent": market.ath_drawdown_percent,
        "defillama_slug": tvl.slug,
        "tvl_usd": tvl.tvl_usd,
        "tvl_change_7d": tvl.tvl_change_7d,
        "tvl_change_30d": tvl.tvl_change_30d,
        "twitter_handle": social.handle if social else r.twitter_handle,
        "twitter_followers": social.followers if social else None,
        "twitter_status": social.account_status.value if social else None,
        "last_post_at": social.last_post_at if social else None,
        "days_since_last_post": social.days_since_last_post if social else None,
        "sentiment_score": social.sentiment_score if social else None,
        "survival_score": scored.scoring.score,
        "grade": scored.scoring.grade,
        "verdict": scored.verdict.value,
        "scoring_profile": scored.scoring.profile,
        "factors": [asdict(f) for f in scored.scoring.factors],
        "composite": asdict(scored.scoring.composite),
        "whale_signal": _signal_json(signal) if signal else None,
        "moralis_enriched": e.moralis_enriched,
        "market_data_enriched": e.market_data_enriched,
        "social_enriched": e.social_enriched,
        "tvl_enriched": e.tvl_enriched,
        "enriched_at": e.enriched_at,
        "last_scored_at": scored.scoring.scored_at,
    }

    if p.analysis is not None:
        fields["alive_summary"] = p.analysis.alive_summary
        fields["post_mortem"] = p.analysis.post_mortem
        fields["ai_model"] = p.analysis.model

    return fields


def snapshot_metrics(p: AnalyzedProject) -> dict[str, Any]:
    e = p.scored.enriched
    return {
        "survival_score": p.scored.scoring.score,
        "holder_count": e.on_chain_metrics.holder_count,
        "price_usd": e.market_metrics.price_usd,
        "volume_24h_usd": e.market_metrics.volume_24h_usd,
        "tvl_usd": e.tvl_metrics.tvl_usd,
        "transfers_24h": e.on_chain_metrics.transfers_24h,
    }


def _signal_json(signal) -> dict[str, Any]:
    return {
        "pattern": signal.pattern.value,
        "alert_level": signal.alert_level.value,
        "holder_count": signal.holder_count,
        "top11_holders_percent": signal.top11_holders_percent,
        "is_concentrated": signal.is_concentrated,
        "buy_ratio": signal.buy_ratio,
        "detected_at": signal.detected_at.isoformat(),
    }


async def upsert_project(session: AsyncSession, project_key: str, fields: dict[str, Any]) -> None:
    now = datetime.now(UTC)
    stmt = (
        pg_insert(Project)
        .values(project_key=project_key, updated_at=now, **fields)
        .on_conflict_do_update(
            constraint="uq_project_key",
            set_={**fields, "updated_at": now},
        )
    )
    await session.execute(stmt)


async def upsert_snapshot(
    session: AsyncSession,
    project_key: str,
    snapshot_date: date,
    metrics: dict[str, Any],
    run_id: str | None = None,
) -> None:
    values = {**metrics, "pipeline_run_id": run_id}
    stmt = (
        pg_insert(ProjectSnapshot)
        .values(project_key=project_key, snapshot_date=snapshot_date, **values)
        .on_conflict_do_update(
            constraint="uq_snapshot_project_date",
            set_=values,
        )
    )
    await session.execute(stmt)


def run_values(run: PipelineRun) -> dict[str, Any]:
    return {
        "status": run.status.value,
        "phase": run.phase.value,
        "trigger_type": run.trigger_type,
        "mode": run.mode,
        "counts": dict(run.counts),
        "errors": list(run.errors),
        "started_at": run.started_at,
        "completed_at": run.completed_at,
        "duration_s": run.duration_seconds,
    }


class ProjectStore:
    """Database-backed sink used by the orchestrator."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert(self, project_key: str, fields: dict[str, Any]) -> None:
        async with self._session_factory() as session:
            await upsert_project(session, project_key, fields)
            await session.commit()

    async def upsert_daily_snapshot(
        self,
        project_key: str,
        snapshot_date: date,
        metrics: dict[str, Any],
        run_id: str | None = None,
    ) -> None:
        async with self._session_factory() as session:
            await upsert_snapshot(session, project_key, snapshot_date, metrics, run_id)
            await session.commit()

    async def known_ids(self) -> set[str]:
        async with self._session_factory() as session:
            result = await session.execute(select(Project.project_key))
            return set(result.scalars().all())

    async def previous_scores(self) -> dict[str, int]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Project.project_key, Project.survival_score).where(
                    Project.survival_score.is_not(None)
                )
            )
            return {key: score for key, score in result.all()}

    async def save_run(self, run: PipelineRun) -> None:
        values = run_values(run)
        stmt = (
            pg_insert(PipelineRunRecord)
            .values(id=run.id, **values)
            .on_conflict_do_update(index_elements=["id"], set_=values)
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def store(self, projects: list[AnalyzedProject], run_id: str | None = None) -> StoreResult:
        """Upsert every project plus today's snapshot, one savepoint each.

        A failed candidate is rolled back to its savepoint, logged and counted;
        the remaining candidates still commit. If the session or the final
        commit fails, nothing is stored and every candidate counts as failed.
        """
        t0 = time.monotonic()
        stats = StoreStats()
        today = datetime.now(UTC).date()

        try:
            async with self._session_factory() as session:
                for p in projects:
                    try:
                        async with session.begin_nested():
                            await upsert_project(session, p.external_id, project_fields(p))
                            await upsert_snapshot(
                                session, p.external_id, today, snapshot_metrics(p), run_id
                            )
                        stats.stored += 1
                        stats.snapshots += 1
                    except Exception as e:
                        stats.failed += 1
                        logger.warning(f"[STORE] Failed to persist {p.name}: {e}")
                try:
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
        except Exception as e:
            logger.error(f"[STORE] Batch of {len(projects)} not committed: {e}")
            stats = StoreStats(failed=len(projects))

        duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"[STORE] stored={stats.stored} snapshots={stats.snapshots} "
            f"failed={stats.failed} in {duration_ms}ms"
        )
        return StoreResult(stats=stats, duration_ms=duration_ms)
