"""Pipeline orchestrator: one `PipelineRun` per invocation.

collect -> resolve -> enrich (+ social) -> score/signals -> analyze -> persist

Provider clients (and their rate limiters) are built fresh for every run and
closed when it ends. Only discovery failures, or anything else that escapes a
stage, fail the run; per-project problems are absorbed inside the stages.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from config.settings import Settings, settings as default_settings
from src.parsers.coingecko.client import CoinGeckoClient
from src.parsers.defillama.client import DefiLlamaClient
from src.parsers.moralis.client import MoralisClient
from src.parsers.twitter.client import TwitterClient
from src.parsers.xai.client import XaiClient
from src.pipeline.analyzer import Analyzer
from src.pipeline.collector import MODE_INCREMENTAL, Collector
from src.pipeline.enricher import Enricher
from src.pipeline.resolver import Resolver
from src.pipeline.run_state import PipelineRun, RunPhase, RunResult
from src.pipeline.scorer import Scorer
from src.pipeline.social_enricher import SocialEnricher
from src.pipeline.types import AnalyzedProject

COUNTER_KEYS = (
    "discovered",
    "emerging",
    "resolved",
    "verified",
    "no_token",
    "resolve_failed",
    "enriched",
    "tvl_matches",
    "moralis_enriched",
    "moralis_skipped",
    "market_data_enriched",
    "enrich_failures",
    "social_active",
    "social_inactive",
    "social_unavailable",
    "scored",
    "ship",
    "watch",
    "skip",
    "whale_signals",
    "analyzed",
    "analysis_skipped",
    "analysis_failed",
    "stored",
    "store_failed",
)


@dataclass
class Providers:
    coingecko: CoinGeckoClient
    defillama: DefiLlamaClient
    moralis: MoralisClient | None = None
    xai: XaiClient | None = None
    twitter: TwitterClient | None = None

    async def close(self) -> None:
        for client in (self.coingecko, self.defillama, self.moralis, self.xai, self.twitter):
            if client is None:
                continue
            try:
                await client.close()
            except Exception as e:
                logger.warning(f"[PIPELINE] Failed to close {type(client).__name__}: {e}")


def build_providers(cfg: Settings) -> Providers:
    """Clients without credentials are left out; the stages degrade around them."""
    moralis = None
    if cfg.moralis_api_key:
        moralis = MoralisClient(
            cfg.moralis_api_key,
            base_url=cfg.moralis_base_url,
            requests_per_minute=cfg.moralis_rpm,
            burst=cfg.moralis_burst,
            daily_cu_budget=cfg.moralis_daily_cu_budget,
        )
    xai = None
    if cfg.xai_api_key:
        xai = XaiClient(
            cfg.xai_api_key,
            search_model=cfg.social_batch_model,
            requests_per_minute=cfg.xai_rpm,
            burst=cfg.xai_burst,
        )
    twitter = None
    if cfg.twitter_bearer_token:
        twitter = TwitterClient(
            cfg.twitter_bearer_token,
            requests_per_minute=cfg.twitter_rpm,
            burst=cfg.twitter_burst,
        )

    return Providers(
        coingecko=CoinGeckoClient(
            api_key=cfg.coingecko_api_key,
            base_url=cfg.coingecko_base_url,
            category=cfg.coingecko_category,
            requests_per_minute=cfg.coingecko_rpm,
        ),
        defillama=DefiLlamaClient(requests_per_minute=cfg.defillama_rpm, burst=cfg.defillama_burst),
        moralis=moralis,
        xai=xai,
        twitter=twitter,
    )


class ProjectSink(Protocol):
    async def known_ids(self) -> set[str]: ...

    async def previous_scores(self) -> dict[str, int]: ...

    async def store(self, projects: list[AnalyzedProject], run_id: str | None = None): ...

    async def save_run(self, run: PipelineRun) -> None: ...


class Orchestrator:
    def __init__(
        self,
        settings: Settings = default_settings,
        providers_factory: Callable[[Settings], Providers] = build_providers,
        store: ProjectSink | None = None,
    ) -> None:
        self._settings = settings
        self._providers_factory = providers_factory
        self._store = store

    async def run_pipeline(
        self,
        trigger_type: str = "manual",
        mode: str = "full",
        project_limit: int | None = None,
    ) -> RunResult:
        """Run every phase once. Never raises: failures end up in the result."""
        run = PipelineRun(trigger_type=trigger_type, mode=mode)
        run.record(**{k: 0 for k in COUNTER_KEYS})
        logger.info(f"[PIPELINE] Run {run.id} started (trigger={trigger_type}, mode={mode})")

        if project_limit is None:
            project_limit = self._settings.pipeline_project_limit

        providers: Providers | None = None
        with logger.contextualize(run_id=run.id):
            try:
                providers = self._providers_factory(self._settings)
                await self._execute(run, providers, project_limit)
                run.complete()
            except Exception as e:
                logger.error(f"[PIPELINE] Run {run.id} failed in {run.phase.value}: {e}")
                run.fail(f"{run.phase.value}: {e}")
            finally:
                if providers is not None:
                    await providers.close()

        if self._store is not None:
            try:
                await self._store.save_run(run)
            except Exception as e:
                logger.warning(f"[PIPELINE] Failed to save run record {run.id}: {e}")

        logger.info(
            f"[PIPELINE] Run {run.id} {run.status.value} in {run.duration_seconds}s "
            f"discovered={run.counts['discovered']} scored={run.counts['scored']} "
            f"stored={run.counts['stored']}"
        )
        return RunResult.from_run(run)

    async def _execute(self, run: PipelineRun, providers: Providers, project_limit: int) -> None:
        cfg = self._settings
        concurrency = cfg.pipeline_concurrency

        # Phase 1: discovery
        existing_ids: set[str] = set()
        if run.mode == MODE_INCREMENTAL and self._store is not None:
            existing_ids = await self._store.known_ids()
        collected = await Collector(providers.coingecko).collect(
            top_n=project_limit,
            emerging_limit=cfg.pipeline_emerging_limit,
            mode=run.mode,
            existing_ids=existing_ids,
        )
        run.record(discovered=collected.stats.total, emerging=collected.stats.emerging_count)

        # Phase 2: token identity
        run.advance(RunPhase.RESOLVING)
        resolved = await Resolver(
            providers.coingecko, providers.moralis, concurrency=concurrency
        ).resolve(collected.projects)
        rs = resolved.stats
        run.record(
            resolved=rs.resolved, verified=rs.verified, no_token=rs.no_token, resolve_failed=rs.failed
        )

        # Phase 3: metrics + social
        run.advance(RunPhase.ENRICHING)
        enriched = await Enricher(
            providers.coingecko, providers.moralis, providers.defillama, concurrency=concurrency
        ).enrich(collected.projects, resolved.resolutions)
        es = enriched.stats
        run.record(
            enriched=es.total,
            tvl_matches=es.tvl_matches,
            moralis_enriched=es.moralis_enriched,
            moralis_skipped=es.moralis_skipped,
            market_data_enriched=es.market_data_enriched,
            enrich_failures=es.failures,
        )

        social = await SocialEnricher(
            batch_provider=providers.xai,
            single_provider=providers.twitter,
            batch_size=cfg.social_batch_size,
            single_delay_s=cfg.social_fallback_delay_sec,
        ).enrich(enriched.projects)
        run.record(
            social_active=social.stats.active,
            social_inactive=social.stats.inactive,
            social_unavailable=social.stats.unavailable,
        )

        # Phase 4: scoring + whale signals
        run.advance(RunPhase.SCORING)
        scored = Scorer(
            ship_threshold=cfg.score_ship_threshold,
            watch_threshold=cfg.score_watch_threshold,
        ).score(social.projects)
        ss = scored.stats
        run.record(
            scored=len(scored.projects),
            ship=ss.ship,
            watch=ss.watch,
            skip=ss.skip,
            whale_signals=ss.signals,
        )

        # Phase 5: narratives
        run.advance(RunPhase.ANALYZING)
        generator = providers.xai if cfg.enable_analysis else None
        previous: dict[str, int] = {}
        if generator is not None and self._store is not None:
            try:
                previous = await self._store.previous_scores()
            except Exception as e:
                logger.warning(f"[PIPELINE] Previous scores unavailable, analyzing all: {e}")
        analyzed = await Analyzer(
            generator,
            model=cfg.analyzer_model,
            score_delta=cfg.analyzer_score_delta,
            max_tokens=cfg.analyzer_max_tokens,
            temperature=cfg.analyzer_temperature,
        ).analyze(scored.projects, previous)
        run.record(
            analyzed=analyzed.stats.generated,
            analysis_skipped=analyzed.stats.skipped,
            analysis_failed=analyzed.stats.failed,
        )

        # Phase 6: persistence
        run.advance(RunPhase.PERSISTING)
        if self._store is None or not cfg.enable_persistence:
            logger.info("[PIPELINE] Persistence disabled, skipping store")
            return
        try:
            stored = await self._store.store(analyzed.projects, run.id)
        except Exception as e:
            logger.error(f"[PIPELINE] Store failed for {len(analyzed.projects)} projects: {e}")
            run.record(stored=0, store_failed=len(analyzed.projects))
            run.errors.append(f"persisting: {e}")
            return
        run.record(stored=stored.stats.stored, store_failed=stored.stats.failed)
        if stored.stats.failed:
            run.errors.append(f"persisting: {stored.stats.failed} projects failed to store")


async def run_pipeline(
    trigger_type: str = "manual",
    mode: str = "full",
    project_limit: int | None = None,
    cfg: Settings = default_settings,
) -> RunResult:
    """Run once against the configured database (when persistence is enabled)."""
    store = None
    if cfg.enable_persistence:
        from src.db.database import async_session_factory
        from src.pipeline.persistence import ProjectStore

        store = ProjectStore(async_session_factory)

    return await Orchestrator(cfg, build_providers, store).run_pipeline(
        trigger_type=trigger_type, mode=mode, project_limit=project_limit
    )
