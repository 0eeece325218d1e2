"""Phase 4: narrative generation via xAI Grok.

SHIP projects get an "alive summary", everything else a post-mortem. Only
projects whose score is new or moved by at least `score_delta` since the last
persisted run are regenerated, which bounds API cost.
"""

import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Protocol

from loguru import logger

from src.pipeline.types import AiAnalysis, AnalyzedProject, ScoredProject, Verdict
from src.utils.async_batch import bounded_gather

ALIVE_PROMPT = (
    "You are a blockchain analyst. Based on the data below, write a concise 2-3 sentence "
    '"alive summary" for {name} explaining why it is worth shipping/investing in. '
    "Be specific and use the data. End with the key risk.\n\n{context}"
)
POST_MORTEM_PROMPT = (
    "You are a blockchain analyst. Based on the data below, write a concise 2-3 sentence "
    '"post-mortem" for {name} explaining why it is declining or dead. '
    "Be specific and use the data. Focus on what went wrong.\n\n{context}"
)


class NarrativeGenerator(Protocol):
    async def generate(
        self, prompt: str, model: str, max_tokens: int, temperature: float
    ) -> str: ...


@dataclass
class AnalyzerStats:
    generated: int = 0
    skipped: int = 0
    failed: int = 0


@dataclass
class AnalyzerResult:
    projects: list[AnalyzedProject]
    stats: AnalyzerStats
    duration_ms: int


def fmt_usd(n: float) -> str:
    if n >= 1_000_000_000:
        return f"{n / 1_000_000_000:.1f}B"
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return f"{n:g}"


def build_context(p: ScoredProject) -> str:
    e = p.enriched
    d = e.project
    market, oc, tvl = e.market_metrics, e.on_chain_metrics, e.tvl_metrics
    lines = [
        f"Project: {d.name}",
        f"Category: {e.category}",
        f"Ecosystem Rank: #{d.ecosystem_rank} (CoinGecko BNB Chain ecosystem)",
        f"Survival Score: {p.scoring.score}/100 ({p.scoring.grade})",
        f"Verdict: {p.verdict.value}",
    ]

    if e.has_token:
        lines.append(f"Token: {e.resolution.on_chain_symbol or d.symbol} ({e.resolution.contract_address})")
        if market.price_usd:
            lines.append(f"Price: ${market.price_usd:.6f}")
        if d.market_cap_usd:
            lines.append(f"Market Cap: ${fmt_usd(d.market_cap_usd)}")
        if market.volume_24h_usd:
            lines.append(f"24h Volume: ${fmt_usd(market.volume_24h_usd)}")
        if market.price_change_30d is not None:
            lines.append(f"30d Price Change: {market.price_change_30d:.1f}%")
        if oc.holder_count:
            lines.append(f"Holders: {fmt_usd(oc.holder_count)}")
        if oc.top11_holders_percent is not None:
            lines.append(f"Top-11 Holder %: {oc.top11_holders_percent:.1f}%")
        lines.append(f"Contract verified: {str(e.resolution.verified).lower()}")

    lines.append("\nEcosystem Activity:")
    lines.append(f"  Ecosystem Rank: #{d.ecosystem_rank}")
    if oc.active_addresses_24h:
        lines.append(f"  Active Addresses (24h): {fmt_usd(oc.active_addresses_24h)}")
    if oc.transfers_24h:
        lines.append(f"  Transfers (24h): {fmt_usd(oc.transfers_24h)}")

    social = e.social_metrics
    if social is not None and social.days_since_last_post is not None:
        lines.append(f"  Last X post: {social.days_since_last_post} days ago (@{social.handle})")

    if tvl.tvl_usd is not None:
        lines.append(f"\nTVL: ${fmt_usd(tvl.tvl_usd)}")
        if tvl.tvl_change_30d is not None:
            lines.append(f"TVL 30d Change: {tvl.tvl_change_30d:.1f}%")

    lines.append("\nFactor Breakdown:")
    for f in p.scoring.factors:
        if f.weight > 0:
            lines.append(f"  {f.key}: {f.value}/100 (weight: {f.weight}%)")

    return "\n".join(lines)


class Analyzer:
    def __init__(
        self,
        generator: NarrativeGenerator | None,
        model: str = "grok-3-mini-fast",
        score_delta: int = 5,
        max_tokens: int = 300,
        temperature: float = 0.4,
        concurrency: int = 3,
    ) -> None:
        self._generator = generator
        self.model = model
        self.score_delta = score_delta
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._concurrency = concurrency

    def needs_analysis(self, project: ScoredProject, previous: dict[str, int]) -> bool:
        prev = previous.get(project.external_id)
        return prev is None or abs(project.scoring.score - prev) >= self.score_delta

    async def generate_one(self, project: ScoredProject) -> AiAnalysis:
        alive = project.verdict == Verdict.SHIP
        template = ALIVE_PROMPT if alive else POST_MORTEM_PROMPT
        prompt = template.format(name=project.name, context=build_context(project))
        text = await self._generator.generate(
            prompt, model=self.model, max_tokens=self.max_tokens, temperature=self.temperature
        )
        return AiAnalysis(
            alive_summary=text if alive else None,
            post_mortem=None if alive else text,
            model=self.model,
            analyzed_at=datetime.now(UTC),
        )

    async def analyze(
        self,
        projects: list[ScoredProject],
        previous_scores: dict[str, int] | None = None,
    ) -> AnalyzerResult:
        t0 = time.monotonic()
        stats = AnalyzerStats()

        if self._generator is None:
            logger.warning("[ANALYZE] No narrative generator configured, skipping AI analysis")
            stats.skipped = len(projects)
            return AnalyzerResult(
                projects=[AnalyzedProject(scored=p) for p in projects], stats=stats, duration_ms=0
            )

        previous = previous_scores or {}
        logger.info(f"[ANALYZE] Analyzing {len(projects)} projects (model: {self.model})")

        async def _one(p: ScoredProject) -> tuple[AnalyzedProject, str]:
            if not self.needs_analysis(p, previous):
                return AnalyzedProject(scored=p), "skipped"
            try:
                return AnalyzedProject(scored=p, analysis=await self.generate_one(p)), "generated"
            except Exception as e:
                logger.warning(f"[ANALYZE] AI analysis failed for {p.name}: {e}")
                return AnalyzedProject(scored=p), "failed"

        results = await bounded_gather(projects, _one, self._concurrency)
        for _, outcome in results:
            if outcome == "generated":
                stats.generated += 1
            elif outcome == "skipped":
                stats.skipped += 1
            else:
                stats.failed += 1

        duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"[ANALYZE] generated={stats.generated} skipped={stats.skipped} failed={stats.failed}"
        )
        return AnalyzerResult(
            projects=[a for a, _ in results], stats=stats, duration_ms=duration_ms
        )
