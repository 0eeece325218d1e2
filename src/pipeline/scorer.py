"""Phase 3: category-adaptive scoring and whale signals.

Pass 1 scores every project against its weight profile. Pass 2 replaces the
category_health placeholder with the median pass-1 score of the project's
category cohort; the headline score is not recomputed.
"""

import time
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from loguru import logger

from src.pipeline.types import CompositeScores, EnrichedProject, ScoredProject, ScoreFactor, ScoreResult, Verdict
from src.scoring.factors import CATEGORY_HEALTH_PLACEHOLDER, compute_factors, round_half_up
from src.scoring.weights import FACTOR_KEYS, get_weights, profile_key
from src.scoring.whale_signals import DEFAULT_POLICY, WhalePolicy, detect_whale_signal

GRADE_CUTOFFS: list[tuple[int, str]] = [(80, "A"), (65, "B"), (50, "C"), (35, "D")]


@dataclass
class ScorerStats:
    ship: int = 0
    watch: int = 0
    skip: int = 0
    avg_score: int = 0
    signals: int = 0


@dataclass
class ScorerResult:
    projects: list[ScoredProject]
    stats: ScorerStats
    duration_ms: int


def combine(factors: dict[str, int], weights: dict[str, int]) -> int:
    """Weighted mean over factors with positive weight, rounded half up."""
    active = [(k, w) for k, w in weights.items() if w > 0]
    total = sum(w for _, w in active)
    if total == 0:
        return 0
    return round_half_up(sum(factors.get(k, 0) * w for k, w in active) / total)


def grade_for(score: int) -> str:
    for cutoff, grade in GRADE_CUTOFFS:
        if score >= cutoff:
            return grade
    return "F"


def verdict_for(score: int, ship_threshold: int, watch_threshold: int) -> Verdict:
    if score >= ship_threshold:
        return Verdict.SHIP
    if score >= watch_threshold:
        return Verdict.WATCH
    return Verdict.SKIP


def median(values: list[int]) -> int:
    """Median; even-sized cohorts take the rounded mean of the middle two."""
    if not values:
        return CATEGORY_HEALTH_PLACEHOLDER
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return round_half_up((ordered[mid - 1] + ordered[mid]) / 2)


def _factor(key: str, value: int, weight: int) -> ScoreFactor:
    return ScoreFactor(key=key, value=value, weight=weight, weighted=round(weight * value / 100, 2))


def _composites(f: dict[str, int]) -> CompositeScores:
    return CompositeScores(
        survival=round_half_up((f["contract_trust"] + f["ecosystem_rank"]) / 2),
        momentum=round_half_up((f["price_momentum"] + f["trading_health"]) / 2),
        community=round_half_up((f["holder_strength"] + f["twitter_activity"]) / 2),
        fundamentals=round_half_up((f["tvl_health"] + f["market_cap"]) / 2),
    )


class Scorer:
    def __init__(
        self,
        ship_threshold: int = 60,
        watch_threshold: int = 40,
        whale_policy: WhalePolicy = DEFAULT_POLICY,
    ) -> None:
        self.ship_threshold = ship_threshold
        self.watch_threshold = watch_threshold
        self.whale_policy = whale_policy

    def score_one(
        self,
        project: EnrichedProject,
        weights: dict[str, int] | None = None,
        profile: str | None = None,
    ) -> ScoredProject:
        """Pass 1 for a single project. weights/profile override profile selection."""
        profile = profile or profile_key(project.category, project.has_token)
        weights = weights if weights is not None else get_weights(profile)
        values = compute_factors(project)

        score = combine(values, weights)
        result = ScoreResult(
            score=score,
            grade=grade_for(score),
            profile=profile,
            factors=tuple(_factor(k, values[k], weights.get(k, 0)) for k in FACTOR_KEYS),
            composite=_composites(values),
            scored_at=datetime.now(UTC),
        )
        return ScoredProject(
            enriched=project,
            scoring=result,
            verdict=verdict_for(score, self.ship_threshold, self.watch_threshold),
            whale_signal=detect_whale_signal(project, self.whale_policy),
        )

    @staticmethod
    def apply_category_health(scored: list[ScoredProject]) -> list[ScoredProject]:
        """Pass 2: category_health <- median pass-1 score of the category cohort."""
        cohorts: dict[str, list[int]] = defaultdict(list)
        for p in scored:
            cohorts[p.category].append(p.scoring.score)
        medians = {cat: median(scores) for cat, scores in cohorts.items()}

        out = []
        for p in scored:
            cat_median = medians[p.category]
            factors = tuple(
                _factor(f.key, cat_median, f.weight) if f.key == "category_health" else f
                for f in p.scoring.factors
            )
            out.append(replace(p, scoring=replace(p.scoring, factors=factors)))
        return out

    def score(self, projects: list[EnrichedProject]) -> ScorerResult:
        t0 = time.monotonic()
        logger.info(f"[SCORE] Scoring {len(projects)} projects")

        scored = self.apply_category_health([self.score_one(p) for p in projects])

        stats = ScorerStats()
        for p in scored:
            if p.verdict == Verdict.SHIP:
                stats.ship += 1
            elif p.verdict == Verdict.WATCH:
                stats.watch += 1
            else:
                stats.skip += 1
            if p.whale_signal is not None:
                stats.signals += 1
        if scored:
            stats.avg_score = round_half_up(sum(p.scoring.score for p in scored) / len(scored))

        duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"[SCORE] SHIP={stats.ship} WATCH={stats.watch} SKIP={stats.skip} "
            f"avg={stats.avg_score} whale_signals={stats.signals}"
        )
        return ScorerResult(projects=scored, stats=stats, duration_ms=duration_ms)
