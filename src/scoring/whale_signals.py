"""Whale signal classification from on-chain holders + price-derived buy pressure.

Four priority-ordered rules, first match wins:
  1. stealth accumulation: strong buy pressure into a concentrated holder base
  2. aligned conviction: moderate buy pressure, broad distribution, many holders
  3. smart-money exit: weak buy pressure with a meaningful holder base
  4. confirmed decline: tiny holder base or very weak buy pressure
No match returns None, the common case.

Buy pressure is a heuristic proxy (0.6 * 24h + 0.4 * 7d price change around a
0.5 midpoint); its weights and every cutoff live in WhalePolicy.
"""

from dataclasses import dataclass
from datetime import UTC, datetime

from src.pipeline.types import AlertLevel, EnrichedProject, WhalePattern, WhaleSignal


@dataclass(frozen=True)
class WhalePolicy:
    weight_24h: float = 0.6
    weight_7d: float = 0.4
    default_top11_pct: float = 50.0

    # stealth accumulation
    accumulation_ratio: float = 0.55
    accumulation_top11_pct: float = 40.0
    accumulation_high_ratio: float = 0.65

    # aligned conviction
    conviction_max_top11_pct: float = 50.0
    conviction_min_holders: int = 5_000
    conviction_ratio: float = 0.52
    conviction_high_holders: int = 50_000

    # smart-money exit
    exit_ratio: float = 0.35
    exit_min_holders: int = 1_000
    exit_high_ratio: float = 0.25

    # confirmed decline
    decline_max_holders: int = 50
    decline_ratio: float = 0.25


DEFAULT_POLICY = WhalePolicy()


def buy_ratio(
    change_24h: float | None, change_7d: float | None, policy: WhalePolicy = DEFAULT_POLICY
) -> float:
    pressure = (change_24h or 0.0) * policy.weight_24h + (change_7d or 0.0) * policy.weight_7d
    return min(1.0, max(0.0, 0.5 + pressure / 100))


def _classify(
    ratio: float, top11: float, holders: int | None, policy: WhalePolicy
) -> tuple[WhalePattern, AlertLevel] | None:
    # Unknown holder count never satisfies a holder condition
    if ratio > policy.accumulation_ratio and top11 > policy.accumulation_top11_pct:
        level = AlertLevel.HIGH if ratio > policy.accumulation_high_ratio else AlertLevel.MEDIUM
        return WhalePattern.STEALTH_ACCUMULATION, level

    if (
        top11 < policy.conviction_max_top11_pct
        and holders is not None
        and holders > policy.conviction_min_holders
        and ratio > policy.conviction_ratio
    ):
        level = AlertLevel.HIGH if holders > policy.conviction_high_holders else AlertLevel.MEDIUM
        return WhalePattern.ALIGNED_CONVICTION, level

    if ratio < policy.exit_ratio and holders is not None and holders > policy.exit_min_holders:
        level = AlertLevel.HIGH if ratio < policy.exit_high_ratio else AlertLevel.MEDIUM
        return WhalePattern.SMART_MONEY_EXIT, level

    if (holders is not None and holders < policy.decline_max_holders) or ratio < policy.decline_ratio:
        return WhalePattern.CONFIRMED_DECLINE, AlertLevel.CRITICAL

    return None


def detect_whale_signal(
    project: EnrichedProject, policy: WhalePolicy = DEFAULT_POLICY
) -> WhaleSignal | None:
    """Classify one project. Requires a resolved contract address."""
    if not project.has_token:
        return None

    oc = project.on_chain_metrics
    top11 = oc.top11_holders_percent if oc.top11_holders_percent is not None else policy.default_top11_pct
    ratio = buy_ratio(project.project.price_change_24h, project.market_metrics.price_change_7d, policy)

    match = _classify(ratio, top11, oc.holder_count, policy)
    if match is None:
        return None
    pattern, level = match
    return WhaleSignal(
        pattern=pattern,
        alert_level=level,
        holder_count=oc.holder_count,
        top11_holders_percent=top11,
        is_concentrated=oc.is_concentrated,
        buy_ratio=round(ratio, 4),
        detected_at=datetime.now(UTC),
    )
