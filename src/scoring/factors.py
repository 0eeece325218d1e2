"""Thirteen survival factors, each 0-100.

Sources: CoinGecko market data, Moralis on-chain, DeFiLlama TVL, X activity.
Every factor has a fallback for missing inputs so a project with sparse data
still scores; the weight profile decides how much each factor matters.
"""

import math

from src.pipeline.types import EnrichedProject, SocialStatus

CATEGORY_HEALTH_PLACEHOLDER = 50


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _bucket(value: float, tiers: list[tuple[float, int]], floor: int) -> int:
    """First tier whose threshold `value` strictly exceeds, else floor."""
    for threshold, score in tiers:
        if value > threshold:
            return score
    return floor


def score_user_activity(p: EnrichedProject) -> int:
    """Active on-chain addresses, with 24h volume as engagement fallback."""
    active = p.on_chain_metrics.active_addresses_24h or 0
    if active > 0:
        return _bucket(active, [(5_000, 90), (1_000, 75), (200, 55), (50, 40)], 25)
    vol = p.market_metrics.volume_24h_usd or 0
    return _bucket(vol, [(10_000_000, 70), (1_000_000, 55), (100_000, 40), (0, 25)], 15)


def score_user_growth(p: EnrichedProject) -> int:
    change = p.market_metrics.price_change_7d
    if change is None:
        return 40
    return _bucket(change, [(20, 85), (5, 70), (0, 55), (-10, 35)], 15)


def score_tx_activity(p: EnrichedProject) -> int:
    # 24h transfers scaled to a weekly estimate
    weekly = (p.on_chain_metrics.transfers_24h or 0) * 7
    return _bucket(weekly, [(500_000, 90), (50_000, 75), (5_000, 55), (500, 40), (0, 25)], 10)


def score_tvl_health(p: EnrichedProject) -> int:
    tvl = p.tvl_metrics
    if tvl.tvl_usd is not None:
        size = _bucket(tvl.tvl_usd, [(100_000_000, 90), (10_000_000, 75), (1_000_000, 55), (100_000, 40)], 20)
        trend = 0
        if tvl.tvl_change_30d is not None:
            trend = _bucket(tvl.tvl_change_30d, [(20, 10), (0, 5), (-20, -5)], -15)
        return min(100, max(0, size + trend))

    # Non-DeFi: liquidity proxy
    liq = p.market_metrics.liquidity_usd or 0
    return _bucket(liq, [(10_000_000, 80), (1_000_000, 60), (100_000, 45), (0, 25)], 10)


def score_price_momentum(p: EnrichedProject) -> int:
    if not p.has_token:
        return 50
    change = p.market_metrics.price_change_30d
    if change is None:
        return 40
    return _bucket(change, [(50, 90), (10, 75), (0, 60), (-20, 40), (-50, 20)], 10)


def score_trading_health(p: EnrichedProject) -> int:
    vol = p.market_metrics.volume_24h_usd or 0
    mcap = p.project.market_cap_usd or 0
    if mcap == 0:
        return _bucket(vol, [(10_000_000, 80), (1_000_000, 60), (100_000, 40)], 15)
    return _bucket(vol / mcap, [(0.5, 90), (0.1, 75), (0.02, 55), (0.005, 35)], 15)


def score_holder_strength(p: EnrichedProject) -> int:
    if not p.has_token:
        return 50
    oc = p.on_chain_metrics
    count = _bucket(oc.holder_count or 0, [(100_000, 90), (10_000, 75), (5_000, 60), (1_000, 45), (100, 30)], 10)

    dist = 50
    top11 = oc.top11_holders_percent
    if top11 is not None:
        if top11 < 20:
            dist = 90
        elif top11 < 40:
            dist = 70
        elif top11 < 60:
            dist = 50
        elif top11 < 80:
            dist = 30
        else:
            dist = 10
    return round_half_up(count * 0.5 + dist * 0.5)


def score_market_sentiment(p: EnrichedProject) -> int:
    if not p.has_token:
        return 50
    change_7d = p.market_metrics.price_change_7d or 0
    change_24h = p.project.price_change_24h or 0
    composite = change_7d * 0.4 + change_24h * 0.6
    return _bucket(composite, [(10, 85), (3, 70), (0, 55), (-3, 45), (-10, 30)], 15)


def score_contract_trust(p: EnrichedProject) -> int:
    oc = p.on_chain_metrics
    score = 40
    if p.has_token:
        score += 10
    if p.resolution.verified:
        score += 20
    if oc.holder_count and oc.holder_count > 100:
        score += 15
    if not oc.is_concentrated:
        score += 10
    liq = p.market_metrics.liquidity_usd
    if liq and liq > 10_000:
        score += 5
    return min(score, 100)


def score_ecosystem_rank(p: EnrichedProject) -> int:
    rank = p.project.ecosystem_rank
    if rank <= 50:
        return 90
    if rank <= 100:
        return 75
    if rank <= 200:
        return 60
    if rank <= 500:
        return 45
    return 30


def score_market_cap(p: EnrichedProject) -> int:
    if not p.has_token:
        tvl = p.tvl_metrics.tvl_usd or 0
        if tvl > 100_000:
            return _bucket(tvl, [(100_000_000, 90), (10_000_000, 75), (1_000_000, 55)], 40)
        rank = p.project.ecosystem_rank
        if rank <= 50:
            return 60
        if rank <= 100:
            return 50
        return 35

    mcap = p.project.market_cap_usd or 0
    return _bucket(mcap, [(500_000_000, 90), (50_000_000, 75), (5_000_000, 55), (500_000, 40), (0, 20)], 10)


def score_twitter_activity(p: EnrichedProject) -> int:
    """Days since the last post. Unknown account scores neutral."""
    social = p.social_metrics
    if social is None or social.account_status == SocialStatus.UNAVAILABLE:
        return 50
    days = social.days_since_last_post
    if days is None:
        # Account exists but no visible posts
        return 20
    if days <= 7:
        return 90
    if days <= 14:
        return 75
    if days <= 30:
        return 60
    if days <= 60:
        return 35
    if days <= 90:
        return 20
    return 5


def compute_factors(p: EnrichedProject) -> dict[str, int]:
    """All factor values in FACTOR_KEYS order. category_health is filled in pass 2."""
    return {
        "user_activity": score_user_activity(p),
        "user_growth": score_user_growth(p),
        "tx_activity": score_tx_activity(p),
        "tvl_health": score_tvl_health(p),
        "price_momentum": score_price_momentum(p),
        "trading_health": score_trading_health(p),
        "holder_strength": score_holder_strength(p),
        "market_sentiment": score_market_sentiment(p),
        "contract_trust": score_contract_trust(p),
        "category_health": CATEGORY_HEALTH_PLACEHOLDER,
        "ecosystem_rank": score_ecosystem_rank(p),
        "market_cap": score_market_cap(p),
        "twitter_activity": score_twitter_activity(p),
    }
