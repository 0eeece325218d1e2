"""Category-specific weight profiles (each sums to 100).

No-token variants zero price/holder/trading/sentiment factors and shift the
weight onto activity, TVL and ecosystem rank. Meme has a single profile.
"""

FACTOR_KEYS: tuple[str, ...] = (
    "user_activity",
    "user_growth",
    "tx_activity",
    "tvl_health",
    "price_momentum",
    "trading_health",
    "holder_strength",
    "market_sentiment",
    "contract_trust",
    "category_health",
    "ecosystem_rank",
    "market_cap",
    "twitter_activity",
)


def _profile(*weights: int) -> dict[str, int]:
    assert len(weights) == len(FACTOR_KEYS)
    return dict(zip(FACTOR_KEYS, weights))


#                            usr usrG tx tvl pMom trd hold sent trust cat eco mcap tw
WEIGHT_PROFILES: dict[str, dict[str, int]] = {
    "defi_token":     _profile(11, 8, 9, 13, 8, 9, 8, 7, 5, 5, 7, 5, 5),
    "defi_notoken":   _profile(14, 11, 14, 17, 0, 0, 0, 0, 8, 8, 11, 10, 7),
    "gaming_token":   _profile(13, 9, 11, 5, 8, 8, 7, 7, 5, 5, 9, 8, 5),
    "gaming_notoken": _profile(18, 14, 18, 10, 0, 0, 0, 0, 10, 7, 16, 0, 7),
    "meme":           _profile(5, 5, 5, 0, 14, 14, 10, 14, 5, 5, 5, 10, 8),
    "infra_token":    _profile(11, 9, 11, 5, 7, 8, 8, 7, 7, 5, 9, 8, 5),
    "infra_notoken":  _profile(16, 14, 18, 0, 0, 0, 0, 0, 10, 8, 14, 12, 8),
}

# Categories without a dedicated profile score as infra
PROFILED_CATEGORIES = {"defi", "gaming", "infra"}
FALLBACK_CATEGORY = "infra"


def profile_key(category: str, has_token: bool) -> str:
    """Weight profile id for (category, has-token). Meme ignores the token axis."""
    if category == "meme":
        return "meme"
    base = category if category in PROFILED_CATEGORIES else FALLBACK_CATEGORY
    return f"{base}_token" if has_token else f"{base}_notoken"


def get_weights(key: str) -> dict[str, int]:
    return WEIGHT_PROFILES.get(key, WEIGHT_PROFILES["infra_token"])


def active_factors(key: str) -> list[str]:
    return [k for k, w in get_weights(key).items() if w > 0]
