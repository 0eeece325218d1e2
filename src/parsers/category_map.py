"""Map CoinGecko category tags to internal project categories.

Rules are checked in priority order; first rule with a keyword contained in
the lowercased, space-joined tag string wins.
"""

DEFAULT_CATEGORY = "other"

CATEGORY_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("meme", ("meme", "dog", "cat", "pepe", "shib", "floki", "elon")),
    (
        "defi",
        (
            "defi", "dex", "exchange", "swap", "yield", "lending", "borrowing",
            "staking", "liquid-staking", "derivatives", "perpetual", "options",
            "amm", "liquidity",
        ),
    ),
    ("gaming", ("gaming", "game", "gamefi", "play-to-earn", "p2e", "nft-gaming", "metaverse")),
    ("nft", ("nft", "non-fungible", "collectibles", "art", "marketplace", "virtual-world")),
    ("social", ("social", "socialfi", "creator", "fan-token", "dao", "governance", "community")),
    (
        "infra",
        (
            "infrastructure", "oracle", "bridge", "cross-chain", "layer-2", "storage",
            "identity", "privacy", "wallet", "tool", "dev-tool",
        ),
    ),
]


def map_category(tags: str | list[str] | tuple[str, ...] | None) -> str:
    """Map one tag or a list of tags to defi/gaming/meme/nft/social/infra/other."""
    if not tags:
        return DEFAULT_CATEGORY
    text = tags.lower() if isinstance(tags, str) else " ".join(tags).lower()
    for category, keywords in CATEGORY_RULES:
        if any(kw in text for kw in keywords):
            return category
    return DEFAULT_CATEGORY
