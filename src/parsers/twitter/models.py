"""Pydantic models for X (Twitter) API v2 responses and social activity lookups."""

from datetime import datetime

from pydantic import BaseModel


class TwitterPublicMetrics(BaseModel):
    followers_count: int | None = None
    following_count: int | None = None
    tweet_count: int | None = None

    model_config = {"extra": "ignore"}


class TwitterUser(BaseModel):
    """data block of /users/by/username/{handle}."""

    id: str
    username: str = ""
    name: str = ""
    public_metrics: TwitterPublicMetrics = TwitterPublicMetrics()

    model_config = {"extra": "ignore"}


class TwitterPost(BaseModel):
    """Single row of /users/{id}/tweets."""

    id: str = ""
    text: str = ""
    created_at: datetime | None = None

    model_config = {"extra": "ignore"}


class SocialActivity(BaseModel):
    """Per-handle activity, shared by the x_search batch and the v2 fallback."""

    handle: str
    account_exists: bool = False
    followers: int | None = None
    last_post_at: datetime | None = None
    last_post: str | None = None
    source: str = "twitter_api"  # twitter_api | grok_xsearch
