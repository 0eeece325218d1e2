"""X (Twitter) API v2 client: last-post recency and follower count per handle.

Fallback social provider. The free/basic tiers allow ~15 user lookups per
15 minutes, so callers go one handle at a time with a delay between calls.
Docs: https://docs.x.com/x-api
"""

import asyncio
import re

import httpx
from loguru import logger

from src.parsers.rate_limiter import RateLimiter
from src.parsers.twitter.models import SocialActivity, TwitterPost, TwitterUser

MAX_RETRIES = 2
RETRY_DELAYS = [1.0, 3.0]

_URL_HANDLE_RE = re.compile(r"(?:twitter\.com|x\.com)/([A-Za-z0-9_]{1,15})/?")
_HANDLE_RE = re.compile(r"^[A-Za-z0-9_]{1,15}$")


class TwitterApiError(Exception):
    """X API v2 error."""


def extract_handle(value: str | None) -> str | None:
    """Accept a bare handle, an @handle or a profile URL."""
    if not value:
        return None
    value = value.strip()
    match = _URL_HANDLE_RE.search(value)
    if match:
        return match.group(1)
    if value.startswith("@"):
        value = value[1:]
    return value if _HANDLE_RE.match(value) else None


class TwitterClient:
    """HTTP client for X API v2 with bearer-token auth."""

    BASE_URL = "https://api.twitter.com/2"

    def __init__(
        self,
        bearer_token: str,
        rate_limiter: RateLimiter | None = None,
        requests_per_minute: float = 15.0,
        burst: int = 1,
    ) -> None:
        self._rate_limiter = rate_limiter or RateLimiter(requests_per_minute, burst, name="twitter")
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            timeout=30.0,
            headers={
                "Authorization": f"Bearer {bearer_token}",
                "Accept": "application/json",
            },
        )

    async def _request(self, method: str, path: str, **kwargs: object) -> dict:
        """Make rate-limited API request with retry on transient errors."""
        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                response = await self._client.request(method, path, **kwargs)
                if response.status_code == 429:
                    if attempt < MAX_RETRIES:
                        await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                        continue
                    raise TwitterApiError("Rate limited (429)")
                if response.status_code >= 500 and attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                    continue
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                raise TwitterApiError(
                    f"HTTP {e.response.status_code}: {e.response.text[:200]}"
                ) from e
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                    continue
                raise TwitterApiError(f"Request failed after {MAX_RETRIES + 1} attempts: {e}") from e
            except httpx.RequestError as e:
                raise TwitterApiError(f"Request failed: {e}") from e
        raise TwitterApiError("Max retries exceeded")

    async def get_user(self, handle: str) -> TwitterUser | None:
        """User by handle. None when the account does not exist or is suspended."""
        data = await self._request(
            "GET",
            f"/users/by/username/{handle}",
            params={"user.fields": "public_metrics"},
        )
        user_data = data.get("data")
        if not isinstance(user_data, dict) or not user_data.get("id"):
            return None
        return TwitterUser.model_validate(user_data)

    async def get_recent_posts(self, user_id: str, limit: int = 5) -> list[TwitterPost]:
        """Most recent original posts (no retweets/replies). API minimum is 5."""
        data = await self._request(
            "GET",
            f"/users/{user_id}/tweets",
            params={
                "max_results": max(5, limit),
                "tweet.fields": "created_at",
                "exclude": "retweets,replies",
            },
        )
        posts = []
        for raw in data.get("data") or []:
            try:
                posts.append(TwitterPost.model_validate(raw))
            except Exception:
                continue
        return posts

    async def get_activity(self, handle: str) -> SocialActivity:
        """Existence, followers and last post for one handle."""
        user = await self.get_user(handle)
        if user is None:
            return SocialActivity(handle=handle, account_exists=False)

        activity = SocialActivity(
            handle=user.username or handle,
            account_exists=True,
            followers=user.public_metrics.followers_count,
        )
        posts = await self.get_recent_posts(user.id)
        if posts:
            activity.last_post_at = posts[0].created_at
            activity.last_post = posts[0].text or None
        logger.debug(
            f"[TWITTER] @{handle}: followers={activity.followers} last_post={activity.last_post_at}"
        )
        return activity

    async def close(self) -> None:
        await self._client.aclose()
