"""xAI (Grok) client: narrative generation and batched X account activity.

- generate(): /chat/completions, used for alive summaries and post-mortems.
- batch_activity(): /responses with the x_search tool, one call covers up to
  ~10 handles (~$0.005 per batch).
"""

import asyncio
import json
import re
from datetime import UTC, datetime
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from src.parsers.rate_limiter import RateLimiter
from src.parsers.twitter.models import SocialActivity
from src.parsers.xai.models import XaiChatCompletion, XaiResponse, XSearchEntry

MAX_RETRIES = 2
RETRY_DELAYS = [2.0, 5.0]

DEFAULT_CHAT_MODEL = "grok-3-mini-fast"
DEFAULT_SEARCH_MODEL = "grok-4-1-fast-non-reasoning"

_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")

BATCH_INSTRUCTIONS = (
    "mode: each account, Latest\n"
    "limit: 1\n\n"
    'Return JSON array: [{"handle":"username","lastPostDate":"YYYY-MM-DD",'
    '"accountExists":true,"followers":12345,"lastPost":"post content","correctHandle":null}]'
)


class XaiApiError(Exception):
    """xAI API error."""


def _parse_post_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class XaiClient:
    """Async client for the xAI API (OpenAI-compatible chat + /responses)."""

    BASE_URL = "https://api.x.ai/v1"

    def __init__(
        self,
        api_key: str,
        search_model: str = DEFAULT_SEARCH_MODEL,
        rate_limiter: RateLimiter | None = None,
        requests_per_minute: float = 60.0,
        burst: int = 5,
    ) -> None:
        self._search_model = search_model
        self._rate_limiter = rate_limiter or RateLimiter(requests_per_minute, burst, name="xai")
        self._client = httpx.AsyncClient(
            base_url=self.BASE_URL,
            timeout=30.0,  # LLM responses can be slow
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
        )

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST with retry on 429/5xx/timeouts."""
        last_exc: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            await self._rate_limiter.acquire()
            try:
                resp = await self._client.post(path, json=payload)

                if resp.status_code == 429 or resp.status_code >= 500:
                    if attempt < MAX_RETRIES:
                        delay = RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)]
                        logger.debug(f"[XAI] {resp.status_code}, retrying in {delay}s")
                        await asyncio.sleep(delay)
                        continue
                    raise XaiApiError(f"HTTP {resp.status_code} after retries: {path}")

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                raise XaiApiError(f"HTTP {e.response.status_code}: {e.response.text[:200]}") from e
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_exc = e
                if attempt < MAX_RETRIES:
                    await asyncio.sleep(RETRY_DELAYS[min(attempt, len(RETRY_DELAYS) - 1)])
                    continue
                raise XaiApiError(f"Request failed after {MAX_RETRIES + 1} attempts: {e}") from e
            except httpx.RequestError as e:
                raise XaiApiError(f"Request failed: {e}") from e

        raise XaiApiError(f"Request failed after retries: {path}") from last_exc

    async def generate(
        self,
        prompt: str,
        model: str = DEFAULT_CHAT_MODEL,
        max_tokens: int = 300,
        temperature: float = 0.4,
    ) -> str:
        """Single-turn completion. Raises XaiApiError on failure or empty output."""
        data = await self._post(
            "/chat/completions",
            {
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            },
        )
        completion = XaiChatCompletion.model_validate(data)
        if not completion.choices or not completion.choices[0].message.content:
            raise XaiApiError("Empty completion")
        return completion.choices[0].message.content.strip()

    async def batch_activity(self, handles: list[str]) -> dict[str, SocialActivity]:
        """Look up many handles in one x_search call.

        Result is keyed by the lowercased requested handle. Handles Grok did
        not return are simply absent; callers decide how to treat them.
        """
        if not handles:
            return {}

        from_query = " OR ".join(f"from:{h}" for h in handles)
        data = await self._post(
            "/responses",
            {
                "model": self._search_model,
                "input": f"{from_query}\n\n{BATCH_INSTRUCTIONS}",
                "tools": [
                    {
                        "type": "x_search",
                        "x_search_count": "high",
                        "allowed_x_handles": handles,
                    }
                ],
                "temperature": 0,
            },
        )

        text = XaiResponse.model_validate(data).output_text
        match = _JSON_ARRAY_RE.search(text)
        if not match:
            logger.warning(f"[XAI] x_search returned no JSON array for {len(handles)} handles")
            return {}
        try:
            raw_entries = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            logger.warning(f"[XAI] x_search JSON parse failed: {e}")
            return {}
        if not isinstance(raw_entries, list):
            return {}

        requested = {h.lower() for h in handles}
        results: dict[str, SocialActivity] = {}
        for raw in raw_entries:
            try:
                entry = XSearchEntry.model_validate(raw)
            except ValidationError:
                continue
            key = entry.handle.lstrip("@").lower()
            if key not in requested:
                continue
            results[key] = SocialActivity(
                handle=(entry.correctHandle or entry.handle).lstrip("@"),
                account_exists=entry.accountExists,
                followers=entry.followers,
                last_post_at=_parse_post_date(entry.lastPostDate),
                last_post=entry.lastPost or None,
                source="grok_xsearch",
            )

        logger.debug(f"[XAI] x_search matched {len(results)}/{len(handles)} handles")
        return results

    async def close(self) -> None:
        await self._client.aclose()
