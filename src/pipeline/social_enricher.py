"""Phase 2.5: X account activity (is the team still posting?).

Primary: xAI x_search, one call per batch of handles.
Fallback: X API v2, one handle at a time with a delay between calls.
Best-effort: with no provider configured, or when a batch comes back empty,
social blocks stay Missing and the run continues.
"""

import asyncio
import re
import time
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Protocol

from loguru import logger

from src.parsers.twitter.models import SocialActivity
from src.pipeline.types import EnrichedProject, Missing, Ok, SocialMetrics, SocialStatus

ACTIVE_WINDOW_DAYS = 30
RECENT_POST_DAYS = 7
MAX_HANDLE_LEN = 15
BATCH_PAUSE_SEC = 1.0

_HANDLE_STRIP_RE = re.compile(r"[^A-Za-z0-9_]")


class BatchSocialProvider(Protocol):
    async def batch_activity(self, handles: list[str]) -> dict[str, SocialActivity]: ...


class SingleSocialProvider(Protocol):
    async def get_activity(self, handle: str) -> SocialActivity: ...


@dataclass
class SocialEnricherStats:
    active: int = 0
    inactive: int = 0
    unavailable: int = 0
    no_handle: int = 0


@dataclass
class SocialEnricherResult:
    projects: list[EnrichedProject]
    stats: SocialEnricherStats
    duration_ms: int


def derive_handle(name: str) -> str | None:
    """Best-guess handle from a project name: alnum/_ only, max 15 chars."""
    cleaned = _HANDLE_STRIP_RE.sub("", name)[:MAX_HANDLE_LEN]
    return cleaned if len(cleaned) >= 2 else None


def handle_for(project: EnrichedProject) -> str | None:
    return project.resolution.twitter_handle or derive_handle(project.name)


def to_social_metrics(activity: SocialActivity, now: datetime | None = None) -> SocialMetrics:
    now = now or datetime.now(UTC)
    days = None
    if activity.last_post_at is not None:
        days = max(0, (now - activity.last_post_at).days)

    if not activity.account_exists:
        status = SocialStatus.UNAVAILABLE
    elif days is not None and days <= ACTIVE_WINDOW_DAYS:
        status = SocialStatus.ACTIVE
    else:
        status = SocialStatus.INACTIVE

    return SocialMetrics(
        handle=activity.handle,
        account_status=status,
        source=activity.source,
        followers=activity.followers,
        recent_post_count=(1 if days is not None and days <= RECENT_POST_DAYS else 0)
        if activity.account_exists
        else None,
        snippets=(activity.last_post,) if activity.last_post else (),
        last_post_at=activity.last_post_at,
        days_since_last_post=days,
    )


def _unavailable(handle: str, source: str, error: str) -> SocialMetrics:
    return SocialMetrics(
        handle=handle, account_status=SocialStatus.UNAVAILABLE, source=source, error=error
    )


class SocialEnricher:
    def __init__(
        self,
        batch_provider: BatchSocialProvider | None = None,
        single_provider: SingleSocialProvider | None = None,
        batch_size: int = 10,
        single_delay_s: float = 2.0,
        batch_pause_s: float = BATCH_PAUSE_SEC,
    ) -> None:
        self._batch = batch_provider
        self._single = single_provider
        self._batch_size = max(1, batch_size)
        self._single_delay_s = single_delay_s
        self._batch_pause_s = batch_pause_s

    async def _run_batches(self, items: list[tuple[str, str]]) -> dict[str, SocialMetrics]:
        """items: (external_id, handle). Returns metrics by external id."""
        out: dict[str, SocialMetrics] = {}
        batches = [items[i : i + self._batch_size] for i in range(0, len(items), self._batch_size)]

        for n, batch in enumerate(batches):
            handles = [h for _, h in batch]
            logger.info(f"[SOCIAL] x_search batch {n + 1}/{len(batches)}: {len(handles)} handles")
            try:
                found = await self._batch.batch_activity(handles)
            except Exception as e:
                logger.warning(f"[SOCIAL] batch {n + 1} failed: {e}")
                for ext_id, handle in batch:
                    out[ext_id] = _unavailable(handle, "grok_xsearch", str(e))
            else:
                if found:
                    for ext_id, handle in batch:
                        activity = found.get(handle.lower())
                        out[ext_id] = (
                            to_social_metrics(activity)
                            if activity is not None
                            else _unavailable(handle, "grok_xsearch", "handle not matched")
                        )
                else:
                    logger.info(f"[SOCIAL] batch {n + 1} returned nothing, leaving social empty")

            if n < len(batches) - 1 and self._batch_pause_s:
                await asyncio.sleep(self._batch_pause_s)
        return out

    async def _run_single(self, items: list[tuple[str, str]]) -> dict[str, SocialMetrics]:
        out: dict[str, SocialMetrics] = {}
        for i, (ext_id, handle) in enumerate(items):
            try:
                activity = await self._single.get_activity(handle)
                out[ext_id] = to_social_metrics(activity)
            except Exception as e:
                logger.debug(f"[SOCIAL] @{handle} lookup failed: {e}")
                out[ext_id] = _unavailable(handle, "twitter_api", str(e))
            if i < len(items) - 1 and self._single_delay_s:
                await asyncio.sleep(self._single_delay_s)
        return out

    async def enrich(self, projects: list[EnrichedProject]) -> SocialEnricherResult:
        t0 = time.monotonic()
        stats = SocialEnricherStats()

        items: list[tuple[str, str]] = []
        for p in projects:
            handle = handle_for(p)
            if handle:
                items.append((p.external_id, handle))
            else:
                stats.no_handle += 1

        if self._batch is None and self._single is None:
            logger.warning("[SOCIAL] No xAI key or X bearer token, skipping social enrichment")
            return SocialEnricherResult(
                projects=[replace(p, social=Missing("no social provider configured")) for p in projects],
                stats=stats,
                duration_ms=0,
            )
        if not items:
            logger.info("[SOCIAL] No handles found, skipping")
            return SocialEnricherResult(projects=list(projects), stats=stats, duration_ms=0)

        logger.info(f"[SOCIAL] Fetching activity for {len(items)} handles")
        if self._batch is not None:
            metrics = await self._run_batches(items)
        else:
            metrics = await self._run_single(items)

        enriched = []
        for p in projects:
            m = metrics.get(p.external_id)
            if m is None:
                enriched.append(p)
                continue
            if m.account_status == SocialStatus.ACTIVE:
                stats.active += 1
            elif m.account_status == SocialStatus.INACTIVE:
                stats.inactive += 1
            else:
                stats.unavailable += 1
            enriched.append(replace(p, social=Ok(m)))

        duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            f"[SOCIAL] {stats.active} active, {stats.inactive} inactive, "
            f"{stats.unavailable} unavailable, {stats.no_handle} no handle"
        )
        return SocialEnricherResult(projects=enriched, stats=stats, duration_ms=duration_ms)
