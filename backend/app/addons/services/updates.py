from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
)

from backend.app.config import Settings, get_settings
from ..domain.models import (
    AddonDescriptor,
    AddonHealth,
    AddonManifest,
    AddonUpdateInfo,
    SavedAddon,
)
from ..health import check_addon_health
from ..masking import mask_url
from ..store.client import StremioClient
from ..store.normalize import get_origin
from .coalesce import RequestCoalescer

logger = logging.getLogger("curator.updates")

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], None]


class DomainHealthCache:
    """
    origin -> True once any probe for that origin succeeded.

    Only ever written with True: partial outages are common, so one dead
    instance must not stop its siblings from trying their own URL.
    """

    def __init__(self) -> None:
        self._online: Dict[str, bool] = {}

    def is_online(self, origin: str) -> bool:
        return self._online.get(origin) is True

    def mark_online(self, origin: str) -> None:
        self._online[origin] = True

    def __len__(self) -> int:
        return len(self._online)


def chunked(items: Sequence[T], size: int) -> Iterator[Tuple[int, Sequence[T]]]:
    """Yield (start_index, slice) windows of at most `size` items."""
    for start in range(0, len(items), size):
        yield start, items[start:start + size]


async def run_in_batches(
    items: Sequence[T],
    batch_size: int,
    worker: Callable[[int, T], Awaitable[R]],
    on_progress: Optional[ProgressCallback] = None,
) -> List[R]:
    """
    Run `worker(index, item)` for every item, `batch_size` at a time.

    Members of a batch run concurrently; a batch only starts once the
    previous one has fully finished. Results keep input order.
    """
    results: List[R] = []
    total = len(items)
    for start, batch in chunked(items, batch_size):
        results.extend(
            await asyncio.gather(*(worker(start + i, item) for i, item in enumerate(batch)))
        )
        if on_progress is not None:
            on_progress(min(start + batch_size, total), total)
    return results


class CheckRun:
    """
    Shared state for one batch invocation.

    Nothing here outlives the call that created it: a new run starts with
    an empty domain cache and no pending entries.
    """

    def __init__(self, stremio: StremioClient, settings: Settings):
        self.stremio = stremio
        self.settings = settings
        self.domain_health = DomainHealthCache()
        self.pending_checks: RequestCoalescer[bool] = RequestCoalescer(
            "health", ttl=settings.pending_ttl
        )
        self.pending_manifests: RequestCoalescer[AddonDescriptor] = RequestCoalescer(
            "manifest", ttl=settings.pending_ttl, evict_on_error=True
        )

    def close(self) -> None:
        self.pending_checks.close()
        self.pending_manifests.close()

    async def probe(self, url: str) -> bool:
        return await check_addon_health(url, client=self.stremio.http, settings=self.settings)

    async def resolve_health(self, url: str, origin: str) -> bool:
        if self.domain_health.is_online(origin):
            return True

        async def shared_probe() -> bool:
            status = await self.probe(url)
            if status:
                self.domain_health.mark_online(origin)
            return status

        if await self.pending_checks.run(origin, shared_probe):
            return True

        # A shared negative is never final; every addon gets its own try
        status = await self.probe(url)
        if status:
            self.domain_health.mark_online(origin)
        return status

    async def resolve_manifest(self, url: str, group_key: str) -> AddonDescriptor:
        try:
            return await self.pending_manifests.run(
                group_key, lambda: self.stremio.fetch_addon_manifest(url)
            )
        except Exception as exc:
            logger.debug("Shared manifest fetch failed for %s (%s), fetching directly", group_key, exc)
            return await self.stremio.fetch_addon_manifest(url)


@asynccontextmanager
async def open_check_run(
    stremio: Optional[StremioClient] = None,
    settings: Optional[Settings] = None,
) -> AsyncIterator[CheckRun]:
    if settings is None:
        settings = stremio.settings if stremio is not None else get_settings()
    async with AsyncExitStack() as stack:
        if stremio is None:
            stremio = await stack.enter_async_context(StremioClient(settings=settings))
        run = CheckRun(stremio, settings)
        stack.callback(run.close)
        yield run


async def _with_health(
    run: CheckRun,
    url: str,
    origin: str,
    fetch: Awaitable[AddonDescriptor],
) -> Tuple[AddonDescriptor, bool]:
    # health and manifest run side by side; a failed fetch must not leave the probe orphaned
    health = asyncio.ensure_future(run.resolve_health(url, origin))
    try:
        latest = await fetch
        return latest, await health
    finally:
        if not health.done():
            health.cancel()


def _update_info(
    *,
    addon_id: str,
    name: str,
    url: str,
    installed: AddonManifest,
    latest: AddonManifest,
    is_online: bool,
) -> AddonUpdateInfo:
    return AddonUpdateInfo(
        addonId=addon_id,
        name=name,
        transportUrl=url,
        installedVersion=installed.version,
        latestVersion=latest.version,
        # plain string comparison on purpose: "1.0" != "1.0.0"
        hasUpdate=latest.version != installed.version,
        isOnline=is_online,
    )


# ----------------------------
# Public entry points
# ----------------------------

async def check_all_addons_health(
    addons: Sequence[SavedAddon],
    on_progress: Optional[ProgressCallback] = None,
    *,
    stremio: Optional[StremioClient] = None,
    settings: Optional[Settings] = None,
) -> List[SavedAddon]:
    """
    Return a copy of every saved addon with a fresh health block, in input order.
    """
    async with open_check_run(stremio, settings) as run:
        logger.info("[Health Check] Checking %d saved addon(s)", len(addons))

        async def check_one(index: int, addon: SavedAddon) -> SavedAddon:
            origin = get_origin(addon.installUrl)
            is_online = await run.resolve_health(addon.installUrl, origin)
            return addon.model_copy(update={"health": AddonHealth(isOnline=is_online)})

        results = await run_in_batches(
            addons, run.settings.health_batch_size, check_one, on_progress
        )

    logger.info(
        "[Health Check] Complete: %d online, %d offline",
        sum(1 for a in results if a.health and a.health.isOnline),
        sum(1 for a in results if a.health and not a.health.isOnline),
    )
    return results


async def check_addon_updates(
    addons: Sequence[AddonDescriptor],
    *,
    stremio: Optional[StremioClient] = None,
    settings: Optional[Settings] = None,
) -> List[AddonUpdateInfo]:
    """
    Compare installed versions against the manifests currently served.

    Official addons are skipped (the platform updates them); protected ones
    are checked. Addons whose check fails are left out of the result.
    """
    checkable = [a for a in addons if not a.is_official]

    async with open_check_run(stremio, settings) as run:
        logger.info(
            "[Update Check] Checking %d addon(s) in batches of %d",
            len(checkable),
            run.settings.update_batch_size,
        )

        async def check_one(index: int, addon: AddonDescriptor) -> Optional[AddonUpdateInfo]:
            url = addon.transportUrl
            try:
                latest, is_online = await _with_health(
                    run, url, get_origin(url), run.stremio.fetch_addon_manifest(url)
                )
                return _update_info(
                    addon_id=addon.manifest.id,
                    name=addon.manifest.name,
                    url=url,
                    installed=addon.manifest,
                    latest=latest.manifest,
                    is_online=is_online,
                )
            except Exception as exc:
                logger.warning("[Update Check] Failed to check %s (%s): %s", addon.manifest.name, mask_url(url), exc)
                return None

        checked = await run_in_batches(checkable, run.settings.update_batch_size, check_one)

    results = [r for r in checked if r is not None]
    logger.info("[Update Check] Complete: %d checked", len(results))
    return results


async def check_saved_addon_updates(
    saved_addons: Sequence[SavedAddon],
    *,
    stremio: Optional[StremioClient] = None,
    settings: Optional[Settings] = None,
) -> List[AddonUpdateInfo]:
    """
    Update check for saved addons with origin + manifest-id deduplication.

    Multi-tenant addons are often saved many times under per-user URLs on
    one host; those share a single manifest fetch per run.
    """
    async with open_check_run(stremio, settings) as run:
        logger.info(
            "[Update Check] Checking %d saved addon(s) with origin+id deduplication",
            len(saved_addons),
        )

        async def check_one(index: int, addon: SavedAddon) -> Optional[AddonUpdateInfo]:
            url = addon.installUrl
            try:
                origin = get_origin(url)
                group_key = f"{origin}:{addon.manifest.id}"
                latest, is_online = await _with_health(
                    run, url, origin, run.resolve_manifest(url, group_key)
                )
                return _update_info(
                    addon_id=addon.id,
                    name=addon.name,
                    url=url,
                    installed=addon.manifest,
                    latest=latest.manifest,
                    is_online=is_online,
                )
            except Exception as exc:
                logger.warning("[Update Check] Failed to check %s (%s): %s", addon.name, mask_url(url), exc)
                return None

        checked = await run_in_batches(saved_addons, run.settings.update_batch_size, check_one)

    results = [r for r in checked if r is not None]
    logger.info("[Update Check] Complete: %d checked", len(results))
    return results
