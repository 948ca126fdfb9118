# backend/app/addons/health.py
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional
from urllib.parse import quote

import httpx

from backend.app.config import Settings, get_settings
from .domain.models import (
    AddonHealth,
    AddonManifest,
    FunctionalityCheck,
    HealthSummary,
    SavedAddon,
)
from .masking import mask_url
from .store.normalize import addon_base_url, get_origin, manifest_url

logger = logging.getLogger("curator.health")

NO_CACHE = {"Cache-Control": "no-cache"}

# tt0054215 (Psycho, 1960): an id every public stream addon resolves
PROBE_STREAM_PATH = "/stream/movie/tt0054215.json"


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 15.0,
) -> AsyncIterator[httpx.AsyncClient]:
    """Use `client` if given, otherwise open a short-lived one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(follow_redirects=True, timeout=timeout) as own:
        yield own


def proxy_url(target: str, settings: Settings) -> str:
    return settings.proxy_url_template.format(url=quote(target, safe=""))


async def _head_then_get(client: httpx.AsyncClient, target: str, timeout: float) -> bool:
    # HEAD first; 405 still proves a live server
    resp = await client.head(target, headers=NO_CACHE, timeout=timeout)
    if resp.is_success or resp.status_code == 405:
        return True

    resp = await client.get(target, headers=NO_CACHE, timeout=timeout)
    return resp.is_success


async def _perform_check(client: httpx.AsyncClient, target: str, timeout: float) -> bool:
    try:
        return await asyncio.wait_for(_head_then_get(client, target, timeout), timeout=timeout)
    except asyncio.TimeoutError:
        logger.debug("Check timed out after %ss: %s", timeout, mask_url(target))
        return False
    except Exception as exc:
        logger.debug("Check failed for %s: %s", mask_url(target), exc)
        return False


async def _proxy_check(client: httpx.AsyncClient, target: str, settings: Settings) -> bool:
    try:
        resp = await client.get(
            proxy_url(target, settings),
            headers=NO_CACHE,
            timeout=settings.proxy_timeout,
        )
        return resp.is_success
    except Exception as exc:
        logger.debug("Proxy check failed for %s: %s", mask_url(target), exc)
        return False


async def check_addon_health(
    addon_url: str,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> bool:
    """
    Check whether an addon is reachable.

    Tiers, each tried only if the previous one failed:
    1. origin only (HEAD, then GET)
    2. manifest URL (HEAD, then GET)
    3. origin through the public pass-through proxy

    Never raises; every failure resolves to False.
    """
    settings = settings or get_settings()
    origin = get_origin(addon_url)

    async with http_session(client, settings.domain_check_timeout) as http:
        # 1. Domain-only check keeps load on the addon server minimal
        if await _perform_check(http, origin, settings.domain_check_timeout):
            return True

        # 2. Manifest check, for servers whose root is blocked
        if await _perform_check(http, manifest_url(addon_url), settings.manifest_check_timeout):
            return True

        # 3. Proxy, for deployments behind aggressive firewalls
        online = await _proxy_check(http, origin, settings)

    if not online:
        logger.info("Addon offline: %s", mask_url(addon_url))
    return online


async def update_addon_health(
    addon: SavedAddon,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> SavedAddon:
    is_online = await check_addon_health(addon.installUrl, client=client, settings=settings)
    return addon.model_copy(update={"health": AddonHealth(isOnline=is_online)})


def get_health_summary(addons: Iterable[SavedAddon]) -> HealthSummary:
    summary = HealthSummary()
    for addon in addons:
        if addon.health is None:
            summary.unchecked += 1
        elif addon.health.isOnline:
            summary.online += 1
        else:
            summary.offline += 1
    return summary


# ----------------------------
# Deep (functional) check
# ----------------------------

async def _get_json(
    client: httpx.AsyncClient,
    url: str,
    settings: Settings,
) -> Optional[object]:
    """
    GET `url` as JSON; on a network error retry once through the proxy.
    Returns None for non-2xx answers.
    """
    try:
        resp = await client.get(url, timeout=settings.functionality_timeout)
    except httpx.TransportError as exc:
        logger.debug("Direct fetch failed for %s (%s), trying proxy", mask_url(url), exc)
        resp = await client.get(proxy_url(url, settings), timeout=settings.functionality_timeout)

    if not resp.is_success:
        return None
    return resp.json()


def _verification_url(addon_url: str, manifest: AddonManifest) -> Optional[str]:
    base = addon_base_url(addon_url)
    # Priority: catalog (needs no id) -> stream (known id)
    if manifest.catalogs:
        cat = manifest.catalogs[0]
        return f"{base}/catalog/{cat.type}/{cat.id}.json"
    if manifest.declares_resource("stream"):
        return f"{base}{PROBE_STREAM_PATH}"
    return None


async def check_addon_functionality(
    addon_url: str,
    client: Optional[httpx.AsyncClient] = None,
    settings: Optional[Settings] = None,
) -> FunctionalityCheck:
    """
    Check that the addon actually answers with data:

    1. fetch the manifest
    2. fetch its first catalog, or a stream for a well-known title
    3. healthy only if the response carries `metas` or `streams`
    """
    settings = settings or get_settings()
    start = time.monotonic()

    try:
        async with http_session(client, settings.functionality_timeout) as http:
            raw = await _get_json(http, manifest_url(addon_url), settings)
            if not isinstance(raw, dict):
                return FunctionalityCheck(isHealthy=False, message="Manifest unreachable")

            manifest = AddonManifest.model_validate(raw)
            verify_url = _verification_url(addon_url, manifest)
            if verify_url is None:
                return FunctionalityCheck(
                    isHealthy=True,
                    message="Manifest OK (No verifiable resources found)",
                    latency=int((time.monotonic() - start) * 1000),
                )

            data = await _get_json(http, verify_url, settings)

        # An empty list still proves the addon answered with real data
        if isinstance(data, dict) and (data.get("metas") is not None or data.get("streams") is not None):
            return FunctionalityCheck(
                isHealthy=True,
                message="Functional (Returned Data)",
                latency=int((time.monotonic() - start) * 1000),
            )
        return FunctionalityCheck(isHealthy=False, message="Manifest OK but Resource Fetch Failed")

    except Exception as exc:
        logger.warning("Functional check failed for %s: %s", mask_url(addon_url), exc)
        return FunctionalityCheck(isHealthy=False, message=str(exc) or type(exc).__name__)
