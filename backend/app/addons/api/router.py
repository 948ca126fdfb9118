# backend/app/addons/api/router.py
from __future__ import annotations

import logging
from typing import AsyncIterator, List

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..domain.errors import (
    AddonCollectionError,
    AddonUnreachableError,
    ProtectedAddonError,
    StremioAPIError,
)
from ..domain.models import (
    AddonDescriptor,
    AddonOnlineStatus,
    AddonUpdateInfo,
    AddonUrlRequest,
    FunctionalityCheck,
    HealthCheckResponse,
    HealthSummary,
    InstallAddonRequest,
    ReinstallResult,
    SavedAddon,
    TransportUrlRequest,
)
from ..health import check_addon_functionality, check_addon_health, get_health_summary
from ..masking import mask_url
from ..services.collection import AddonCollectionService
from ..services.updates import (
    check_addon_updates,
    check_all_addons_health,
    check_saved_addon_updates,
)
from ..store.client import StremioClient

router = APIRouter(prefix="/api/addons", tags=["addons"])
logger = logging.getLogger("curator.api")


# ----------------------------
# Dependencies
# ----------------------------

async def get_stremio_client() -> AsyncIterator[StremioClient]:
    async with StremioClient() as client:
        yield client


def get_collection_service(
    client: StremioClient = Depends(get_stremio_client),
) -> AddonCollectionService:
    return AddonCollectionService(client)


def _http_error(exc: AddonCollectionError) -> HTTPException:
    if isinstance(exc, ProtectedAddonError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (AddonUnreachableError, StremioAPIError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


# ----------------------------
# Collection
# ----------------------------

@router.get("/collection", response_model=List[AddonDescriptor], response_model_exclude_none=True)
async def api_get_collection(
    auth_key: str = Header(..., alias="X-Auth-Key"),
    svc: AddonCollectionService = Depends(get_collection_service),
) -> List[AddonDescriptor]:
    try:
        return await svc.get_addons(auth_key)
    except AddonCollectionError as e:
        raise _http_error(e)


@router.put("/collection", response_model=List[AddonDescriptor], response_model_exclude_none=True)
async def api_save_collection(
    addons: List[AddonDescriptor],
    auth_key: str = Header(..., alias="X-Auth-Key"),
    svc: AddonCollectionService = Depends(get_collection_service),
) -> List[AddonDescriptor]:
    """
    Save the whole collection. Disabled addons are dropped, custom
    names/logos/descriptions are written into the manifests.
    """
    try:
        return await svc.update_addons(auth_key, addons)
    except AddonCollectionError as e:
        raise _http_error(e)


@router.post("/collection/install", response_model=List[AddonDescriptor], response_model_exclude_none=True)
async def api_install_addon(
    req: InstallAddonRequest,
    auth_key: str = Header(..., alias="X-Auth-Key"),
    svc: AddonCollectionService = Depends(get_collection_service),
) -> List[AddonDescriptor]:
    logger.info("POST /collection/install for %s", mask_url(req.url))
    try:
        return await svc.install_addon(auth_key, req.url)
    except AddonCollectionError as e:
        raise _http_error(e)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Install failed for %s: %s", mask_url(req.url), e)
        raise HTTPException(status_code=502, detail=f"Failed to fetch addon manifest: {e}")


@router.post("/collection/remove", response_model=List[AddonDescriptor], response_model_exclude_none=True)
async def api_remove_addon(
    req: TransportUrlRequest,
    auth_key: str = Header(..., alias="X-Auth-Key"),
    svc: AddonCollectionService = Depends(get_collection_service),
) -> List[AddonDescriptor]:
    try:
        return await svc.remove_addon(auth_key, req.transportUrl)
    except AddonCollectionError as e:
        raise _http_error(e)


@router.post("/collection/reinstall", response_model=ReinstallResult, response_model_exclude_none=True)
async def api_reinstall_addon(
    req: TransportUrlRequest,
    auth_key: str = Header(..., alias="X-Auth-Key"),
    svc: AddonCollectionService = Depends(get_collection_service),
) -> ReinstallResult:
    try:
        return await svc.reinstall_addon(auth_key, req.transportUrl)
    except AddonCollectionError as e:
        raise _http_error(e)


@router.get("/manifest", response_model=AddonDescriptor, response_model_exclude_none=True)
async def api_fetch_manifest(
    url: str = Query(..., description="Addon base URL or manifest URL"),
    svc: AddonCollectionService = Depends(get_collection_service),
) -> AddonDescriptor:
    try:
        return await svc.fetch_addon_manifest(url)
    except (httpx.HTTPError, ValueError) as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch addon manifest: {e}")


# ----------------------------
# Health
# ----------------------------

@router.get("/health", response_model=AddonOnlineStatus)
async def api_addon_health(
    url: str = Query(..., description="Addon install URL"),
    client: StremioClient = Depends(get_stremio_client),
) -> AddonOnlineStatus:
    is_online = await check_addon_health(url, client=client.http, settings=client.settings)
    return AddonOnlineStatus(url=url, isOnline=is_online)


@router.post("/health/check", response_model=HealthCheckResponse, response_model_exclude_none=True)
async def api_check_all_health(
    addons: List[SavedAddon],
    client: StremioClient = Depends(get_stremio_client),
) -> HealthCheckResponse:
    def on_progress(completed: int, total: int) -> None:
        logger.debug("Health check progress: %d/%d", completed, total)

    checked = await check_all_addons_health(addons, on_progress, stremio=client)
    return HealthCheckResponse(addons=checked, summary=get_health_summary(checked))


@router.post("/health/summary", response_model=HealthSummary)
def api_health_summary(addons: List[SavedAddon]) -> HealthSummary:
    return get_health_summary(addons)


@router.post("/health/functional", response_model=FunctionalityCheck, response_model_exclude_none=True)
async def api_check_functionality(
    req: AddonUrlRequest,
    client: StremioClient = Depends(get_stremio_client),
) -> FunctionalityCheck:
    return await check_addon_functionality(req.url, client=client.http, settings=client.settings)


# ----------------------------
# Updates
# ----------------------------

@router.post("/updates/check", response_model=List[AddonUpdateInfo])
async def api_check_updates(
    addons: List[AddonDescriptor],
    client: StremioClient = Depends(get_stremio_client),
) -> List[AddonUpdateInfo]:
    return await check_addon_updates(addons, stremio=client)


@router.post("/updates/check-saved", response_model=List[AddonUpdateInfo])
async def api_check_saved_updates(
    addons: List[SavedAddon],
    client: StremioClient = Depends(get_stremio_client),
) -> List[AddonUpdateInfo]:
    return await check_saved_addon_updates(addons, stremio=client)
