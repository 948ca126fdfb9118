from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from backend.app.config import Settings, get_settings
from ..domain.errors import StremioAPIError
from ..domain.models import AddonDescriptor, AddonManifest
from ..masking import mask_string, mask_url
from .normalize import manifest_url, normalize_addon_url

logger = logging.getLogger("curator.stremio")


class StremioClient:
    """
    Async client for the Stremio addon-collection API and for addon manifests.

    Owns its httpx.AsyncClient unless one is passed in; use it as an async
    context manager so the connection pool is closed.
    """

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            follow_redirects=True,
            timeout=self.settings.api_timeout,
        )

    async def __aenter__(self) -> "StremioClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    # ----------------------------
    # Collection API
    # ----------------------------

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        url = f"{self.settings.stremio_api_url.rstrip('/')}/api/{method}"
        try:
            resp = await self.http.post(url, json=payload, timeout=self.settings.api_timeout)
        except httpx.HTTPError as exc:
            raise StremioAPIError(f"{method} request failed: {exc}") from exc

        if not resp.is_success:
            raise StremioAPIError(f"{method} returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise StremioAPIError(f"{method} returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise StremioAPIError(f"{method} returned an unexpected body")

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else error
            raise StremioAPIError(f"Stremio: {message}")

        return data.get("result")

    async def get_addon_collection(self, auth_key: str) -> List[AddonDescriptor]:
        logger.debug("Fetching addon collection for key %s", mask_string(auth_key))
        result = await self._call(
            "addonCollectionGet",
            {"type": "AddonCollectionGet", "authKey": auth_key, "update": True},
        )
        raw_addons = (result or {}).get("addons") or []
        try:
            addons = [AddonDescriptor.model_validate(a) for a in raw_addons]
        except ValidationError as exc:
            raise StremioAPIError(f"addonCollectionGet returned an invalid addon: {exc}") from exc
        logger.info("Fetched %d addon(s) for key %s", len(addons), mask_string(auth_key))
        return addons

    async def set_addon_collection(self, auth_key: str, addons: List[AddonDescriptor]) -> None:
        logger.info("Saving %d addon(s) for key %s", len(addons), mask_string(auth_key))
        await self._call(
            "addonCollectionSet",
            {
                "type": "AddonCollectionSet",
                "authKey": auth_key,
                "addons": [a.model_dump(mode="json", exclude_none=True) for a in addons],
            },
        )

    # ----------------------------
    # Manifests
    # ----------------------------

    async def fetch_addon_manifest(self, url: str) -> AddonDescriptor:
        """
        GET `<url>/manifest.json` and wrap it in a fresh descriptor.

        Raises httpx.HTTPError on network/status failures and
        ValueError (incl. pydantic.ValidationError) on a bad body.
        """
        target = manifest_url(normalize_addon_url(url))
        logger.debug("Fetching manifest %s", mask_url(target))

        resp = await self.http.get(target, timeout=self.settings.manifest_fetch_timeout)
        resp.raise_for_status()
        manifest = AddonManifest.model_validate(resp.json())

        return AddonDescriptor(transportUrl=target, manifest=manifest)
