"""Shared helpers for the addon tests. No real HTTP traffic: every outbound
request goes through httpx.MockTransport."""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Union

import httpx
import pytest

from backend.app.config import Settings
from backend.app.addons.domain.models import (
    AddonDescriptor,
    AddonFlags,
    AddonManifest,
    AddonMetadata,
    SavedAddon,
)

PROXY_HOST = "api.allorigins.win"


def make_manifest(
    version: str = "1.0.0",
    *,
    addon_id: str = "org.example.addon",
    name: str = "Example Addon",
    **extra,
) -> AddonManifest:
    return AddonManifest(id=addon_id, name=name, version=version, **extra)


def make_descriptor(
    url: str,
    version: str = "1.0.0",
    *,
    addon_id: str = "org.example.addon",
    name: str = "Example Addon",
    flags: Optional[AddonFlags] = None,
    metadata: Optional[AddonMetadata] = None,
) -> AddonDescriptor:
    return AddonDescriptor(
        transportUrl=url,
        manifest=make_manifest(version, addon_id=addon_id, name=name),
        flags=flags,
        metadata=metadata,
    )


def make_saved(
    url: str,
    version: str = "1.0.0",
    *,
    addon_id: str = "org.example.addon",
    name: str = "Example Addon",
    saved_id: Optional[str] = None,
) -> SavedAddon:
    return SavedAddon(
        id=saved_id or url,
        name=name,
        installUrl=url,
        manifest=make_manifest(version, addon_id=addon_id, name=name),
    )


def manifest_response(version: str = "1.0.0", *, addon_id: str = "org.example.addon", **extra) -> httpx.Response:
    return httpx.Response(200, json=make_manifest(version, addon_id=addon_id, **extra).model_dump(mode="json"))


Responder = Callable[[httpx.Request], Union[httpx.Response, Exception]]


class RecordingTransport:
    """
    Async MockTransport handler that records every request.

    `responder` returns the response for a request (or an exception to raise);
    every request is delayed by `delay` seconds so concurrent callers overlap.
    """

    def __init__(self, responder: Responder, delay: float = 0.01):
        self.responder = responder
        self.delay = delay
        self.requests: List[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.responder(request)
        if isinstance(result, Exception):
            raise result
        return result

    def count(
        self,
        method: Optional[str] = None,
        host: Optional[str] = None,
        path: Optional[str] = None,
    ) -> int:
        return sum(
            1
            for r in self.requests
            if (method is None or r.method == method)
            and (host is None or r.url.host == host)
            and (path is None or r.url.path == path)
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self), follow_redirects=True)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_timeout=1.0,
        domain_check_timeout=1.0,
        manifest_check_timeout=1.0,
        proxy_timeout=1.0,
        functionality_timeout=1.0,
        manifest_fetch_timeout=1.0,
        pending_ttl=2.0,
    )


class FakePlatform:
    """In-memory addon platform; manifests are served from `served`."""

    def __init__(self, addons=None, served=None):
        self.collection = list(addons or [])
        self.served = dict(served or {})
        self.saves = []

    async def get_addon_collection(self, auth_key):
        return list(self.collection)

    async def set_addon_collection(self, auth_key, addons):
        self.saves.append(list(addons))
        self.collection = list(addons)

    async def fetch_addon_manifest(self, url):
        served = self.served.get(url)
        if served is None:
            raise httpx.ConnectError("connection refused", request=httpx.Request("GET", url))
        return served
