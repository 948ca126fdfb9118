#backend/app/addons/domain/models.py
from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    return int(time.time() * 1000)


# -----------------------------
# Manifest (served by the addon itself)
# -----------------------------

class ManifestCatalog(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    id: str
    name: Optional[str] = None


class AddonManifest(BaseModel):
    """
    Manifest served at `<addon-url>/manifest.json`.

    Only the fields the service reads are declared; everything else the
    addon sends is kept as-is so a round trip to the platform is lossless.

    Example:

    {
      "id": "org.example.streams",
      "name": "Example Streams",
      "version": "1.2.0",
      "resources": ["stream", {"name": "meta", "types": ["movie"]}],
      "types": ["movie", "series"],
      "catalogs": [{"type": "movie", "id": "top"}]
    }
    """
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    version: str

    description: Optional[str] = None
    logo: Optional[str] = None
    background: Optional[str] = None

    types: List[str] = Field(default_factory=list)
    # Plain names ("stream") or objects ({"name": "stream", ...})
    resources: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)
    catalogs: List[ManifestCatalog] = Field(default_factory=list)
    idPrefixes: Optional[List[str]] = None
    behaviorHints: Optional[Dict[str, Any]] = None

    def declares_resource(self, name: str) -> bool:
        for r in self.resources:
            if r == name:
                return True
            if isinstance(r, dict) and r.get("name") == name:
                return True
        return False


# -----------------------------
# Local addon state
# -----------------------------

class AddonFlags(BaseModel):
    """
    - enabled: disabled addons are dropped on the next save.
    - protected: cannot be removed (update / reinstall still allowed).
    - official: lifecycle owned by the platform, never update-checked.
    """
    model_config = ConfigDict(extra="allow")

    enabled: bool = True
    protected: bool = False
    official: bool = False


class AddonMetadata(BaseModel):
    """User customizations pushed into the manifest on save."""
    model_config = ConfigDict(extra="allow")

    customName: Optional[str] = None
    customLogo: Optional[str] = None
    customDescription: Optional[str] = None

    def has_customizations(self) -> bool:
        return bool(self.customName or self.customLogo or self.customDescription)


class AddonHealth(BaseModel):
    isOnline: bool
    lastChecked: int = Field(default_factory=now_ms)  # epoch ms


class AddonDescriptor(BaseModel):
    """
    One entry of the user's addon collection on the platform.
    """
    model_config = ConfigDict(extra="allow")

    transportUrl: str
    transportName: Optional[str] = None
    manifest: AddonManifest

    flags: Optional[AddonFlags] = None
    metadata: Optional[AddonMetadata] = None
    health: Optional[AddonHealth] = None

    @property
    def is_enabled(self) -> bool:
        return self.flags is None or self.flags.enabled is not False

    @property
    def is_protected(self) -> bool:
        return bool(self.flags and self.flags.protected)

    @property
    def is_official(self) -> bool:
        return bool(self.flags and self.flags.official)


class SavedAddon(BaseModel):
    """
    An addon the user bookmarked locally, identified by its install URL.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    installUrl: str
    manifest: AddonManifest

    metadata: Optional[AddonMetadata] = None
    health: Optional[AddonHealth] = None


# -----------------------------
# Results
# -----------------------------

class AddonUpdateInfo(BaseModel):
    addonId: str
    name: str
    transportUrl: str
    installedVersion: str
    latestVersion: str
    hasUpdate: bool
    isOnline: bool


class ReinstallResult(BaseModel):
    addons: List[AddonDescriptor] = Field(default_factory=list)
    updatedAddon: Optional[AddonDescriptor] = None
    previousVersion: Optional[str] = None
    newVersion: Optional[str] = None


class HealthSummary(BaseModel):
    online: int = 0
    offline: int = 0
    unchecked: int = 0


class FunctionalityCheck(BaseModel):
    """
    Outcome of a deep check: manifest plus one real catalog/stream request.
    """
    isHealthy: bool
    message: Optional[str] = None
    latency: Optional[int] = None  # ms


# -----------------------------
# API DTOs
# -----------------------------

class InstallAddonRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str


class TransportUrlRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    transportUrl: str


class AddonUrlRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str


class AddonOnlineStatus(BaseModel):
    url: str
    isOnline: bool


class HealthCheckResponse(BaseModel):
    addons: List[SavedAddon] = Field(default_factory=list)
    summary: HealthSummary = Field(default_factory=HealthSummary)
