from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from ..domain.errors import AddonUnreachableError, ProtectedAddonError
from ..domain.models import (
    AddonDescriptor,
    AddonFlags,
    AddonMetadata,
    ReinstallResult,
)
from ..masking import mask_url

logger = logging.getLogger("curator.collection")


class AddonPlatform(Protocol):
    async def get_addon_collection(self, auth_key: str) -> List[AddonDescriptor]: ...

    async def set_addon_collection(self, auth_key: str, addons: List[AddonDescriptor]) -> None: ...

    async def fetch_addon_manifest(self, url: str) -> AddonDescriptor: ...


def _apply_customizations(addon: AddonDescriptor) -> AddonDescriptor:
    """
    Push local name/logo/description overrides into the manifest so they
    survive a round trip through the platform.
    """
    meta = addon.metadata
    if meta is None or not meta.has_customizations():
        return addon

    manifest = addon.manifest.model_copy(
        update={
            "name": meta.customName or addon.manifest.name or "",
            "logo": meta.customLogo or addon.manifest.logo or None,
            "description": meta.customDescription or addon.manifest.description or "",
        }
    )
    return addon.model_copy(update={"manifest": manifest})


def _merge_flags(old: Optional[AddonFlags], new: Optional[AddonFlags]) -> Optional[AddonFlags]:
    # only flags the new descriptor explicitly carries override the old ones
    if old is None and new is None:
        return None
    merged = old.model_dump(exclude_unset=True) if old is not None else {}
    if new is not None:
        merged.update(new.model_dump(exclude_unset=True))
    return AddonFlags.model_validate(merged)


class AddonCollectionService:
    """
    Read-modify-write operations on a user's remote addon collection.

    Every mutation fetches the current collection, builds a new list and
    saves the whole list back; nothing is written when a step fails.
    """

    def __init__(self, platform: AddonPlatform):
        self.platform = platform

    async def get_addons(self, auth_key: str) -> List[AddonDescriptor]:
        return await self.platform.get_addon_collection(auth_key)

    async def fetch_addon_manifest(self, url: str) -> AddonDescriptor:
        return await self.platform.fetch_addon_manifest(url)

    async def update_addons(self, auth_key: str, addons: List[AddonDescriptor]) -> List[AddonDescriptor]:
        """
        Save the collection. Disabled addons are dropped and local
        customizations are written into each manifest first.
        """
        prepared = [_apply_customizations(a) for a in (addons or []) if a.is_enabled]
        dropped = len(addons or []) - len(prepared)
        if dropped:
            logger.info("Dropping %d disabled addon(s) before save", dropped)

        await self.platform.set_addon_collection(auth_key, prepared)
        return prepared

    async def install_addon(self, auth_key: str, addon_url: str) -> List[AddonDescriptor]:
        new_addon = await self.platform.fetch_addon_manifest(addon_url)
        current = await self.get_addons(auth_key)

        # match on transportUrl so the same addon can be installed twice with different configs
        updated = list(current)
        for i, addon in enumerate(current):
            if addon.transportUrl == new_addon.transportUrl:
                updated[i] = new_addon
                logger.info("Replacing installed addon '%s' (%s)", new_addon.manifest.id, mask_url(new_addon.transportUrl))
                break
        else:
            updated.append(new_addon)
            logger.info("Installing addon '%s' (%s)", new_addon.manifest.id, mask_url(new_addon.transportUrl))

        await self.update_addons(auth_key, updated)
        return updated

    async def remove_addon(self, auth_key: str, transport_url: str) -> List[AddonDescriptor]:
        current = await self.get_addons(auth_key)

        target = next((a for a in current if a.transportUrl == transport_url), None)
        if target is not None and target.is_protected:
            logger.warning("Refusing to remove protected addon '%s'", target.manifest.name)
            raise ProtectedAddonError(target.manifest.name, transport_url)

        updated = [a for a in current if a.transportUrl != transport_url]
        logger.info("Removing addon %s (%d -> %d)", mask_url(transport_url), len(current), len(updated))

        await self.update_addons(auth_key, updated)
        return updated

    async def reinstall_addon(self, auth_key: str, transport_url: str) -> ReinstallResult:
        """
        Refresh an addon from its URL, keeping its position, flags and metadata.

        Protected addons may be reinstalled; only removal is blocked.
        The new manifest is fetched before the list is touched: if the addon
        can't be reached nothing is saved.
        """
        current = await self.get_addons(auth_key)
        index = next((i for i, a in enumerate(current) if a.transportUrl == transport_url), None)
        if index is None:
            return ReinstallResult(addons=current, updatedAddon=None)

        existing = current[index]
        try:
            fresh = await self.platform.fetch_addon_manifest(existing.transportUrl)
        except Exception as exc:
            logger.error("[Reinstall] Failed to reach addon at %s: %s", mask_url(transport_url), exc)
            raise AddonUnreachableError(transport_url, str(exc) or type(exc).__name__) from exc

        updated = list(current)
        updated[index] = fresh.model_copy(
            update={
                "flags": _merge_flags(existing.flags, fresh.flags),
                "metadata": (
                    existing.metadata.model_copy()
                    if existing.metadata is not None
                    else AddonMetadata()
                ),
            }
        )

        await self.update_addons(auth_key, updated)
        logger.info(
            "[Reinstall] %s: %s -> %s",
            existing.manifest.name,
            existing.manifest.version,
            fresh.manifest.version,
        )
        return ReinstallResult(
            addons=updated,
            updatedAddon=fresh,
            previousVersion=existing.manifest.version,
            newVersion=fresh.manifest.version,
        )
