from __future__ import annotations


class AddonCollectionError(RuntimeError):
    pass


class StremioAPIError(AddonCollectionError):
    """The platform rejected or failed a collection call."""


class ProtectedAddonError(AddonCollectionError):
    def __init__(self, name: str, transport_url: str):
        super().__init__(f'Addon "{name}" is protected and cannot be removed.')
        self.name = name
        self.transport_url = transport_url


class AddonUnreachableError(AddonCollectionError):
    def __init__(self, transport_url: str, reason: str):
        super().__init__(
            f"Cannot reach addon at {transport_url}: {reason}. "
            "Aborting reinstall to keep the existing addon."
        )
        self.transport_url = transport_url
        self.reason = reason
