from __future__ import annotations
import logging
import re
from urllib.parse import urlsplit

logger = logging.getLogger("curator.store.normalize")

MANIFEST_SUFFIX = "/manifest.json"

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_addon_url(url: str) -> str:
    """
    Normalize an addon URL for fetching and comparison.

    - stremio:// becomes https://
    - a trailing /manifest.json and trailing slashes are dropped

    Case is left alone: many addons carry base64 config tokens in the path.
    """
    if not url:
        return ""
    normalized = url.strip()
    normalized = re.sub(r"^stremio://", "https://", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"/manifest\.json$", "", normalized, flags=re.IGNORECASE)
    normalized = re.sub(r"/+$", "", normalized)
    return normalized


def manifest_url(url: str) -> str:
    if url.endswith(MANIFEST_SUFFIX):
        return url
    return f"{url.rstrip('/')}{MANIFEST_SUFFIX}"


def addon_base_url(url: str) -> str:
    return url.replace(MANIFEST_SUFFIX, "")


def get_origin(url: str) -> str:
    """
    scheme://host[:port] of `url`, default ports omitted.

    Anything unparseable comes back unchanged so it still works as a key.
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
        port = parts.port
    except ValueError:
        logger.debug("Unparseable addon URL, using it as its own origin")
        return url

    if not parts.scheme or not host:
        return url

    scheme = parts.scheme.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}:{port}"
    return f"{scheme}://{host}"
