from __future__ import annotations

from urllib.parse import urlsplit


def mask_string(value: str) -> str:
    """Keep the first and last four characters of a secret."""
    if not value:
        return ""
    if len(value) <= 8:
        return "********"
    return f"{value[:4]}****{value[-4:]}"


def mask_url(url: str) -> str:
    """
    Addon URLs often embed user config (API keys, debrid tokens) in the path,
    so only scheme and host are kept for log output.
    """
    try:
        parts = urlsplit(url)
        host = parts.hostname
    except ValueError:
        return "********"
    if not parts.scheme or not host:
        return "********"
    return f"{parts.scheme}://{host}/********"
