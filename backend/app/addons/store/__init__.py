from .client import StremioClient
from .normalize import get_origin, manifest_url, normalize_addon_url
