import httpx
import pytest
from fastapi.testclient import TestClient

from backend.app.main import app
from backend.app.addons.api.router import get_collection_service, get_stremio_client
from backend.app.addons.domain.models import AddonFlags
from backend.app.addons.services.collection import AddonCollectionService
from backend.app.addons.store.client import StremioClient
from tests.conftest import PROXY_HOST, FakePlatform, make_descriptor, make_saved, manifest_response

HEADERS = {"X-Auth-Key": "auth-key-0123456789"}
A = "https://a.example/manifest.json"
B = "https://b.example/manifest.json"


@pytest.fixture
def platform():
    return FakePlatform(
        [make_descriptor(A), make_descriptor(B, name="Cinemeta", flags=AddonFlags(protected=True))],
        served={A: make_descriptor(A, "2.0.0")},
    )


@pytest.fixture
def client(platform, settings):
    def responder(request):
        if request.url.host == PROXY_HOST or request.url.host == "down.example":
            return httpx.Response(503)
        if request.method == "GET" and request.url.path.endswith("/manifest.json"):
            return manifest_response("3.0.0")
        return httpx.Response(200)

    async def stremio_override():
        async with httpx.AsyncClient(transport=httpx.MockTransport(responder)) as http:
            yield StremioClient(http=http, settings=settings)

    app.dependency_overrides[get_collection_service] = lambda: AddonCollectionService(platform)
    app.dependency_overrides[get_stremio_client] = stremio_override
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_service_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "Curator"}


def test_get_collection(client):
    resp = client.get("/api/addons/collection", headers=HEADERS)
    assert resp.status_code == 200
    assert [a["transportUrl"] for a in resp.json()] == [A, B]


def test_auth_key_header_is_required(client):
    assert client.get("/api/addons/collection").status_code == 422


def test_remove_protected_addon_is_forbidden(client, platform):
    resp = client.post("/api/addons/collection/remove", json={"transportUrl": B}, headers=HEADERS)
    assert resp.status_code == 403
    assert "protected" in resp.json()["detail"]
    assert platform.saves == []


def test_remove_addon(client):
    resp = client.post("/api/addons/collection/remove", json={"transportUrl": A}, headers=HEADERS)
    assert resp.status_code == 200
    assert [a["transportUrl"] for a in resp.json()] == [B]


def test_reinstall_addon(client):
    resp = client.post("/api/addons/collection/reinstall", json={"transportUrl": A}, headers=HEADERS)
    assert resp.status_code == 200
    body = resp.json()
    assert body["previousVersion"] == "1.0.0"
    assert body["newVersion"] == "2.0.0"


def test_reinstall_unreachable_addon_is_bad_gateway(client, platform):
    resp = client.post("/api/addons/collection/reinstall", json={"transportUrl": B}, headers=HEADERS)
    assert resp.status_code == 502
    assert B in resp.json()["detail"]
    assert platform.saves == []


def test_install_unreachable_addon_is_bad_gateway(client):
    resp = client.post(
        "/api/addons/collection/install", json={"url": "https://nowhere.example"}, headers=HEADERS
    )
    assert resp.status_code == 502


def test_save_collection_drops_disabled(client, platform):
    addons = [
        make_descriptor(A).model_dump(mode="json", exclude_none=True),
        make_descriptor(B, flags=AddonFlags(enabled=False)).model_dump(mode="json", exclude_none=True),
    ]
    resp = client.put("/api/addons/collection", json=addons, headers=HEADERS)
    assert resp.status_code == 200
    assert [a["transportUrl"] for a in resp.json()] == [A]
    assert [a.transportUrl for a in platform.collection] == [A]


def test_single_addon_health(client):
    resp = client.get("/api/addons/health", params={"url": "https://up.example/cfg/manifest.json"})
    assert resp.json() == {"url": "https://up.example/cfg/manifest.json", "isOnline": True}

    resp = client.get("/api/addons/health", params={"url": "https://down.example/manifest.json"})
    assert resp.json()["isOnline"] is False


def test_bulk_health_check_returns_summary(client):
    saved = [
        make_saved("https://up.example/u1/manifest.json").model_dump(mode="json"),
        make_saved("https://down.example/u2/manifest.json").model_dump(mode="json"),
    ]
    resp = client.post("/api/addons/health/check", json=saved)
    assert resp.status_code == 200
    body = resp.json()
    assert [a["health"]["isOnline"] for a in body["addons"]] == [True, False]
    assert body["summary"] == {"online": 1, "offline": 1, "unchecked": 0}


def test_health_summary(client):
    resp = client.post("/api/addons/health/summary", json=[make_saved(A).model_dump(mode="json")])
    assert resp.json() == {"online": 0, "offline": 0, "unchecked": 1}


def test_update_check(client):
    installed = [make_descriptor("https://up.example/manifest.json").model_dump(mode="json", exclude_none=True)]
    resp = client.post("/api/addons/updates/check", json=installed)
    assert resp.status_code == 200
    [info] = resp.json()
    assert info["latestVersion"] == "3.0.0"
    assert info["hasUpdate"] is True
    assert info["isOnline"] is True


def test_saved_update_check(client):
    saved = [
        make_saved("https://up.example/u1/manifest.json", saved_id="one").model_dump(mode="json"),
        make_saved("https://up.example/u2/manifest.json", "3.0.0", saved_id="two").model_dump(mode="json"),
    ]
    resp = client.post("/api/addons/updates/check-saved", json=saved)
    assert [(i["addonId"], i["hasUpdate"]) for i in resp.json()] == [("one", True), ("two", False)]


def test_fetch_manifest(client, platform):
    resp = client.get("/api/addons/manifest", params={"url": A})
    assert resp.status_code == 200
    assert resp.json()["manifest"]["version"] == "2.0.0"
