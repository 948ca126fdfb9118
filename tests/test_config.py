from backend.app.config import Settings


def test_defaults():
    settings = Settings()
    assert settings.stremio_api_url == "https://api.strem.io"
    assert settings.update_batch_size == 10
    assert settings.health_batch_size == 5
    assert settings.domain_check_timeout == 15.0
    assert settings.pending_ttl == 2.0


def test_from_env_overrides(monkeypatch):
    monkeypatch.setenv("CURATOR_UPDATE_BATCH_SIZE", "3")
    monkeypatch.setenv("CURATOR_PROXY_TIMEOUT", "2.5")
    monkeypatch.setenv("CURATOR_STREMIO_API_URL", "http://localhost:9000")

    settings = Settings.from_env()

    assert settings.update_batch_size == 3
    assert settings.proxy_timeout == 2.5
    assert settings.stremio_api_url == "http://localhost:9000"
    assert settings.health_batch_size == 5


def test_empty_env_values_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("CURATOR_HEALTH_BATCH_SIZE", "")
    assert Settings.from_env().health_batch_size == 5
