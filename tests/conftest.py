import pytest
from fastapi.testclient import TestClient

from linkmanager.config import Settings, get_settings
from linkmanager.main import app, get_store
from linkmanager.storage import MemoryStore


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def settings(tmp_path):
    s = Settings()
    s.data_dir = tmp_path / "data"
    s.static_dir = tmp_path / "frontend"
    s.secret_key = "test-secret"
    s.cookie_secure = True
    return s


@pytest.fixture
def client(store, settings):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store
    # https so the Secure session cookie is sent back
    with TestClient(app, base_url="https://testserver") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def logged_in(client):
    resp = client.post("/api/login", json={"password": "linkmanager"})
    assert resp.status_code == 200
    return client
