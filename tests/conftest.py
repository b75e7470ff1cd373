import httpx
import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from backend import app as app_module
from backend.store import InMemoryJobStore
from backend.utils import read_payload
from config.settings import settings


@pytest.fixture(autouse=True)
def fast_generation(monkeypatch):
    monkeypatch.setattr(settings, "IMAGE_DELAY", 0)
    monkeypatch.setattr(settings, "CAPTION_DELAY", 0)


@pytest.fixture(autouse=True)
def clean_forward_settings(monkeypatch):
    for name in ("N8N_FORM_URL", "N8N_PROXY_URL", "N8N_FORM_SECRET", "N8N_WEBHOOK_URL", "N8N_WEBHOOK_PATH"):
        monkeypatch.setattr(settings, name, None)
    monkeypatch.setattr(settings, "N8N_FORM_ENCODING", "json")
    monkeypatch.setattr(settings, "N8N_FORWARD_MODE", "direct-first")


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def client(store):
    app_module.app.dependency_overrides[app_module.get_job_store] = lambda: store
    yield TestClient(app_module.app)
    app_module.app.dependency_overrides.clear()


@pytest.fixture
def upstream(client):
    """
    Thay httpx client của /api/forward-form bằng MockTransport.
    Gán handler: upstream.handler = lambda request: httpx.Response(...)
    """

    class Upstream:
        handler = staticmethod(lambda request: httpx.Response(200, json={"ok": True}))
        requests = []

    def dispatch(request: httpx.Request) -> httpx.Response:
        Upstream.requests.append(request)
        return Upstream.handler(request)

    async def override():
        async with httpx.AsyncClient(transport=httpx.MockTransport(dispatch)) as c:
            yield c

    Upstream.requests = []
    app_module.app.dependency_overrides[app_module.get_http_client] = override
    return Upstream


@pytest.fixture
def read_encoded():
    """
    Đọc (headers, body) đã encode qua read_payload, giống hệt cách server đọc request.
    """

    async def _read(headers, body: bytes):
        async def receive():
            return {"type": "http.request", "body": body, "more_body": False}

        scope = {
            "type": "http",
            "method": "POST",
            "path": "/",
            "query_string": b"",
            "headers": [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in headers.items()],
        }
        return await read_payload(Request(scope, receive))

    return _read
