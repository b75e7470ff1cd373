import httpx
from fastapi.testclient import TestClient

from backend import app as app_module
from backend.encoding import encode_payload
from backend.fields import normalize_fields
from config.settings import settings

FORM_ID = "1bc429ed-c5a2-4783-9dd8-40eaac8a59f1"

VALID_FORM = {
    "accountName": "nia_dhanii",
    "category": "Lifestyle",
    "prompt": "A beautiful sunset over mountains",
}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "OK"
    assert data["timestamp"]


class TestFormSubmission:
    def test_valid_submission(self, client):
        resp = client.post(f"/form-test/{FORM_ID}", json=VALID_FORM)
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert len(data["jobId"]) == 36
        assert data["formId"] == FORM_ID
        assert data["data"]["accountName"] == "nia_dhanii"
        assert data["data"]["category"] == "Lifestyle"
        assert data["data"]["prompt"] == "A beautiful sunset over mountains"
        assert data["data"]["metadata"]["jobId"] == data["jobId"]

    def test_default_type_is_image(self, client):
        data = client.post(f"/form-test/{FORM_ID}", json=VALID_FORM).json()
        assert data["data"]["type"] == "image"
        assert "image" in data["data"]["result"]
        assert "caption" not in data["data"]["result"]

    def test_label_aliases_accepted_as_urlencoded_form(self, client):
        resp = client.post(
            f"/form-test/{FORM_ID}",
            data={"Account Name": "tikaamelia30", "Category": "Health", "text": "morning run"},
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["accountName"] == "tikaamelia30"

    def test_multipart_form_accepted(self, client):
        # files= ép TestClient gửi multipart/form-data thật
        resp = client.post(
            f"/form-test/{FORM_ID}",
            data={"account_name": "mama_yuni_53", "Category": "Mental Health", "Prompt": "Calm lake ünïcode"},
            files={"attachment": ("note.txt", b"ignored", "text/plain")},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["accountName"] == "mama_yuni_53"
        assert data["category"] == "Mental Health"
        assert data["prompt"] == "Calm lake ünïcode"

    def test_relay_multipart_body_accepted(self, client):
        headers, body = encode_payload(normalize_fields(VALID_FORM), "multipart")
        resp = client.post(f"/form-test/{FORM_ID}", content=body, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["data"]["accountName"] == "nia_dhanii"

    def test_broken_multipart_is_400(self, client):
        resp = client.post(
            f"/form-test/{FORM_ID}",
            content=b"no boundary here",
            headers={"Content-Type": "multipart/form-data"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request body"

    def test_non_object_json_is_400(self, client):
        resp = client.post(f"/form-test/{FORM_ID}", json=["nia_dhanii"])
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    def test_unknown_account(self, client):
        resp = client.post(f"/form-test/{FORM_ID}", json={**VALID_FORM, "accountName": "unknown_user"})
        assert resp.status_code == 400
        data = resp.json()
        assert data["success"] is False
        assert data["error"] == "Invalid Account Name"
        assert data["code"] == "VALIDATION_ERROR"
        assert data["validOptions"] == app_module.VALID_ACCOUNT_NAMES
        assert len(data["validOptions"]) == 6

    def test_missing_account(self, client):
        resp = client.post(f"/form-test/{FORM_ID}", json={"category": "Lifestyle", "prompt": "x"})
        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] == "Account Name is required"
        assert data["received"] == {"category": "Lifestyle", "prompt": "x"}

    def test_invalid_category(self, client):
        resp = client.post(f"/form-test/{FORM_ID}", json={**VALID_FORM, "category": "Sports"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid Category"
        assert "Mental Health" in resp.json()["validOptions"]

    def test_missing_prompt(self, client):
        resp = client.post(f"/form-test/{FORM_ID}", json={"accountName": "nia_dhanii", "category": "Lifestyle"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Prompt is required"

    def test_invalid_type(self, client):
        resp = client.post(f"/form-test/{FORM_ID}", json={**VALID_FORM, "type": "video"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid type"

    def test_short_form_id(self, client):
        resp = client.post("/form-test/abc", json=VALID_FORM)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid form ID"

    def test_malformed_json(self, client):
        resp = client.post(
            f"/form-test/{FORM_ID}",
            content=b"{broken",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request body"

    def test_validation_errors_do_not_create_jobs(self, client, store):
        client.post(f"/form-test/{FORM_ID}", json={**VALID_FORM, "accountName": "unknown_user"})
        assert store.list() == []


def test_form_schema(client):
    data = client.get(f"/form-test/{FORM_ID}").json()
    assert data["formId"] == FORM_ID
    assert data["formFields"]["accountName"]["options"] == app_module.VALID_ACCOUNT_NAMES
    assert data["instructions"]["defaultType"] == "image"


class TestContent:
    def test_content_after_generation(self, client):
        job_id = client.post(f"/form-test/{FORM_ID}", json={**VALID_FORM, "type": "both"}).json()["jobId"]

        resp = client.get(f"/api/content/{job_id}")
        assert resp.status_code == 200
        record = resp.json()
        assert record["jobId"] == job_id
        assert record["status"] == "completed"
        assert record["source"] == "n8n-form"
        image = record["result"]["image"]
        assert (image["width"], image["height"], image["format"]) == (512, 512, "png")
        assert "caption" in record["result"]

    def test_missing_content(self, client):
        resp = client.get("/api/content/does-not-exist")
        assert resp.status_code == 404
        assert resp.json()["error"] == "Content not found"
        assert resp.json()["jobId"] == "does-not-exist"

    def test_list_content(self, client):
        first = client.post(f"/form-test/{FORM_ID}", json=VALID_FORM).json()["jobId"]
        second = client.post("/api/n8n/webhook", json={"prompt": "cats"}).json()["jobId"]

        data = client.get("/api/content").json()
        assert data["total"] == 2
        assert [r["jobId"] for r in data["content"]] == [first, second]


class TestLegacyWebhook:
    def test_defaults(self, client):
        resp = client.post("/api/n8n/webhook", json={"prompt": "cats"})
        assert resp.status_code == 200
        data = resp.json()
        record = data["data"]
        assert record["type"] == "both"
        assert record["userId"] == "anonymous"
        assert record["sessionId"] == data["jobId"]
        assert record["source"] == "legacy-webhook"
        assert set(record["result"]) == {"image", "caption"}

    def test_caption_only(self, client):
        data = client.post("/api/n8n/webhook", json={"prompt": "cats", "type": "caption", "userId": "u1"}).json()
        assert set(data["data"]["result"]) == {"caption"}
        assert data["data"]["userId"] == "u1"

    def test_missing_prompt(self, client):
        resp = client.post("/api/n8n/webhook", json={"type": "image"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Prompt is required"
        assert resp.json()["received"] == {"type": "image"}


class TestForwardForm:
    def test_not_configured(self, client, upstream):
        resp = client.post("/api/forward-form", json=VALID_FORM)
        assert resp.status_code == 500
        assert resp.json()["ok"] is False
        assert resp.json()["code"] == "CONFIGURATION_ERROR"
        assert upstream.requests == []

    def test_success(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "N8N_FORM_URL", "https://n8n.example.com/form-test/abc")
        upstream.handler = lambda request: httpx.Response(200, json={"formSubmittedText": "Thanks"})

        resp = client.post("/api/forward-form", json=VALID_FORM)
        assert resp.status_code == 200
        assert resp.json() == {
            "ok": True,
            "status": 200,
            "body": {"formSubmittedText": "Thanks"},
            "target": "n8n-form",
        }

    def test_encoding_query_param(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "N8N_FORM_URL", "https://n8n.example.com/form-test/abc")

        resp = client.post("/api/forward-form?encoding=multipart", json=VALID_FORM)
        assert resp.status_code == 200
        assert upstream.requests[0].headers["content-type"].startswith("multipart/form-data")

    def test_invalid_encoding(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "N8N_FORM_URL", "https://n8n.example.com/form-test/abc")
        resp = client.post("/api/forward-form?encoding=xml", json=VALID_FORM)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_encoding"
        assert upstream.requests == []

    def test_upstream_error_passthrough(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "N8N_FORM_URL", "https://n8n.example.com/form-test/abc")
        upstream.handler = lambda request: httpx.Response(422, json={"message": "Field 'Prompt' missing"})

        resp = client.post("/api/forward-form", json=VALID_FORM)
        assert resp.status_code == 502
        data = resp.json()
        assert data["ok"] is False
        assert data["error"] == "upstream_error"
        assert data["status"] == 422
        assert data["body"] == {"message": "Field 'Prompt' missing"}

    def test_proxy_failed(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "N8N_FORM_URL", "https://n8n.example.com/form-test/abc")
        monkeypatch.setattr(settings, "N8N_PROXY_URL", "http://localhost:5678/form-test/abc")

        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        upstream.handler = handler

        resp = client.post("/api/forward-form", json=VALID_FORM)
        assert resp.status_code == 502
        data = resp.json()
        assert data["error"] == "proxy_failed"
        assert data["code"] == "NO_RESPONSE"
        assert data["target"] == "n8n-proxy"
        assert len(upstream.requests) == 2

    def test_secret_header_forwarded(self, client, upstream, monkeypatch):
        monkeypatch.setattr(settings, "N8N_FORM_URL", "https://n8n.example.com/form-test/abc")
        monkeypatch.setattr(settings, "N8N_FORM_SECRET", "s3cret")

        client.post("/api/forward-form", json=VALID_FORM)
        assert upstream.requests[0].headers["x-form-secret"] == "s3cret"


class FakeN8NClient:
    def __init__(self, response):
        self.response = response
        self.calls = []

    async def trigger_webhook(self, path, payload=None, method="POST"):
        self.calls.append((path, payload))
        return self.response

    async def get_workflow(self, workflow_id):
        self.calls.append(("get", workflow_id))
        return self.response

    async def run_workflow(self, workflow_id, payload=None):
        self.calls.append(("run", workflow_id, payload))
        return self.response


def _use_n8n_client(fake):
    app_module.app.dependency_overrides[app_module.get_n8n_client] = lambda: fake


class TestTriggerN8n:
    def test_not_configured(self, client):
        _use_n8n_client(FakeN8NClient({"success": True, "status": 200, "data": {}}))
        resp = client.post("/api/trigger-n8n", json={"a": 1})
        assert resp.status_code == 500
        assert resp.json()["code"] == "CONFIGURATION_ERROR"

    def test_success(self, client, monkeypatch):
        monkeypatch.setattr(settings, "N8N_WEBHOOK_URL", "https://n8n.example.com/webhook/generate")
        fake = FakeN8NClient({"success": True, "status": 200, "data": {"queued": True}})
        _use_n8n_client(fake)

        resp = client.post("/api/trigger-n8n", json={"prompt": "cats"})
        assert resp.status_code == 200
        assert resp.json() == {"ok": True, "n8nStatus": 200, "n8nBody": {"queued": True}}
        assert fake.calls == [("https://n8n.example.com/webhook/generate", {"prompt": "cats"})]

    def test_base_and_path(self, client, monkeypatch):
        monkeypatch.setattr(settings, "N8N_BASE_URL", "http://localhost:5678/")
        monkeypatch.setattr(settings, "N8N_WEBHOOK_PATH", "/webhook/generate")
        fake = FakeN8NClient({"success": True, "status": 200, "data": "ok"})
        _use_n8n_client(fake)

        client.post("/api/trigger-n8n", json={})
        assert fake.calls[0][0] == "http://localhost:5678/webhook/generate"

    def test_upstream_http_error(self, client, monkeypatch):
        monkeypatch.setattr(settings, "N8N_WEBHOOK_URL", "https://n8n.example.com/webhook/generate")
        _use_n8n_client(FakeN8NClient({"success": False, "error": "HTTP_ERROR", "status": 404, "data": "not registered"}))

        resp = client.post("/api/trigger-n8n", json={})
        assert resp.json() == {"ok": False, "n8nStatus": 404, "n8nBody": "not registered"}

    def test_no_response(self, client, monkeypatch):
        monkeypatch.setattr(settings, "N8N_WEBHOOK_URL", "https://n8n.example.com/webhook/generate")
        _use_n8n_client(FakeN8NClient({"success": False, "error": "NO_RESPONSE", "message": "No response received from n8n server"}))

        resp = client.post("/api/trigger-n8n", json={})
        assert resp.status_code == 500
        assert resp.json()["error"] == "NO_RESPONSE"


def test_workflow_routes(client):
    fake = FakeN8NClient({"success": True, "url": "u", "status": 200, "data": {"id": "7"}})
    _use_n8n_client(fake)

    assert client.get("/api/n8n/workflows/7").json()["data"] == {"id": "7"}
    assert client.post("/api/n8n/workflows/7/run", json={"x": 1}).status_code == 200
    assert fake.calls == [("get", "7"), ("run", "7", {"x": 1})]


def test_unhandled_error_is_json(store, monkeypatch):
    def boom(record):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(store, "put", boom)
    app_module.app.dependency_overrides[app_module.get_job_store] = lambda: store
    try:
        client = TestClient(app_module.app, raise_server_exceptions=False)
        resp = client.post(f"/form-test/{FORM_ID}", json=VALID_FORM)
    finally:
        app_module.app.dependency_overrides.clear()

    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert resp.json()["message"] == "disk on fire"


def test_api_docs(client):
    data = client.get("/api/docs").json()
    assert "forwardForm" in data["endpoints"]
