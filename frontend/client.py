import os
from typing import Any, Dict, Optional

import requests

BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:3000")


class RelayError(RuntimeError):
    """Backend trả lỗi (HTTP != 2xx hoặc ok=false)."""


def _parse(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text or None


def build_form_payload(account_name: str, category: str, prompt: str = "") -> Dict[str, str]:
    """Payload logic; backend sẽ tự thêm các biến thể tên field."""
    payload = {"accountName": account_name, "category": category}
    prompt = (prompt or "").strip()
    if prompt:
        payload["prompt"] = prompt
    return payload


def call_forward_form(
    payload: Dict[str, Any],
    encoding: Optional[str] = None,
    mode: Optional[str] = None,
    backend_url: str = BACKEND_URL,
) -> Any:
    """Gọi POST /api/forward-form -> trả về body của n8n"""
    params = {k: v for k, v in (("encoding", encoding), ("mode", mode)) if v}
    resp = requests.post(f"{backend_url}/api/forward-form", json=payload, params=params, timeout=30)
    parsed = _parse(resp)

    if not resp.ok or (isinstance(parsed, dict) and parsed.get("ok") is False):
        if isinstance(parsed, dict):
            err = parsed.get("message") or parsed.get("error") or parsed.get("body")
        else:
            err = parsed
        raise RelayError(err if isinstance(err, str) else f"HTTP {resp.status_code}: {err}")

    if isinstance(parsed, dict) and "body" in parsed:
        return parsed["body"]
    return parsed


def fetch_form_schema(form_id: str, backend_url: str = BACKEND_URL) -> Dict[str, Any]:
    """GET /form-test/{form_id} -> mô tả form (options của account / category)"""
    resp = requests.get(f"{backend_url}/form-test/{form_id}", timeout=10)
    resp.raise_for_status()
    return resp.json()
