import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import Request

from .encoding import FORM_CONTENT_TYPE, MULTIPART_CONTENT_TYPE


def gen_job_id() -> str:
    return str(uuid.uuid4())


def utc_now_iso() -> str:
    """ISO-8601 kiểu JS toISOString(): 2024-01-01T00:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def read_payload(request: Request) -> Dict[str, Any]:
    """
    Đọc body request (json / form-urlencoded / multipart) thành dict.
    Form và multipart đi qua request.form() (python-multipart), còn lại parse như JSON.
    """
    mime = request.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    if mime in (FORM_CONTENT_TYPE, MULTIPART_CONTENT_TYPE):
        form = await request.form()
        # Chỉ lấy field text, file upload bị bỏ qua
        return {key: value for key, value in form.items() if isinstance(value, str)}

    body = await request.body()
    if not body:
        return {}
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data
