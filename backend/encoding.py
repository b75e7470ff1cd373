# backend/encoding.py

import json
from typing import Any, Dict, List, Literal, Mapping, Tuple
from urllib.parse import urlencode

from urllib3 import encode_multipart_formdata

Encoding = Literal["json", "form", "multipart"]

ENCODINGS: Tuple[str, ...] = ("json", "form", "multipart")

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
MULTIPART_CONTENT_TYPE = "multipart/form-data"


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def _form_fields(payload: Mapping[str, Any]) -> List[Tuple[str, str]]:
    return [(key, _stringify(value)) for key, value in payload.items() if value is not None]


def encode_payload(payload: Mapping[str, Any], encoding: str) -> Tuple[Dict[str, str], bytes]:
    """
    Serialize payload thành (headers, body) theo encoding: json | form | multipart.
    Key có giá trị None bị bỏ hẳn khỏi body.
    """
    if encoding == "json":
        data = {key: value for key, value in payload.items() if value is not None}
        body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        return {"Content-Type": JSON_CONTENT_TYPE}, body

    if encoding == "form":
        body = urlencode(_form_fields(payload)).encode("ascii")
        return {"Content-Type": FORM_CONTENT_TYPE}, body

    if encoding == "multipart":
        body, content_type = encode_multipart_formdata(_form_fields(payload))
        return {"Content-Type": content_type}, body

    raise ValueError(f"Unsupported encoding: {encoding!r} (expected one of {', '.join(ENCODINGS)})")
