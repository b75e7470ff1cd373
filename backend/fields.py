# backend/fields.py

from typing import Any, Dict, List, Mapping, Optional

from .utils import utc_now_iso


# Canonical key -> mọi tên field mà n8n Form có thể dùng (canonical đứng đầu).
# Thêm alias mới chỉ cần sửa bảng này.
FIELD_ALIASES: Dict[str, List[str]] = {
    "accountName": ["accountName", "account_name", "Account Name"],
    "category": ["category", "Category"],
    "prompt": ["prompt", "Prompt", "text", "message"],
}

SUBMITTED_AT = "submittedAt"

KNOWN_KEYS = {alias for aliases in FIELD_ALIASES.values() for alias in aliases} | {SUBMITTED_AT}


def resolve_field(data: Mapping[str, Any], canonical: str) -> Optional[Any]:
    """
    Lấy giá trị của 1 field logic từ alias đầu tiên có giá trị.
    VD: resolve_field({"Account Name": "nia_dhanii"}, "accountName") -> "nia_dhanii"
    """
    for alias in FIELD_ALIASES[canonical]:
        value = data.get(alias)
        if value not in (None, ""):
            return value
    return None


def normalize_fields(data: Mapping[str, Any], now: Optional[str] = None) -> Dict[str, Any]:
    """
    Mở rộng payload logic thành payload chứa mọi alias.

    Thứ tự key: canonical trước, sau đó các alias còn lại theo bảng,
    rồi submittedAt, cuối cùng là các key lạ giữ nguyên.
    Field thiếu có giá trị None (encoder sẽ bỏ qua).
    """
    values = {canonical: resolve_field(data, canonical) for canonical in FIELD_ALIASES}

    out: Dict[str, Any] = {canonical: values[canonical] for canonical in FIELD_ALIASES}
    for canonical, aliases in FIELD_ALIASES.items():
        for alias in aliases[1:]:
            out[alias] = values[canonical]

    out[SUBMITTED_AT] = data.get(SUBMITTED_AT) or now or utc_now_iso()

    for key, value in data.items():
        if key not in KNOWN_KEYS:
            out[key] = value
    return out
