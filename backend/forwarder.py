# backend/forwarder.py

import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from config.settings import settings

from .delivery import attempt_delivery, attempt_in_order, order_targets
from .encoding import encode_payload
from .errors import ConfigurationError
from .fields import normalize_fields
from .model import DeliveryResult, DeliveryTarget

logger = logging.getLogger(__name__)


def build_form_targets() -> List[DeliveryTarget]:
    """
    Đọc danh sách target từ cấu hình: form n8n trực tiếp (direct) và proxy.
    """
    targets: List[DeliveryTarget] = []
    if settings.N8N_FORM_URL:
        targets.append(DeliveryTarget(name="n8n-form", url=settings.N8N_FORM_URL, role="direct"))
    if settings.N8N_PROXY_URL:
        targets.append(DeliveryTarget(name="n8n-proxy", url=settings.N8N_PROXY_URL, role="proxy"))
    if not targets:
        raise ConfigurationError("N8N_FORM_URL / N8N_PROXY_URL not configured", flag="ok")
    return targets


def build_headers(content_headers: Mapping[str, str]) -> Dict[str, str]:
    headers = {"Accept": "application/json, text/plain, */*", **content_headers}
    # Không có secret thì không gửi header
    if settings.N8N_FORM_SECRET:
        headers[settings.N8N_FORM_SECRET_HEADER] = settings.N8N_FORM_SECRET
    return headers


async def forward_form(
    data: Mapping[str, Any],
    encoding: Optional[str] = None,
    mode: Optional[str] = None,
    targets: Optional[List[DeliveryTarget]] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> DeliveryResult:
    """
    Chuẩn hoá field -> encode 1 lần -> gửi lần lượt tới các target.
    Trả về DeliveryResult thành công đầu tiên, hoặc raise DeliveryFailed.
    """
    encoding = encoding or settings.N8N_FORM_ENCODING
    mode = mode or settings.N8N_FORWARD_MODE

    payload = normalize_fields(data)
    content_headers, body = encode_payload(payload, encoding)
    headers = build_headers(content_headers)

    ordered = order_targets(targets if targets is not None else build_form_targets(), mode)
    logger.info(
        "[Forwarder] encoding=%s mode=%s targets=%s",
        encoding, mode, [t.name for t in ordered],
    )

    async def attempt(target: DeliveryTarget) -> DeliveryResult:
        return await attempt_delivery(target, headers, body, timeout=settings.N8N_TIMEOUT, client=client)

    return await attempt_in_order(ordered, attempt)
