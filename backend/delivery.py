# backend/delivery.py

import logging
import re
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

import httpx

from .model import DeliveryResult, DeliveryTarget

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0

FORWARD_MODES = ("direct-first", "proxy-first")

# Host hợp lệ sau khi httpx chuẩn hoá: tên miền / IDNA đã encode, IPv4, IPv6
HOST_PATTERN = re.compile(r"^[A-Za-z0-9._:-]+$")


class DeliveryFailed(Exception):
    """
    Mọi target đều thất bại. `last` là kết quả lỗi cuối cùng (None nếu không có target nào).
    """

    def __init__(self, attempts: List[DeliveryResult]):
        self.attempts = attempts
        self.last: Optional[DeliveryResult] = attempts[-1] if attempts else None
        if self.last is None:
            message = "No delivery targets configured"
        else:
            message = f"All {len(attempts)} delivery target(s) failed, last: {self.last.error} from {self.last.target}"
        super().__init__(message)


def _check_url(raw: str) -> httpx.URL:
    url = httpx.URL(raw)
    # httpx percent-encode host lạ (VD có dấu cách) thay vì báo lỗi
    host = url.raw_host.decode("ascii", errors="replace")
    if not HOST_PATTERN.match(host):
        raise httpx.InvalidURL(f"Invalid host in URL: {raw!r}")
    return url


def _parse_body(response: httpx.Response):
    content_type = response.headers.get("content-type", "")
    if "json" in content_type.lower():
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text


async def _send(
    client: httpx.AsyncClient, target: DeliveryTarget, headers: Dict[str, str], body: bytes
) -> DeliveryResult:
    try:
        url = _check_url(target.url)
        request = client.build_request("POST", url, headers=headers, content=body)
    except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError, TypeError) as e:
        return DeliveryResult(
            success=False, target=target.name, role=target.role,
            error="REQUEST_SETUP_ERROR", message=str(e),
        )

    try:
        response = await client.send(request)
    except httpx.UnsupportedProtocol as e:
        return DeliveryResult(
            success=False, target=target.name, role=target.role,
            error="REQUEST_SETUP_ERROR", message=str(e),
        )
    except httpx.TransportError as e:
        # Bao gồm cả timeout: coi như không nhận được response
        return DeliveryResult(
            success=False, target=target.name, role=target.role,
            error="NO_RESPONSE", message=f"No response received from {target.url}: {e!r}",
        )

    parsed = _parse_body(response)
    if response.is_success:
        return DeliveryResult(
            success=True, target=target.name, role=target.role,
            status=response.status_code, status_text=response.reason_phrase, body=parsed,
        )
    return DeliveryResult(
        success=False, target=target.name, role=target.role,
        status=response.status_code, status_text=response.reason_phrase, body=parsed,
        error="HTTP_ERROR", message=f"{target.url} returned {response.status_code}",
    )


async def attempt_delivery(
    target: DeliveryTarget,
    headers: Dict[str, str],
    body: bytes,
    timeout: float = DEFAULT_TIMEOUT,
    client: Optional[httpx.AsyncClient] = None,
) -> DeliveryResult:
    """
    Gửi đúng 1 POST tới target, không retry.
    Lỗi mạng / timeout -> NO_RESPONSE, non-2xx -> HTTP_ERROR, URL hỏng -> REQUEST_SETUP_ERROR.
    """
    logger.info("[Delivery] POST %s (%s) -> %s", target.name, target.role, target.url)
    if client is not None:
        result = await _send(client, target, headers, body)
    else:
        async with httpx.AsyncClient(timeout=timeout) as own_client:
            result = await _send(own_client, target, headers, body)

    if result.success:
        logger.info("[Delivery] %s ok, status=%s", target.name, result.status)
    else:
        logger.warning("[Delivery] %s failed: %s %s", target.name, result.error, result.message)
    return result


async def attempt_in_order(
    targets: Iterable[DeliveryTarget],
    attempt: Callable[[DeliveryTarget], Awaitable[DeliveryResult]],
) -> DeliveryResult:
    """
    Thử lần lượt từng target, dừng ở target thành công đầu tiên.
    Nếu tất cả thất bại thì raise DeliveryFailed (mang lỗi cuối cùng).
    """
    attempts: List[DeliveryResult] = []
    for target in targets:
        result = await attempt(target)
        if result.success:
            return result
        attempts.append(result)
    raise DeliveryFailed(attempts)


def order_targets(targets: Sequence[DeliveryTarget], mode: str) -> List[DeliveryTarget]:
    """
    Sắp xếp target theo mode: direct-first hoặc proxy-first (giữ thứ tự cấu hình trong cùng role).
    """
    if mode not in FORWARD_MODES:
        raise ValueError(f"Unsupported forward mode: {mode!r} (expected one of {', '.join(FORWARD_MODES)})")
    first = "direct" if mode == "direct-first" else "proxy"
    return sorted(targets, key=lambda t: 0 if t.role == first else 1)
