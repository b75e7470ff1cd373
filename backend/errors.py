# backend/errors.py

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .delivery import DeliveryFailed
from .utils import utc_now_iso

logger = logging.getLogger(__name__)

VALIDATION_ERROR = "VALIDATION_ERROR"
UPSTREAM_HTTP_ERROR = "UPSTREAM_HTTP_ERROR"
NO_RESPONSE = "NO_RESPONSE"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"


class ApiError(Exception):
    """
    Lỗi trả về cho client dưới dạng JSON: {<flag>: false, error, message, code, ...extra}.
    """

    status_code = 500
    code = INTERNAL_ERROR

    def __init__(
        self,
        error: str,
        message: Optional[str] = None,
        flag: str = "success",
        **extra: Any,
    ):
        super().__init__(message or error)
        self.error = error
        self.message = message or error
        self.flag = flag
        self.extra = extra

    def to_json(self) -> Dict[str, Any]:
        return {
            self.flag: False,
            "error": self.error,
            "message": self.message,
            "code": self.code,
            **self.extra,
        }


class ValidationFailed(ApiError):
    status_code = 400
    code = VALIDATION_ERROR


class ConfigurationError(ApiError):
    status_code = 500
    code = CONFIGURATION_ERROR

    def __init__(self, message: str, **kwargs: Any):
        super().__init__("Configuration error", message, **kwargs)


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[API] %s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.info("[API] %s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[API] Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "message": str(exc),
            "code": INTERNAL_ERROR,
            "timestamp": utc_now_iso(),
        },
    )


async def _delivery_failed_handler(request: Request, exc: DeliveryFailed) -> JSONResponse:
    """
    Mọi target forward đều lỗi: trả lỗi của target cuối cùng cho client.
    """
    last = exc.last
    attempts = [
        {"target": r.target, "role": r.role, "error": r.error, "status": r.status}
        for r in exc.attempts
    ]
    if last is not None and last.error == "HTTP_ERROR":
        content = {
            "ok": False,
            "error": "upstream_error",
            "code": UPSTREAM_HTTP_ERROR,
            "message": last.message,
            "status": last.status,
            "statusText": last.status_text,
            "body": last.body,
            "target": last.target,
            "attempts": attempts,
        }
    else:
        code = CONFIGURATION_ERROR if last is not None and last.error == "REQUEST_SETUP_ERROR" else NO_RESPONSE
        content = {
            "ok": False,
            "error": "proxy_failed",
            "code": code,
            "message": last.message if last is not None else str(exc),
            "target": last.target if last is not None else None,
            "attempts": attempts,
        }
    logger.error("[API] Forward failed on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content=content)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(DeliveryFailed, _delivery_failed_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
