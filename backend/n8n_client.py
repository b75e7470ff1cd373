# backend/n8n_client.py

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from config.settings import settings

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class N8NClient:
    """
    Client cho n8n: gọi webhook public (kể cả instance local expose qua ngrok)
    hoặc REST API có xác thực (X-N8N-API-KEY).

    Mọi method trả về dict:
      thành công: {"success": True, "url", "data", "status"}
      thất bại:   {"success": False, "error": HTTP_ERROR | NO_RESPONSE | REQUEST_SETUP_ERROR, ...}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        request_timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or settings.N8N_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.N8N_API_KEY
        self.request_timeout = request_timeout or settings.N8N_TIMEOUT

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("N8N_API_KEY not set. Cannot call authenticated API.")
        return self.api_key

    async def trigger_webhook(
        self, path: str, payload: Optional[Dict[str, Any]] = None, method: str = "POST"
    ) -> Dict[str, Any]:
        """
        Gọi webhook workflow. `path` là phần sau domain, hoặc URL đầy đủ.
        """
        url = path if path.startswith("http") else f"{self.base_url}/{path.lstrip('/')}"
        return await self._request(
            method.upper(),
            url,
            headers={"Content-Type": "application/json"},
            json=payload or {},
            meta={"url": url, "context": "triggerWebhook"},
        )

    async def run_workflow(self, workflow_id: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST /api/v1/workflows/{id}/run (cần API key)."""
        api_key = self._require_api_key()
        url = f"{self.base_url}/api/v1/workflows/{workflow_id}/run"
        return await self._request(
            "POST",
            url,
            headers={"Content-Type": "application/json", "X-N8N-API-KEY": api_key},
            json={"workflowData": payload or {}},
            meta={"url": url, "workflowId": workflow_id, "context": "runWorkflow"},
        )

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        """GET /api/v1/workflows/{id} (cần API key)."""
        api_key = self._require_api_key()
        url = f"{self.base_url}/api/v1/workflows/{workflow_id}"
        return await self._request(
            "GET",
            url,
            headers={"X-N8N-API-KEY": api_key},
            meta={"url": url, "workflowId": workflow_id, "context": "getWorkflow"},
        )

    async def _request(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        meta: Dict[str, Any],
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, headers=headers, json=json) as resp:
                    data = await self._read_body(resp)
                    if resp.status >= 400:
                        logger.warning("[N8NClient] HTTP %s from %s: %s", resp.status, url, str(data)[:300])
                        return {
                            "success": False,
                            "error": "HTTP_ERROR",
                            "status": resp.status,
                            "statusText": resp.reason,
                            "data": data,
                            "meta": meta,
                        }
                    return {"success": True, "url": url, "data": data, "status": resp.status}
        except aiohttp.InvalidURL as e:
            return self._handle_error("REQUEST_SETUP_ERROR", f"Invalid URL: {e}", meta)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("[N8NClient] No response from %s: %r", url, e)
            return self._handle_error("NO_RESPONSE", "No response received from n8n server", meta)

    @staticmethod
    async def _read_body(resp: aiohttp.ClientResponse) -> Any:
        text = await resp.text()
        if "json" in (resp.content_type or ""):
            try:
                return await resp.json(content_type=None)
            except ValueError:
                return text
        return text

    @staticmethod
    def _handle_error(kind: str, message: str, meta: Dict[str, Any]) -> Dict[str, Any]:
        return {"success": False, "error": kind, "message": message, "meta": meta}
