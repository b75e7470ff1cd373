# backend/app.py

import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import settings
from .delivery import FORWARD_MODES
from .encoding import ENCODINGS
from .errors import ConfigurationError, ValidationFailed, register_error_handlers
from .fields import resolve_field
from .forwarder import forward_form
from .generator import CONTENT_TYPES, generate_content
from .model import JobRecord
from .n8n_client import N8NClient
from .store import InMemoryJobStore, JobStore
from .utils import gen_job_id, read_payload, utc_now_iso

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

VALID_ACCOUNT_NAMES = [
    "nia_dhanii",
    "budi_hartono26",
    "hendra_wijaya_brave",
    "tikaamelia30",
    "mama_yuni_53",
    "raka_pradanaaa.a",
]

VALID_CATEGORIES = [
    "Lifestyle",
    "Health",
    "Nutrition",
    "Fitness",
    "Medical",
    "Mental Health",
    "Routines",
]

FORM_DEFAULT_TYPE = "image"
WEBHOOK_DEFAULT_TYPE = "both"
MIN_FORM_ID_LENGTH = 10

app = FastAPI(title="Image Caption Form Relay")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Store dùng chung cho cả process
_job_store = InMemoryJobStore(max_items=settings.JOB_STORE_MAX_ITEMS)


def get_job_store() -> JobStore:
    return _job_store


def get_n8n_client() -> N8NClient:
    return N8NClient()


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.N8N_TIMEOUT) as client:
        yield client


async def _read_body(request: Request, flag: str = "success") -> Dict[str, Any]:
    try:
        return await read_payload(request)
    except ValueError as e:
        raise ValidationFailed("Invalid request body", str(e), flag=flag)
    except StarletteHTTPException as e:
        # Multipart hỏng: request.form() raise 400
        raise ValidationFailed("Invalid request body", str(e.detail), flag=flag)


@app.get("/health")
async def health():
    return {
        "status": "OK",
        "message": "Image Caption Generate API is running",
        "timestamp": utc_now_iso(),
    }


@app.post("/form-test/{form_id}")
async def submit_form(form_id: str, request: Request, store: JobStore = Depends(get_job_store)):
    """
    Nhận submit từ n8n Form: validate field, generate (mock) và lưu job.
    """
    form_data = await _read_body(request)
    logger.info("[Form] Received submission for form %s: %s", form_id, form_data)

    account_name = resolve_field(form_data, "accountName")
    category = resolve_field(form_data, "category")
    prompt = resolve_field(form_data, "prompt")
    content_type = form_data.get("type") or FORM_DEFAULT_TYPE

    if not account_name:
        raise ValidationFailed(
            "Account Name is required",
            "Please provide an accountName field in the request body",
            formId=form_id,
            validOptions=VALID_ACCOUNT_NAMES,
            received=form_data,
        )
    if account_name not in VALID_ACCOUNT_NAMES:
        raise ValidationFailed(
            "Invalid Account Name",
            f"Account Name must be one of: {', '.join(VALID_ACCOUNT_NAMES)}",
            formId=form_id,
            provided=account_name,
            validOptions=VALID_ACCOUNT_NAMES,
            received=form_data,
        )
    if not category:
        raise ValidationFailed(
            "Category is required",
            "Please provide a category field in the request body",
            formId=form_id,
            validOptions=VALID_CATEGORIES,
            received=form_data,
        )
    if category not in VALID_CATEGORIES:
        raise ValidationFailed(
            "Invalid Category",
            f"Category must be one of: {', '.join(VALID_CATEGORIES)}",
            formId=form_id,
            provided=category,
            validOptions=VALID_CATEGORIES,
            received=form_data,
        )
    if not prompt:
        raise ValidationFailed(
            "Prompt is required",
            "Please provide a prompt field in the request body",
            formId=form_id,
            received=form_data,
        )
    if content_type not in CONTENT_TYPES:
        raise ValidationFailed(
            "Invalid type",
            f"Type must be one of: {', '.join(CONTENT_TYPES)}",
            formId=form_id,
            provided=content_type,
            validOptions=list(CONTENT_TYPES),
            received=form_data,
        )
    if len(form_id) < MIN_FORM_ID_LENGTH:
        raise ValidationFailed(
            "Invalid form ID",
            "Form ID must be provided and valid",
            formId=form_id,
        )

    prompt = str(prompt)
    job_id = gen_job_id()
    timestamp = utc_now_iso()
    result = await generate_content(prompt, content_type)

    record = JobRecord(
        job_id=job_id,
        form_id=form_id,
        timestamp=timestamp,
        account_name=account_name,
        category=category,
        prompt=prompt,
        type=content_type,
        result=result,
        source="n8n-form",
    )
    store.put(record)
    logger.info("[Form] Job %s completed (type=%s)", job_id, content_type)

    result_json = result.model_dump(exclude_none=True)
    return {
        "success": True,
        "jobId": job_id,
        "formId": form_id,
        "timestamp": timestamp,
        "message": "Image generated successfully",
        "data": {
            "accountName": account_name,
            "category": category,
            "prompt": prompt,
            "type": content_type,
            "result": result_json,
            "metadata": {
                "jobId": job_id,
                "formId": form_id,
                "accountName": account_name,
                "category": category,
                "processedAt": timestamp,
            },
        },
    }


@app.get("/form-test/{form_id}")
async def describe_form(form_id: str):
    return {
        "success": True,
        "formId": form_id,
        "title": "Image generation",
        "description": "This form will allow you to generate images",
        "message": "Form endpoint is active",
        "instructions": {
            "method": "POST",
            "url": f"/form-test/{form_id}",
            "requiredFields": ["accountName", "category", "prompt"],
            "optionalFields": ["type"],
            "defaultType": FORM_DEFAULT_TYPE,
        },
        "formFields": {
            "accountName": {
                "label": "Account Name",
                "type": "select",
                "required": True,
                "options": VALID_ACCOUNT_NAMES,
            },
            "category": {
                "label": "Category",
                "type": "select",
                "required": True,
                "options": VALID_CATEGORIES,
            },
            "prompt": {
                "label": "Prompt",
                "type": "textarea",
                "required": True,
                "placeholder": "Input your prompt or image idea",
            },
        },
        "example": {
            "accountName": "nia_dhanii",
            "category": "Lifestyle",
            "prompt": "A beautiful sunset over mountains",
            "type": FORM_DEFAULT_TYPE,
        },
    }


@app.post("/api/n8n/webhook")
async def legacy_webhook(request: Request, store: JobStore = Depends(get_job_store)):
    """
    Webhook cũ (giữ để tương thích): chỉ cần prompt, type mặc định "both".
    """
    body = await _read_body(request)
    logger.info("[Webhook] Received legacy n8n webhook: %s", body)

    prompt = body.get("prompt")
    content_type = body.get("type") or WEBHOOK_DEFAULT_TYPE

    if not prompt:
        raise ValidationFailed(
            "Prompt is required",
            "Please provide a prompt field in the request body",
            received=body,
        )
    if content_type not in CONTENT_TYPES:
        raise ValidationFailed(
            "Invalid type",
            f"Type must be one of: {', '.join(CONTENT_TYPES)}",
            validOptions=list(CONTENT_TYPES),
            received=body,
        )

    prompt = str(prompt)
    job_id = gen_job_id()
    timestamp = utc_now_iso()
    result = await generate_content(prompt, content_type)

    record = JobRecord(
        job_id=job_id,
        timestamp=timestamp,
        prompt=prompt,
        type=content_type,
        user_id=str(body.get("userId") or "anonymous"),
        session_id=str(body.get("sessionId") or job_id),
        result=result,
        source="legacy-webhook",
    )
    store.put(record)

    return {
        "success": True,
        "jobId": job_id,
        "timestamp": timestamp,
        "data": record.to_json(),
    }


@app.post("/api/forward-form")
async def forward_form_route(
    request: Request,
    encoding: Optional[str] = Query(None, description="json | form | multipart"),
    mode: Optional[str] = Query(None, description="direct-first | proxy-first"),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Forward form sang n8n với mọi biến thể tên field; thử direct / proxy theo thứ tự.
    """
    data = await _read_body(request, flag="ok")

    if encoding is not None and encoding not in ENCODINGS:
        raise ValidationFailed(
            "invalid_encoding",
            f"encoding must be one of: {', '.join(ENCODINGS)}",
            flag="ok",
            validOptions=list(ENCODINGS),
        )
    if mode is not None and mode not in FORWARD_MODES:
        raise ValidationFailed(
            "invalid_mode",
            f"mode must be one of: {', '.join(FORWARD_MODES)}",
            flag="ok",
            validOptions=list(FORWARD_MODES),
        )

    result = await forward_form(data, encoding=encoding, mode=mode, client=client)
    return {"ok": True, "status": result.status, "body": result.body, "target": result.target}


@app.post("/api/trigger-n8n")
async def trigger_n8n(request: Request, client: N8NClient = Depends(get_n8n_client)):
    url = settings.webhook_url()
    if not url:
        raise ConfigurationError("N8N_WEBHOOK_URL or N8N_WEBHOOK_PATH must be set")

    payload = await _read_body(request)
    res = await client.trigger_webhook(url, payload)

    if res["success"]:
        return {"ok": True, "n8nStatus": res["status"], "n8nBody": res["data"]}
    if res["error"] == "HTTP_ERROR":
        return {"ok": False, "n8nStatus": res["status"], "n8nBody": res["data"]}
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": res["error"], "message": res["message"]},
    )


@app.get("/api/n8n/workflows/{workflow_id}")
async def get_workflow(workflow_id: str, client: N8NClient = Depends(get_n8n_client)):
    res = await client.get_workflow(workflow_id)
    return res if res["success"] else JSONResponse(status_code=502, content=res)


@app.post("/api/n8n/workflows/{workflow_id}/run")
async def run_workflow(workflow_id: str, request: Request, client: N8NClient = Depends(get_n8n_client)):
    payload = await _read_body(request)
    res = await client.run_workflow(workflow_id, payload)
    return res if res["success"] else JSONResponse(status_code=502, content=res)


@app.get("/api/content/{job_id}")
async def get_content(job_id: str, store: JobStore = Depends(get_job_store)):
    record = store.get(job_id)
    if record is None:
        return JSONResponse(
            status_code=404,
            content={"success": False, "error": "Content not found", "jobId": job_id},
        )
    return record.to_json()


@app.get("/api/content")
async def list_content(store: JobStore = Depends(get_job_store)):
    records = store.list()
    return {"total": len(records), "content": [r.to_json() for r in records]}


@app.get("/api/docs")
async def api_docs(request: Request):
    base_url = str(request.base_url).rstrip("/")
    return {
        "title": "Image & Caption Generator API",
        "version": "1.0.0",
        "endpoints": {
            "health": {"method": "GET", "url": "/health", "description": "Health check endpoint"},
            "n8nForm": {
                "method": "POST",
                "url": "/form-test/{formId}",
                "description": "n8n form submission endpoint",
                "example": f"{base_url}/form-test/1bc429ed-c5a2-4783-9dd8-40eaac8a59f1",
                "body": {
                    "accountName": "one of the valid account names (required)",
                    "category": "one of the valid categories (required)",
                    "prompt": "Your generation prompt (required)",
                    "type": f"both|image|caption (optional, default: {FORM_DEFAULT_TYPE})",
                },
            },
            "legacyWebhook": {
                "method": "POST",
                "url": "/api/n8n/webhook",
                "description": "Legacy webhook endpoint (backward compatibility)",
            },
            "forwardForm": {
                "method": "POST",
                "url": "/api/forward-form?encoding=json|form|multipart&mode=direct-first|proxy-first",
                "description": "Forward form fields to the configured n8n Form endpoint",
            },
            "triggerN8n": {
                "method": "POST",
                "url": "/api/trigger-n8n",
                "description": "Forward arbitrary JSON to the configured n8n webhook",
            },
            "getContent": {
                "method": "GET",
                "url": "/api/content/{jobId}",
                "description": "Retrieve generated content by job ID",
            },
            "listContent": {
                "method": "GET",
                "url": "/api/content",
                "description": "List all generated content",
            },
        },
    }
