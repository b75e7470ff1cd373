# backend/model.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Literal, Dict, Any

ContentType = Literal["image", "caption", "both"]

Role = Literal["direct", "proxy"]

DeliveryErrorKind = Literal["HTTP_ERROR", "NO_RESPONSE", "REQUEST_SETUP_ERROR"]


class ImageDescriptor(BaseModel):
    url: str
    prompt: str
    width: int = 512
    height: int = 512
    format: str = "png"
    generated_at: str


class CaptionDescriptor(BaseModel):
    text: str
    prompt: str
    confidence: float
    generated_at: str


class GenerationResult(BaseModel):
    image: Optional[ImageDescriptor] = None
    caption: Optional[CaptionDescriptor] = None


class JobRecord(BaseModel):
    """
    Kết quả của 1 lần generate, lưu trong JobStore. Không sửa sau khi tạo.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    job_id: str = Field(alias="jobId")
    form_id: Optional[str] = Field(default=None, alias="formId")
    timestamp: str
    account_name: Optional[str] = Field(default=None, alias="accountName")
    category: Optional[str] = None
    prompt: str
    type: ContentType
    user_id: Optional[str] = Field(default=None, alias="userId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    result: GenerationResult
    status: Literal["completed"] = "completed"
    source: Literal["n8n-form", "legacy-webhook"]

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DeliveryTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    role: Role


class DeliveryResult(BaseModel):
    success: bool
    target: str
    role: Optional[Role] = None
    status: Optional[int] = None
    status_text: Optional[str] = Field(default=None, alias="statusText")
    body: Any = None
    error: Optional[DeliveryErrorKind] = None
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)
