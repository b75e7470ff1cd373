import os
from pathlib import Path
from dotenv import load_dotenv

# Load biến môi trường trong .env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


def _optional(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _optional_int(name: str) -> int | None:
    value = _optional(name)
    return int(value) if value is not None else None


class Settings:
    # Authenticated n8n REST API (companion client)
    N8N_BASE_URL: str = os.getenv("N8N_BASE_URL", "http://localhost:5678")
    N8N_API_KEY: str | None = _optional("N8N_API_KEY")

    # Form forwarding targets
    N8N_FORM_URL: str | None = _optional("N8N_FORM_URL")
    N8N_PROXY_URL: str | None = _optional("N8N_PROXY_URL")
    N8N_FORM_SECRET: str | None = _optional("N8N_FORM_SECRET")
    N8N_FORM_SECRET_HEADER: str = os.getenv("N8N_FORM_SECRET_HEADER", "X-Form-Secret")
    N8N_FORM_ENCODING: str = os.getenv("N8N_FORM_ENCODING", "json")  # json | form | multipart
    N8N_FORWARD_MODE: str = os.getenv("N8N_FORWARD_MODE", "direct-first")  # or proxy-first

    # Legacy webhook trigger: full URL, or path under N8N_BASE_URL
    N8N_WEBHOOK_URL: str | None = _optional("N8N_WEBHOOK_URL")
    N8N_WEBHOOK_PATH: str | None = _optional("N8N_WEBHOOK_PATH")

    N8N_TIMEOUT: float = float(os.getenv("N8N_TIMEOUT", "15"))  # giây

    # Mock generator latency
    IMAGE_DELAY: float = float(os.getenv("IMAGE_DELAY", "1.0"))
    CAPTION_DELAY: float = float(os.getenv("CAPTION_DELAY", "0.8"))

    JOB_STORE_MAX_ITEMS: int | None = _optional_int("JOB_STORE_MAX_ITEMS")

    PORT: int = int(os.getenv("PORT", "3000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def webhook_url(self) -> str | None:
        """
        URL của webhook legacy: N8N_WEBHOOK_URL, hoặc N8N_BASE_URL + N8N_WEBHOOK_PATH.
        """
        if self.N8N_WEBHOOK_URL:
            return self.N8N_WEBHOOK_URL
        if self.N8N_WEBHOOK_PATH:
            return f"{self.N8N_BASE_URL.rstrip('/')}/{self.N8N_WEBHOOK_PATH.lstrip('/')}"
        return None


settings = Settings()
