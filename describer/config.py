"""Central configuration and path constants for the image describer service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DB_PATH = BASE_DIR / "data" / "database.db"
DEFAULT_UPLOADS_DIR = BASE_DIR / "uploads"
OPENAI_BASE_URL = "https://api.openai.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
OPENAI_MODEL_DEFAULT = "gpt-4.1-mini"
OPENAI_MAX_TOKENS_DEFAULT = 8096
GEMINI_MAX_TOKENS_DEFAULT = 4096
HTTP_TIMEOUT_DEFAULT = 90.0
MAX_UPLOAD_MB_DEFAULT = 10
LOG_LEVEL = os.getenv("DESCRIBER_LOG_LEVEL", "INFO").upper()

PROVIDERS = ("openai", "gemini", "zai")

DEFAULT_SETTINGS: Dict[str, str] = {
    "language": "english",
    "detailLevel": "detailed",
    "outputLength": "normal",
    "outputStyle": "basic-ai-image-generator",
    "model": "openai",
    "geminiModel": "gemini-2.5-flash",
}
DEFAULT_API_KEYS: Dict[str, str] = {provider: "" for provider in ("openai", "zai", "gemini")}

GEMINI_GENERATION_CONFIG = {
    "temperature": 0.7,
    "topP": 0.8,
    "topK": 40,
}
GEMINI_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)
GEMINI_SAFETY_THRESHOLD = "BLOCK_MEDIUM_AND_ABOVE"
GEMINI_IMAGE_MIME_TYPE = "image/jpeg"


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name) or default)
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name) or default)
    except (TypeError, ValueError):
        return default


def _split_origins(raw: str) -> List[str]:
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


@dataclass(frozen=True)
class DescriberConfig:
    """Everything the analyzer, adapters and store need, resolved once."""

    openai_api_key: str = ""
    gemini_api_key: str = ""
    zai_api_key: str = ""
    openai_model: str = OPENAI_MODEL_DEFAULT
    openai_max_tokens: int = OPENAI_MAX_TOKENS_DEFAULT
    gemini_max_tokens: int = GEMINI_MAX_TOKENS_DEFAULT
    openai_base_url: str = OPENAI_BASE_URL
    gemini_base_url: str = GEMINI_BASE_URL
    http_timeout: float = HTTP_TIMEOUT_DEFAULT
    db_path: Path = DEFAULT_DB_PATH
    uploads_dir: Path = DEFAULT_UPLOADS_DIR
    max_upload_mb: int = MAX_UPLOAD_MB_DEFAULT
    public_base_url: str = ""
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "DescriberConfig":
        return cls(
            openai_api_key=_env_str("OPENAI_API_KEY"),
            gemini_api_key=_env_str("GEMINI_API_KEY"),
            zai_api_key=_env_str("ZAI_API_KEY"),
            openai_model=_env_str("OPENAI_MODEL", OPENAI_MODEL_DEFAULT),
            openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", OPENAI_MAX_TOKENS_DEFAULT),
            gemini_max_tokens=_env_int("GEMINI_MAX_TOKENS", GEMINI_MAX_TOKENS_DEFAULT),
            openai_base_url=_env_str("OPENAI_BASE_URL", OPENAI_BASE_URL).rstrip("/"),
            gemini_base_url=_env_str("GEMINI_BASE_URL", GEMINI_BASE_URL).rstrip("/"),
            http_timeout=_env_float("DESCRIBER_HTTP_TIMEOUT", HTTP_TIMEOUT_DEFAULT),
            db_path=Path(_env_str("DESCRIBER_DB_PATH") or DEFAULT_DB_PATH),
            uploads_dir=Path(_env_str("DESCRIBER_UPLOADS_DIR") or DEFAULT_UPLOADS_DIR),
            max_upload_mb=_env_int("DESCRIBER_MAX_UPLOAD_MB", MAX_UPLOAD_MB_DEFAULT),
            public_base_url=_env_str("DESCRIBER_PUBLIC_BASE_URL").rstrip("/"),
            cors_origins=_split_origins(_env_str("DESCRIBER_CORS_ORIGINS", "*")),
        )

    def default_key_for(self, provider: str) -> str:
        return {
            "openai": self.openai_api_key,
            "gemini": self.gemini_api_key,
            "zai": self.zai_api_key,
        }.get(provider, "")
