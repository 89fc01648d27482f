"""
FastAPI application that describes uploaded images with a vision-capable LLM
(OpenAI or Google Gemini) and keeps per-device settings in SQLite.

Required dependencies:
    pip install fastapi uvicorn openai requests pillow python-multipart
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from describer.analysis import ImageAnalyzer
from describer.api_keys import (
    debug_api_key,
    is_masked_api_key,
    is_valid_api_key,
    mask_api_key,
    validate_api_key_with_message,
)
from describer.config import PROVIDERS, DescriberConfig
from describer.errors import DescriberError, UploadError
from describer.logging_utils import build_logger
from describer.settings_store import SettingsStore, load_device_settings, save_device_settings
from describer.uploads import build_upload_url, store_upload

_config: DescriberConfig = DescriberConfig.from_env()
_settings_store: SettingsStore | None = None
_analyzer: ImageAnalyzer | None = None

logger = build_logger()

app = FastAPI(title="AI Image Describer", docs_url=None, redoc_url=None)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_config.cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def mount_uploads(uploads_dir: Path) -> None:
    """Serve stored uploads at /uploads, replacing any earlier mount."""

    uploads_dir.mkdir(parents=True, exist_ok=True)
    app.router.routes[:] = [route for route in app.router.routes if getattr(route, "name", None) != "uploads"]
    app.mount("/uploads", StaticFiles(directory=uploads_dir), name="uploads")


mount_uploads(_config.uploads_dir)


class AnalyzeImagePayload(BaseModel):
    imageUrl: Optional[str] = None
    settings: Optional[Dict[str, Any]] = None


class SettingsPayload(BaseModel):
    deviceId: Optional[str] = None
    settings: Optional[Any] = None


class KeyCheckPayload(BaseModel):
    provider: str = ""
    apiKey: Optional[str] = ""


def configure_services(config: DescriberConfig) -> None:
    """Swap the active configuration and drop cached services built from the old one."""

    global _config, _settings_store, _analyzer
    if _settings_store is not None:
        _settings_store.close()
    _config = config
    _settings_store = None
    _analyzer = None
    mount_uploads(config.uploads_dir)


def get_config() -> DescriberConfig:
    return _config


def get_settings_store() -> SettingsStore:
    """Open the settings database on first use; raises StoreUnavailableError on failure."""

    global _settings_store
    if _settings_store is None:
        _settings_store = SettingsStore(_config.db_path)
    return _settings_store


def get_analyzer() -> ImageAnalyzer:
    global _analyzer
    if _analyzer is None:
        _analyzer = ImageAnalyzer(_config)
    return _analyzer


@app.exception_handler(DescriberError)
async def describer_error_handler(request: Request, exc: DescriberError) -> JSONResponse:
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected request body on %s: %s", request.url.path, exc.errors())
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


@app.get("/api/health", response_class=JSONResponse)
def health() -> JSONResponse:
    config = get_config()
    return JSONResponse(
        {
            "status": "ok",
            "has_openai_key": is_valid_api_key(config.openai_api_key, "openai"),
            "has_gemini_key": is_valid_api_key(config.gemini_api_key, "gemini"),
        }
    )


@app.post("/api/analyze-image", response_class=JSONResponse)
def analyze_image(payload: AnalyzeImagePayload) -> JSONResponse:
    """Describe the image at ``imageUrl`` using the model chosen in ``settings``."""

    result = get_analyzer().analyze(payload.imageUrl, payload.settings)
    return JSONResponse(result)


@app.get("/api/settings", response_class=JSONResponse)
def fetch_settings(deviceId: Optional[str] = None) -> JSONResponse:
    """Return the stored settings of a device, filled with defaults, or null."""

    if not deviceId:
        raise DescriberError(400, "Device ID is required")
    store = get_settings_store()
    try:
        settings = load_device_settings(store, deviceId)
    except Exception as exc:
        logger.exception("Error loading settings for device %s: %s", deviceId, exc)
        raise DescriberError(500, "Server error while loading settings") from exc
    return JSONResponse({"success": True, "settings": settings})


@app.post("/api/settings", response_class=JSONResponse)
def persist_settings(payload: SettingsPayload) -> JSONResponse:
    """Create or overwrite the settings row of a device."""

    if not payload.deviceId:
        raise DescriberError(400, "Device ID is required")
    if payload.settings is None:
        raise DescriberError(400, "Settings are required")
    if not isinstance(payload.settings, dict):
        raise DescriberError(400, "Settings must be a JSON object")
    store = get_settings_store()
    try:
        save_device_settings(store, payload.deviceId, payload.settings)
    except Exception as exc:
        logger.exception("Error saving settings for device %s: %s", payload.deviceId, exc)
        raise DescriberError(500, "Server error while saving settings") from exc
    return JSONResponse({"success": True, "message": "Settings saved successfully"})


@app.post("/api/validate-key", response_class=JSONResponse)
def validate_key(payload: KeyCheckPayload) -> JSONResponse:
    """Live feedback for the settings form; never echoes the key itself."""

    provider = (payload.provider or "").strip().lower()
    if provider not in PROVIDERS:
        raise DescriberError(400, f"Unknown provider '{payload.provider}'. Use one of: {', '.join(PROVIDERS)}.")
    api_key = payload.apiKey or ""
    debug_api_key(api_key, provider, "user")
    verdict = validate_api_key_with_message(api_key, provider)
    return JSONResponse(
        {
            **verdict,
            "masked": mask_api_key(api_key),
            "isMasked": is_masked_api_key(api_key),
            "length": len(api_key),
        }
    )


@app.post("/api/upload", response_class=JSONResponse)
def upload_image(request: Request, file: Optional[UploadFile] = File(default=None)) -> JSONResponse:
    """Store an uploaded image and return a URL that /api/analyze-image accepts."""

    if file is None:
        raise UploadError("No file uploaded")
    config = get_config()
    # One byte past the limit is enough for store_upload to reject it.
    limit_bytes = config.max_upload_mb * 1024 * 1024
    try:
        image_bytes = file.file.read(limit_bytes + 1)
    except OSError as exc:
        raise UploadError(f"Failed to read uploaded image: {exc}") from exc
    stored = store_upload(image_bytes, file.filename, file.content_type, config.uploads_dir, config.max_upload_mb)
    base_url = config.public_base_url or str(request.base_url)
    return JSONResponse(
        {
            "success": True,
            "url": build_upload_url(base_url, stored["stored_name"]),
            "metadata": stored["metadata"],
        }
    )


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting AI Image Describer on port %s", os.getenv("PORT", "8000"))
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
