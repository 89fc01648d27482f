"""Analysis orchestration: settings -> prompt -> provider -> response payload."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional

from .api_keys import debug_api_key, get_api_key, validate_api_key_with_message
from .config import DescriberConfig
from .errors import DescriberError
from .prompts import compose_prompt
from .providers import GeminiVisionAdapter, OpenAIVisionAdapter
from .settings_store import merge_settings

logger = logging.getLogger("describer.app")

UNSUPPORTED_ZAI_MESSAGE = "Z.AI is not supported for image analysis yet. Use 'openai' or 'gemini'."


def generate_request_id() -> str:
    """Return a short unique identifier for correlating logs."""

    return uuid.uuid4().hex[:12]


class ImageAnalyzer:
    """Entry point for one image-description request."""

    def __init__(
        self,
        config: DescriberConfig,
        openai_adapter: Optional[OpenAIVisionAdapter] = None,
        gemini_adapter: Optional[GeminiVisionAdapter] = None,
    ) -> None:
        self.config = config
        self.openai_adapter = openai_adapter or OpenAIVisionAdapter(config)
        self.gemini_adapter = gemini_adapter or GeminiVisionAdapter(config)

    def analyze(self, image_url: Optional[str], settings: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Describe the image and return ``{success, description, settings}``.

        Raises DescriberError for every failure; anything unexpected becomes a
        generic 500 whose details only reach the log.
        """
        request_id = generate_request_id()
        try:
            return self._analyze(request_id, image_url, settings)
        except DescriberError as exc:
            logger.warning("[%s] Analysis failed (%s): %s", request_id, exc.status_code, exc.message)
            raise
        except Exception as exc:
            logger.exception("[%s] Error in analyze-image: %s", request_id, exc)
            raise DescriberError(500, "Server error occurred") from exc

    def _analyze(self, request_id: str, image_url: Optional[str], settings: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not image_url:
            raise DescriberError(400, "Image URL is required")

        final_settings = merge_settings(settings)
        prompt = compose_prompt(
            str(final_settings.get("language")),
            str(final_settings.get("detailLevel")),
            str(final_settings.get("outputLength")),
            str(final_settings.get("outputStyle")),
        )
        model = final_settings.get("model")
        logger.info("[%s] Using model: %s", request_id, model)
        logger.debug("[%s] Generated prompt: %s", request_id, prompt)

        if model == "openai":
            api_key = self.resolve_api_key("openai", final_settings)
            description = self.openai_adapter.describe(prompt, image_url, api_key)
        elif model == "gemini":
            api_key = self.resolve_api_key("gemini", final_settings)
            description = self.gemini_adapter.describe(
                prompt, image_url, api_key, str(final_settings.get("geminiModel"))
            )
        elif model == "zai":
            raise DescriberError(400, UNSUPPORTED_ZAI_MESSAGE)
        else:
            raise DescriberError(400, f"Unsupported model '{model}'. Use 'openai' or 'gemini'.")

        logger.info("[%s] Description received (%d chars)", request_id, len(description))
        return {"success": True, "description": description, "settings": final_settings}

    def resolve_api_key(self, provider: str, settings: Dict[str, Any]) -> str:
        """Return the usable key for ``provider`` or raise a 401 with guidance."""
        api_keys = settings.get("apiKeys")
        user_key = api_keys.get(provider) if isinstance(api_keys, dict) else None
        env_key = self.config.default_key_for(provider)
        debug_api_key(user_key, provider, "user")
        debug_api_key(env_key, provider, "env")

        api_key = get_api_key(user_key, env_key, provider)
        if api_key:
            return api_key
        # Report on the key the user typed when there is one; it is what they can fix.
        candidate = user_key if isinstance(user_key, str) and user_key.strip() else env_key
        verdict = validate_api_key_with_message(candidate, provider)
        raise DescriberError(401, verdict.get("message") or f"{provider.upper()} API key is required")
