"""Validation, masking and selection of provider API keys.

Keys arrive from two places: the per-device settings (typed by a user) and the
service configuration. A settings form that renders keys masked may echo the
masked value back, so any key containing ``*`` is never usable.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("describer.app")

MASK_CHAR = "*"

# provider -> (required prefix, minimum length)
KEY_RULES: Dict[str, tuple[str, int]] = {
    "openai": ("sk-", 20),
    "gemini": ("AIza", 20),
    "zai": ("", 10),
}

FORMAT_MESSAGES: Dict[str, str] = {
    "openai": 'OpenAI API key must start with "sk-" and be at least 20 characters long',
    "gemini": 'Google Gemini API key must start with "AIza" and be at least 20 characters long',
    "zai": "Z.AI API key must be at least 10 characters long",
}

API_KEY_ERRORS = {
    "MISSING": "API key is required",
    "MASKED": "API key appears to be masked with asterisks. Please provide the actual key.",
    "INVALID_FORMAT": "API key format is invalid",
}


def sanitize_api_key(api_key: Any) -> str:
    if not api_key or not isinstance(api_key, str):
        return ""
    return api_key.strip()


def is_masked_api_key(api_key: Any) -> bool:
    return isinstance(api_key, str) and MASK_CHAR in api_key


def is_valid_api_key(api_key: Any, provider: str) -> bool:
    """Return True when ``api_key`` looks like a real, unmasked key for ``provider``."""
    key = sanitize_api_key(api_key)
    if not key or is_masked_api_key(key):
        return False
    rule = KEY_RULES.get(provider)
    if rule is None:
        return False
    prefix, min_length = rule
    return key.startswith(prefix) and len(key) >= min_length


def mask_api_key(api_key: Any) -> str:
    """Show the first 8 and last 4 characters; keys shorter than 12 are hidden entirely."""
    if not isinstance(api_key, str) or len(api_key) < 12:
        return ""
    hidden = MASK_CHAR * max(4, len(api_key) - 12)
    return f"{api_key[:8]}{hidden}{api_key[-4:]}"


def get_api_key(user_key: Optional[str], env_key: Optional[str], provider: str) -> Optional[str]:
    """Pick the user's key when valid, else the configured default, else None."""
    if is_valid_api_key(user_key, provider):
        return sanitize_api_key(user_key)
    if is_valid_api_key(env_key, provider):
        return sanitize_api_key(env_key)
    return None


def validate_api_key_with_message(api_key: Any, provider: str) -> Dict[str, Any]:
    """Like :func:`is_valid_api_key`, with guidance suitable for end users."""
    key = sanitize_api_key(api_key)
    if not key:
        return {"valid": False, "message": f"{provider.upper()} API key is required"}
    if is_masked_api_key(key):
        return {
            "valid": False,
            "message": f"{provider.upper()} API key appears to be masked. Please provide the actual key.",
        }
    if not is_valid_api_key(key, provider):
        return {"valid": False, "message": FORMAT_MESSAGES.get(provider, API_KEY_ERRORS["INVALID_FORMAT"])}
    return {"valid": True}


def debug_api_key(api_key: Any, provider: str, source: str) -> None:
    """Log what is known about a key without ever logging the key itself."""
    if not api_key or not isinstance(api_key, str):
        logger.debug("[API-KEY-DEBUG] %s (%s): EMPTY", provider, source)
        return
    logger.debug(
        "[API-KEY-DEBUG] %s (%s): %s | Valid: %s | Masked: %s | Length: %d",
        provider,
        source,
        mask_api_key(api_key),
        is_valid_api_key(api_key, provider),
        is_masked_api_key(api_key),
        len(api_key),
    )
