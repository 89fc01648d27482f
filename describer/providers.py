"""Provider adapters: turn a prompt plus image into one upstream vision request."""
from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import requests
from openai import APIConnectionError, APIStatusError, OpenAI

from .config import (
    GEMINI_GENERATION_CONFIG,
    GEMINI_IMAGE_MIME_TYPE,
    GEMINI_SAFETY_CATEGORIES,
    GEMINI_SAFETY_THRESHOLD,
    DescriberConfig,
)
from .errors import DescriberError

logger = logging.getLogger("describer.app")


def build_openai_client(api_base: str | None, api_key: str, timeout: float | None = None) -> OpenAI:
    """Create an OpenAI client for one request; keys are per caller and never kept."""

    return OpenAI(api_key=api_key, base_url=api_base or None, timeout=timeout, max_retries=0)


def measure_elapsed_ms(start: float) -> float:
    """Return milliseconds between now and the provided timestamp."""

    return round((time.perf_counter() - start) * 1000, 2)


class OpenAIVisionAdapter:
    """Chat-completions request with the prompt and an image reference."""

    provider = "openai"

    def __init__(
        self,
        config: DescriberConfig,
        client_factory: Callable[..., Any] = build_openai_client,
    ) -> None:
        self.config = config
        self.client_factory = client_factory

    def build_messages(self, prompt: str, image_url: str) -> List[Dict[str, Any]]:
        # The image is passed by reference; data: URIs are forwarded untouched.
        return [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }
        ]

    def describe(self, prompt: str, image_url: str, api_key: str) -> str:
        client = self.client_factory(self.config.openai_base_url, api_key, self.config.http_timeout)
        logger.info(
            "Sending request to OpenAI (model=%s, max_tokens=%s)",
            self.config.openai_model,
            self.config.openai_max_tokens,
        )
        started = time.perf_counter()
        try:
            response = client.chat.completions.create(
                model=self.config.openai_model,
                messages=self.build_messages(prompt, image_url),
                max_tokens=self.config.openai_max_tokens,
            )
        except APIStatusError as exc:
            body = exc.response.text if exc.response is not None else str(exc)
            logger.error("OpenAI API error %s: %s", exc.status_code, body)
            raise DescriberError(exc.status_code, f"OpenAI API failed: {exc.status_code} - {body}") from exc
        except APIConnectionError as exc:
            logger.error("OpenAI not reachable: %s", exc)
            raise DescriberError(502, f"Network error contacting OpenAI: {exc}") from exc
        logger.info("OpenAI answered in %sms", measure_elapsed_ms(started))

        content = extract_openai_text(response)
        if content is None:
            logger.error("Unexpected OpenAI response format: %r", response)
            raise DescriberError(500, "Received unexpected response format from OpenAI")
        return content


def extract_openai_text(response: Any) -> Optional[str]:
    """Read ``choices[0].message.content``; None when any step is missing."""
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, KeyError, TypeError):
        return None
    if isinstance(content, str) and content:
        return content
    return None


@dataclass(frozen=True)
class GeminiText:
    text: str
    shape: str


@dataclass(frozen=True)
class GeminiFailure:
    message: str


@dataclass(frozen=True)
class GeminiBlocked:
    finish_reason: str = "SAFETY"


@dataclass(frozen=True)
class GeminiUnrecognized:
    summary: Dict[str, Any] = field(default_factory=dict)


GeminiReply = Union[GeminiText, GeminiFailure, GeminiBlocked, GeminiUnrecognized]


def _first_candidate(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    candidates = data.get("candidates")
    if isinstance(candidates, list) and candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return None


def _probe_error(data: Dict[str, Any]) -> Optional[GeminiReply]:
    if data.get("error") is None:
        return None
    error = data["error"]
    message = error.get("message") if isinstance(error, dict) else None
    return GeminiFailure(f"Gemini API error: {message or error}")


def _probe_safety_block(data: Dict[str, Any]) -> Optional[GeminiReply]:
    candidate = _first_candidate(data)
    if candidate is not None and candidate.get("finishReason") == "SAFETY":
        return GeminiBlocked()
    return None


def _probe_standard(data: Dict[str, Any]) -> Optional[GeminiReply]:
    candidate = _first_candidate(data)
    if candidate is None:
        return None
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    if isinstance(text, str) and text:
        return GeminiText(text, "standard")
    return None


def _probe_candidate_output(data: Dict[str, Any]) -> Optional[GeminiReply]:
    candidate = _first_candidate(data)
    if candidate is None:
        return None
    output = candidate.get("output")
    if isinstance(output, str) and output:
        return GeminiText(output, "candidate-output")
    return None


def _probe_top_level_text(data: Dict[str, Any]) -> Optional[GeminiReply]:
    text = data.get("text")
    if isinstance(text, str) and text:
        return GeminiText(text, "top-level-text")
    return None


GEMINI_REPLY_PROBES = (
    _probe_error,
    _probe_safety_block,
    _probe_standard,
    _probe_candidate_output,
    _probe_top_level_text,
)


def summarize_gemini_shape(data: Any) -> Dict[str, Any]:
    """Describe which keys a reply carried, without echoing its content."""
    if not isinstance(data, dict):
        return {
            "hasError": False,
            "hasCandidates": False,
            "candidatesLength": 0,
            "firstCandidateKeys": [],
            "responseKeys": [],
        }
    candidates = data.get("candidates")
    candidate = _first_candidate(data)
    return {
        "hasError": data.get("error") is not None,
        "hasCandidates": candidates is not None,
        "candidatesLength": len(candidates) if isinstance(candidates, list) else 0,
        "firstCandidateKeys": list(candidate.keys()) if candidate else [],
        "responseKeys": list(data.keys()),
    }


def parse_gemini_reply(data: Any) -> GeminiReply:
    """Match a generate-content reply against the known shapes, in priority order."""
    if isinstance(data, dict):
        for probe in GEMINI_REPLY_PROBES:
            reply = probe(data)
            if reply is not None:
                return reply
    return GeminiUnrecognized(summarize_gemini_shape(data))


class GeminiVisionAdapter:
    """generateContent request with inline base64 image data."""

    provider = "gemini"

    def __init__(self, config: DescriberConfig, http: Any = None) -> None:
        self.config = config
        self.http = http or requests

    def load_image_data(self, image_url: str) -> str:
        """Return the image as base64, downloading it unless it is a data: URI."""
        if image_url.startswith("data:"):
            _, sep, payload = image_url.partition(",")
            if not sep or not payload:
                raise DescriberError(500, "Failed to process image: malformed data URI")
            return payload
        try:
            response = self.http.get(image_url, timeout=self.config.http_timeout)
        except requests.RequestException as exc:
            logger.error("Error fetching image for Gemini: %s", exc)
            raise DescriberError(500, f"Failed to process image: {exc}") from exc
        if not response.ok:
            logger.error("Image download returned %s for %s", response.status_code, image_url)
            raise DescriberError(500, f"Failed to process image: Failed to fetch image: {response.status_code}")
        return base64.b64encode(response.content).decode("ascii")

    def build_request_body(self, prompt: str, image_data: str) -> Dict[str, Any]:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": GEMINI_IMAGE_MIME_TYPE, "data": image_data}},
                    ]
                }
            ],
            "generationConfig": {"maxOutputTokens": self.config.gemini_max_tokens, **GEMINI_GENERATION_CONFIG},
            "safetySettings": [
                {"category": category, "threshold": GEMINI_SAFETY_THRESHOLD} for category in GEMINI_SAFETY_CATEGORIES
            ],
        }

    def build_endpoint(self, model: str) -> str:
        return f"{self.config.gemini_base_url}/models/{model}:generateContent"

    def describe(self, prompt: str, image_url: str, api_key: str, model: str) -> str:
        image_data = self.load_image_data(image_url)
        body = self.build_request_body(prompt, image_data)
        logger.info("Sending request to Gemini (model=%s, max_tokens=%s)", model, self.config.gemini_max_tokens)
        started = time.perf_counter()
        try:
            response = self.http.post(
                self.build_endpoint(model),
                params={"key": api_key},
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.config.http_timeout,
            )
        except requests.RequestException as exc:
            logger.error("Gemini not reachable: %s", exc)
            raise DescriberError(502, f"Network error contacting Gemini: {exc}") from exc
        logger.info("Gemini answered %s in %sms", response.status_code, measure_elapsed_ms(started))

        if not response.ok:
            logger.error("Gemini API error %s: %s", response.status_code, response.text)
            raise DescriberError(
                response.status_code, f"Gemini API failed: {response.status_code} - {response.text}"
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Gemini response: %s", json.dumps(data, indent=2, ensure_ascii=False))
        return self.resolve_reply(parse_gemini_reply(data))

    def resolve_reply(self, reply: GeminiReply) -> str:
        if isinstance(reply, GeminiText):
            if reply.shape != "standard":
                logger.info("Gemini reply matched alternative shape %s", reply.shape)
            return reply.text
        if isinstance(reply, GeminiFailure):
            logger.error("Gemini API returned error: %s", reply.message)
            raise DescriberError(500, reply.message)
        if isinstance(reply, GeminiBlocked):
            logger.warning("Gemini content blocked by safety filters")
            raise DescriberError(400, "Content was blocked by safety filters. Please try a different image.")
        logger.error("Unexpected Gemini response format: %s", reply.summary)
        raise DescriberError(500, "Unexpected Gemini response format", debug=reply.summary)
