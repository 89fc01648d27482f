"""Tests for the OpenAI and Gemini adapters and Gemini reply parsing."""

import base64
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
import requests
from openai import APIConnectionError, APIStatusError

from describer.config import DescriberConfig
from describer.errors import DescriberError
from describer.providers import (
    GeminiBlocked,
    GeminiFailure,
    GeminiText,
    GeminiUnrecognized,
    GeminiVisionAdapter,
    OpenAIVisionAdapter,
    build_openai_client,
    parse_gemini_reply,
)

CONFIG = DescriberConfig(openai_model="gpt-test", openai_max_tokens=123, gemini_max_tokens=456, http_timeout=5)


def http_response(status_code=200, json_data=None, text="", content=b""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text
    response.content = content
    if isinstance(json_data, Exception):
        response.json.side_effect = json_data
    else:
        response.json.return_value = json_data
    return response


def chat_completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def openai_adapter_with(client):
    factory = MagicMock(return_value=client)
    return OpenAIVisionAdapter(CONFIG, client_factory=factory), factory


class TestOpenAIAdapter:
    def test_request_shape_and_description(self):
        client = MagicMock()
        client.chat.completions.create.return_value = chat_completion("A cat.")
        adapter, factory = openai_adapter_with(client)

        assert adapter.describe("Describe it.", "http://x/img.jpg", "sk-key") == "A cat."

        factory.assert_called_once_with(CONFIG.openai_base_url, "sk-key", 5)
        client.chat.completions.create.assert_called_once_with(
            model="gpt-test",
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "Describe it."},
                        {"type": "image_url", "image_url": {"url": "http://x/img.jpg"}},
                    ],
                }
            ],
            max_tokens=123,
        )

    def test_data_uri_is_forwarded_untouched(self):
        client = MagicMock()
        client.chat.completions.create.return_value = chat_completion("Pixels.")
        adapter, _ = openai_adapter_with(client)
        adapter.describe("p", "data:image/png;base64,AAAA", "sk-key")
        messages = client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0]["content"][1]["image_url"]["url"] == "data:image/png;base64,AAAA"

    def test_status_error_propagates_code_and_body(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        response = httpx.Response(429, text='{"error": "quota exceeded"}', request=request)
        client = MagicMock()
        client.chat.completions.create.side_effect = APIStatusError("quota", response=response, body=None)
        adapter, _ = openai_adapter_with(client)

        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "http://x/img.jpg", "sk-key")
        assert excinfo.value.status_code == 429
        assert excinfo.value.message == 'OpenAI API failed: 429 - {"error": "quota exceeded"}'

    def test_connection_error_is_network_error(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
        adapter, _ = openai_adapter_with(client)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "http://x/img.jpg", "sk-key")
        assert excinfo.value.status_code == 502
        assert excinfo.value.message.startswith("Network error")

    @pytest.mark.parametrize(
        "response",
        [SimpleNamespace(choices=[]), chat_completion(None), chat_completion(""), SimpleNamespace()],
    )
    def test_missing_content_is_unexpected_format(self, response):
        client = MagicMock()
        client.chat.completions.create.return_value = response
        adapter, _ = openai_adapter_with(client)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "http://x/img.jpg", "sk-key")
        assert excinfo.value.status_code == 500
        assert "unexpected response format" in excinfo.value.message

    def test_each_call_gets_its_own_client(self):
        first = build_openai_client(CONFIG.openai_base_url, "sk-first-000000000000000", 5)
        second = build_openai_client(CONFIG.openai_base_url, "sk-first-000000000000000", 5)
        assert first is not second
        assert first.api_key == "sk-first-000000000000000"
        assert first.max_retries == 0


class TestParseGeminiReply:
    def test_standard_shape(self):
        reply = parse_gemini_reply({"candidates": [{"content": {"parts": [{"text": "A dog."}]}}]})
        assert reply == GeminiText("A dog.", "standard")

    def test_error_field_wins(self):
        reply = parse_gemini_reply(
            {"error": {"message": "bad key"}, "candidates": [{"content": {"parts": [{"text": "x"}]}}]}
        )
        assert reply == GeminiFailure("Gemini API error: bad key")

    def test_error_without_message(self):
        assert parse_gemini_reply({"error": "boom"}) == GeminiFailure("Gemini API error: boom")

    def test_empty_error_object_is_still_an_error(self):
        reply = parse_gemini_reply({"error": {}, "candidates": [{"content": {"parts": [{"text": "Hi."}]}}]})
        assert isinstance(reply, GeminiFailure)

    def test_null_error_is_ignored(self):
        reply = parse_gemini_reply({"error": None, "text": "Bare."})
        assert reply == GeminiText("Bare.", "top-level-text")

    def test_summary_counts_present_but_empty_fields(self):
        reply = parse_gemini_reply({"candidates": [], "usageMetadata": {}})
        assert reply.summary["hasCandidates"] is True
        assert reply.summary["candidatesLength"] == 0
        assert reply.summary["hasError"] is False

    def test_safety_block_does_not_read_parts(self):
        class GuardedCandidate(dict):
            def get(self, key, default=None):
                if key in ("content", "output"):
                    raise AssertionError(f"{key} read after a safety block")
                return super().get(key, default)

        data = {"candidates": [GuardedCandidate(finishReason="SAFETY")]}
        assert isinstance(parse_gemini_reply(data), GeminiBlocked)

    def test_candidate_output_shape(self):
        assert parse_gemini_reply({"candidates": [{"output": "Alt text."}]}) == GeminiText(
            "Alt text.", "candidate-output"
        )

    def test_top_level_text_shape(self):
        assert parse_gemini_reply({"text": "Bare."}) == GeminiText("Bare.", "top-level-text")

    @pytest.mark.parametrize(
        "data",
        [
            {"candidates": [{"content": {"parts": [{"inlineData": {}}]}, "finishReason": "STOP"}]},
            {"candidates": [{"content": {"parts": "text"}}]},
            {"candidates": [{"content": {"parts": [{"text": ""}]}}]},
            {"candidates": []},
            {"text": 42},
        ],
    )
    def test_partial_shapes_are_not_accepted(self, data):
        assert isinstance(parse_gemini_reply(data), GeminiUnrecognized)

    def test_unrecognized_summary(self):
        reply = parse_gemini_reply({"candidates": [{"finishReason": "STOP", "index": 0}], "usageMetadata": {}})
        assert reply.summary == {
            "hasError": False,
            "hasCandidates": True,
            "candidatesLength": 1,
            "firstCandidateKeys": ["finishReason", "index"],
            "responseKeys": ["candidates", "usageMetadata"],
        }

    @pytest.mark.parametrize("data", [None, [], "text"])
    def test_non_object_bodies(self, data):
        reply = parse_gemini_reply(data)
        assert isinstance(reply, GeminiUnrecognized)
        assert reply.summary["responseKeys"] == []


class TestGeminiAdapter:
    def test_data_uri_skips_image_fetch(self):
        http = MagicMock()
        http.post.return_value = http_response(json_data={"candidates": [{"content": {"parts": [{"text": "Ok."}]}}]})
        adapter = GeminiVisionAdapter(CONFIG, http=http)

        assert adapter.describe("Prompt.", "data:image/png;base64,AAAA", "AIza-key", "gemini-2.5-flash") == "Ok."

        http.get.assert_not_called()
        http.post.assert_called_once()
        args, kwargs = http.post.call_args
        assert args[0] == "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"
        assert kwargs["params"] == {"key": "AIza-key"}
        assert kwargs["json"] == {
            "contents": [
                {
                    "parts": [
                        {"text": "Prompt."},
                        {"inline_data": {"mime_type": "image/jpeg", "data": "AAAA"}},
                    ]
                }
            ],
            "generationConfig": {"maxOutputTokens": 456, "temperature": 0.7, "topP": 0.8, "topK": 40},
            "safetySettings": [
                {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
                {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
                {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
                {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
            ],
        }

    def test_remote_image_is_downloaded_and_encoded(self):
        http = MagicMock()
        http.get.return_value = http_response(content=b"\xff\xd8jpeg-bytes")
        http.post.return_value = http_response(json_data={"text": "Remote."})
        adapter = GeminiVisionAdapter(CONFIG, http=http)

        assert adapter.describe("p", "https://cdn.example/img.jpg", "AIza-key", "gemini-2.5-pro") == "Remote."

        http.get.assert_called_once_with("https://cdn.example/img.jpg", timeout=5)
        inline = http.post.call_args.kwargs["json"]["contents"][0]["parts"][1]["inline_data"]
        assert inline["data"] == base64.b64encode(b"\xff\xd8jpeg-bytes").decode("ascii")

    def test_image_fetch_status_failure(self):
        http = MagicMock()
        http.get.return_value = http_response(status_code=404)
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "https://cdn.example/missing.jpg", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.status_code == 500
        assert excinfo.value.message == "Failed to process image: Failed to fetch image: 404"
        http.post.assert_not_called()

    def test_image_fetch_transport_failure(self):
        http = MagicMock()
        http.get.side_effect = requests.ConnectionError("dns failure")
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "https://nowhere.invalid/img.jpg", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.status_code == 500
        assert "dns failure" in excinfo.value.message
        http.post.assert_not_called()

    def test_malformed_data_uri(self):
        adapter = GeminiVisionAdapter(CONFIG, http=MagicMock())
        with pytest.raises(DescriberError) as excinfo:
            adapter.load_image_data("data:image/png;base64")
        assert excinfo.value.status_code == 500

    def test_upstream_status_is_propagated(self):
        http = MagicMock()
        http.post.return_value = http_response(status_code=403, text="API key not valid")
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "data:image/jpeg;base64,AAAA", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.status_code == 403
        assert excinfo.value.message == "Gemini API failed: 403 - API key not valid"

    def test_upstream_transport_failure(self):
        http = MagicMock()
        http.post.side_effect = requests.Timeout("read timed out")
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "data:image/jpeg;base64,AAAA", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.status_code == 502
        assert excinfo.value.message.startswith("Network error contacting Gemini")

    def test_safety_block_is_400(self):
        http = MagicMock()
        http.post.return_value = http_response(json_data={"candidates": [{"finishReason": "SAFETY"}]})
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "data:image/jpeg;base64,AAAA", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.status_code == 400
        assert "blocked" in excinfo.value.message

    def test_error_body_with_2xx_is_500(self):
        http = MagicMock()
        http.post.return_value = http_response(json_data={"error": {"message": "internal"}})
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "data:image/jpeg;base64,AAAA", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.status_code == 500
        assert excinfo.value.message == "Gemini API error: internal"

    def test_unrecognized_reply_carries_debug_summary(self):
        http = MagicMock()
        http.post.return_value = http_response(json_data={"promptFeedback": {}})
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "data:image/jpeg;base64,AAAA", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.status_code == 500
        assert excinfo.value.message == "Unexpected Gemini response format"
        assert excinfo.value.debug["responseKeys"] == ["promptFeedback"]

    def test_undecodable_body_is_unrecognized(self):
        http = MagicMock()
        http.post.return_value = http_response(json_data=ValueError("no json"))
        adapter = GeminiVisionAdapter(CONFIG, http=http)
        with pytest.raises(DescriberError) as excinfo:
            adapter.describe("p", "data:image/jpeg;base64,AAAA", "AIza-key", "gemini-2.5-flash")
        assert excinfo.value.debug["responseKeys"] == []
