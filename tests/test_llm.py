"""Tests for infinite_chronicles.llm (HttpLLM)."""

import pytest
import httpx
from unittest.mock import AsyncMock, MagicMock, patch

from infinite_chronicles.llm import MAX_OUTPUT_TOKENS, HttpLLM, LLMError

SCHEMA = {"type": "OBJECT", "properties": {"title": {"type": "STRING"}}}


def _mock_response(body, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


def _gemini_body(*texts: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


# ---------------------------------------------------------------------------
# HttpLLM, Gemini format
# ---------------------------------------------------------------------------

class TestHttpLLMGemini:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="http://localhost:8080/", api_key="secret", model="m1")

    async def test_happy_path(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body('{"title": "T"}')))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await llm("turn", "Continue.", SCHEMA)
        assert result == '{"title": "T"}'

    async def test_joins_parts(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("Once ", "upon")))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await llm("summary", "Summarise.") == "Once upon"

    async def test_posts_to_correct_url(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("turn", "prompt")
        url = mock_post.call_args[0][0]
        assert url == "http://localhost:8080/v1beta/models/m1:generateContent"

    async def test_api_key_header(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("turn", "prompt")
        headers = mock_post.call_args.kwargs["headers"]
        assert headers["x-goog-api-key"] == "secret"
        assert "Authorization" not in headers

    async def test_schema_requests_json(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("{}")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("turn", "my prompt", SCHEMA)
        body = mock_post.call_args.kwargs["json"]
        assert body["contents"][0]["parts"][0]["text"] == "my prompt"
        config = body["generationConfig"]
        assert config["responseMimeType"] == "application/json"
        assert config["responseSchema"] == SCHEMA
        assert config["maxOutputTokens"] == MAX_OUTPUT_TOKENS

    async def test_no_schema_requests_text(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("text")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("summary", "prompt")
        config = mock_post.call_args.kwargs["json"]["generationConfig"]
        assert config["responseMimeType"] == "text/plain"
        assert "responseSchema" not in config

    async def test_missing_candidates_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"promptFeedback": {}}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError):
                await llm("turn", "prompt")

    async def test_empty_parts_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"candidates": [{"content": {}}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="no content"):
                await llm("turn", "prompt")


# ---------------------------------------------------------------------------
# HttpLLM, OpenAI-compatible format
# ---------------------------------------------------------------------------

class TestHttpLLMOpenAI:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(
            provider_url="http://localhost:1234",
            api_key="sk-test",
            provider_format="openai",
            model="local-model",
        )

    async def test_happy_path(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "The gate creaks."}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            assert await llm("turn", "prompt") == "The gate creaks."

    async def test_request_shape(self, llm: HttpLLM) -> None:
        body = {"choices": [{"message": {"content": "{}"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("turn", "my prompt", SCHEMA)
        assert mock_post.call_args[0][0] == "http://localhost:1234/v1/chat/completions"
        sent = mock_post.call_args.kwargs["json"]
        assert sent["model"] == "local-model"
        assert sent["messages"] == [{"role": "user", "content": "my prompt"}]
        assert sent["response_format"] == {"type": "json_object"}
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-test"

    async def test_malformed_response_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"choices": []}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError):
                await llm("turn", "prompt")


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------

class TestHttpLLMErrors:
    @pytest.fixture
    def llm(self) -> HttpLLM:
        return HttpLLM(provider_url="http://localhost:8080")

    async def test_no_auth_header_without_key(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(_gemini_body("ok")))
        with patch("httpx.AsyncClient.post", mock_post):
            await llm("turn", "prompt")
        headers = mock_post.call_args.kwargs["headers"]
        assert "x-goog-api-key" not in headers
        assert "Authorization" not in headers

    async def test_http_error_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="503"):
                await llm("turn", "prompt")

    async def test_connect_error_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="Cannot connect"):
                await llm("turn", "prompt")

    async def test_timeout_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="timed out"):
                await llm("turn", "prompt")

    async def test_non_json_body_raises(self, llm: HttpLLM) -> None:
        resp = _mock_response({})
        resp.json.side_effect = ValueError("not json")
        mock_post = AsyncMock(return_value=resp)
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError, match="non-JSON"):
                await llm("turn", "prompt")

    async def test_non_object_body_raises(self, llm: HttpLLM) -> None:
        mock_post = AsyncMock(return_value=_mock_response(["unexpected"]))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(LLMError):
                await llm("turn", "prompt")
