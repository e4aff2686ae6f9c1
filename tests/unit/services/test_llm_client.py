"""Tests for the chat completions client."""

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from aportes.core.exceptions import APIClientError, APITimeoutError
from aportes.core.llm_client import LLMClient

API_URL = "https://llm.test/v1/chat/completions"


def _response(status_code=200, body=None, text=""):
    response = MagicMock(status_code=status_code, text=text)
    response.json.return_value = body if body is not None else {}
    if status_code >= 400:
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            f"HTTP {status_code}", request=MagicMock(), response=response
        )
    return response


def _completion(content):
    return _response(body={"choices": [{"message": {"content": content}}]})


@pytest.fixture
def client():
    return LLMClient(api_key="test-key", api_url=API_URL, model="test-model", max_retries=2)


@pytest.fixture
def mock_sleep():
    with patch("aportes.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.mark.asyncio
async def test_complete_json_success(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _completion('{"kind": "roster"}')

        content = await client.complete_json("system", text="document text")

    assert content == '{"kind": "roster"}'
    mock_post.assert_awaited_once()
    payload = mock_post.await_args.kwargs["json"]
    assert payload["model"] == "test-model"
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["messages"][1]["content"] == "document text"
    assert mock_post.await_args.kwargs["headers"]["Authorization"] == "Bearer test-key"


def test_build_messages_with_image(client):
    messages = client.build_messages("system", text="page 1", image=b"png")

    parts = messages[1]["content"]
    assert parts[0] == {"type": "text", "text": "page 1"}
    assert parts[1]["image_url"]["url"] == "data:image/png;base64," + base64.b64encode(b"png").decode()
    assert parts[1]["image_url"]["detail"] == client.image_detail


@pytest.mark.asyncio
async def test_rate_limit_is_retried(client, mock_sleep):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = [_response(429, text="slow down"), _completion("{}")]

        content = await client.complete_json("system", text="x")

    assert content == "{}"
    assert mock_post.await_count == 2
    mock_sleep.assert_awaited_once()


@pytest.mark.asyncio
async def test_server_errors_exhaust_retries(client, mock_sleep):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _response(503, text="unavailable")

        with pytest.raises(APIClientError) as exc_info:
            await client.complete_json("system", text="x")

    assert exc_info.value.status_code == 503
    assert exc_info.value.retryable
    assert mock_post.await_count == 3


@pytest.mark.asyncio
async def test_client_error_fails_fast(client, mock_sleep):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _response(400, text="bad request")

        with pytest.raises(APIClientError) as exc_info:
            await client.complete_json("system", text="x")

    assert exc_info.value.status_code == 400
    assert mock_post.await_count == 1
    mock_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_timeout(client, mock_sleep):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = httpx.ReadTimeout("read timed out")

        with pytest.raises(APITimeoutError):
            await client.complete_json("system", text="x")

    assert mock_post.await_count == 3


@pytest.mark.asyncio
async def test_missing_choices(client):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.return_value = _response(body={"error": "nope"})

        with pytest.raises(APIClientError, match="Invalid response format"):
            await client.complete_json("system", text="x")


@pytest.mark.asyncio
async def test_connection_error_is_wrapped_and_retried(client, mock_sleep):
    with patch("httpx.AsyncClient.post", new_callable=AsyncMock) as mock_post:
        mock_post.side_effect = httpx.ConnectError("connection refused")

        with pytest.raises(APIClientError) as exc_info:
            await client.complete_json("system", text="x")

    assert not isinstance(exc_info.value, APITimeoutError)
    assert exc_info.value.retryable
    assert isinstance(exc_info.value.original_error, httpx.ConnectError)
    assert mock_post.await_count == 3
