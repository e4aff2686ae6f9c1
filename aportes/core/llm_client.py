import base64
from typing import Any, Dict, List, Optional, Union

import httpx
from httpx import HTTPStatusError, TimeoutException

from aportes.core.config import settings
from aportes.core.exceptions import APIClientError, APITimeoutError
from aportes.utils.logging import get_logger
from aportes.utils.retry import is_retryable_error, with_retry

LOGGER = get_logger(__name__)


class LLMClient:
    """Client for an OpenAI-compatible chat completions endpoint.

    Every request asks for a JSON object reply. A single HTTP attempt is made
    per try; rate limits (429), server errors (5xx), timeouts and dropped
    connections are raised as retryable errors and retried with exponential
    backoff, while other client errors fail fast.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[int] = None,
        image_detail: Optional[str] = None,
        max_retries: Optional[int] = None,
    ):
        """Initialize the client, defaulting every option to the LLM settings.

        Args:
            api_key: Bearer token for the endpoint
            api_url: Full chat completions URL
            model: Model name
            temperature: Sampling temperature
            max_tokens: Reply token limit
            timeout: Request timeout in seconds
            image_detail: Vision detail level sent with page images
            max_retries: Retries for transient failures
        """
        self.api_key = api_key if api_key is not None else settings.llm.api_key
        self.api_url = api_url or settings.llm.api_url
        self.model = model or settings.llm.model
        self.temperature = temperature if temperature is not None else settings.llm.temperature
        self.max_tokens = max_tokens or settings.llm.max_tokens
        self.timeout = timeout or settings.llm.timeout
        self.image_detail = image_detail or settings.llm.image_detail
        self.max_retries = max_retries if max_retries is not None else settings.retry.max_retries

        LOGGER.info(f"Initialized LLM client with model {self.model}")

    def build_messages(
        self,
        system_prompt: str,
        text: Optional[str] = None,
        image: Optional[bytes] = None,
    ) -> List[Dict[str, Any]]:
        """Build the chat messages for a text or a single-image request."""
        content: Union[str, List[Dict[str, Any]]]
        if image is not None:
            encoded = base64.b64encode(image).decode("ascii")
            content = [
                {"type": "text", "text": text or "Extract the data from this page."},
                {
                    "type": "image_url",
                    "image_url": {
                        "url": f"data:image/png;base64,{encoded}",
                        "detail": self.image_detail,
                    },
                },
            ]
        else:
            content = text or ""

        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": content},
        ]

    async def complete_json(
        self,
        system_prompt: str,
        text: Optional[str] = None,
        image: Optional[bytes] = None,
    ) -> str:
        """Send one request and return the raw reply content.

        Args:
            system_prompt: Extraction instructions
            text: Document text, or a short instruction in vision mode
            image: One PNG page image for vision mode

        Returns:
            The message content of the first choice

        Raises:
            APIClientError: On a non-retryable failure or when retries are exhausted
            APITimeoutError: When the last attempt timed out
        """
        payload = {
            "model": self.model,
            "messages": self.build_messages(system_prompt, text=text, image=image),
            "response_format": {"type": "json_object"},
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }

        response = await with_retry(
            lambda: self._post(payload),
            max_retries=self.max_retries,
            initial_delay=settings.retry.initial_delay,
            max_delay=settings.retry.max_delay,
            backoff_factor=settings.retry.backoff_factor,
            should_retry=is_retryable_error,
            operation_name="llm_completion",
        )

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error("Unexpected LLM response format", extra={"keys": list(response)})
            raise APIClientError("Invalid response format from LLM endpoint")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from LLM endpoint")
        return content

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        LOGGER.debug(
            f"Calling LLM API: {self.api_url}",
            extra={"model": self.model, "timeout": self.timeout}
        )

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.api_url, headers=headers, json=payload)
                response.raise_for_status()
                return response.json()

            except HTTPStatusError as e:
                status_code = e.response.status_code
                error_body = e.response.text

                LOGGER.warning(
                    "API HTTP error",
                    extra={
                        "url": self.api_url,
                        "status_code": status_code,
                        "error_body": error_body[:500]
                    }
                )

                retryable = status_code == 429 or status_code >= 500
                raise APIClientError(
                    f"API HTTP Error {status_code}: {error_body[:200]}",
                    original_error=e,
                    status_code=status_code,
                    retryable=retryable,
                ) from e

            except TimeoutException as e:
                LOGGER.warning("API Timeout", extra={"url": self.api_url})
                raise APITimeoutError(f"API Timeout calling {self.api_url}", original_error=e) from e

            except httpx.TransportError as e:
                LOGGER.warning("API connection error", extra={"url": self.api_url, "error": str(e)})
                raise APIClientError(
                    f"API connection error calling {self.api_url}: {e}",
                    original_error=e,
                    retryable=True,
                ) from e

            except ValueError as e:
                raise APIClientError(f"API returned a non-JSON body: {e}", original_error=e) from e
