"""
Client for the Perplexity chat completions API.

Perplexity exposes an OpenAI-compatible `/chat/completions` endpoint; this
client posts a message list and returns the first choice's text.
"""

import logging
from typing import Any

import httpx

from ..protocol.errors import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.perplexity.ai"


class PerplexityClient:
    """
    Async HTTP client for Perplexity.

    Usage:
        client = PerplexityClient(api_key="pplx-...")
        text = await client.chat("sonar-pro", [{"role": "user", "content": "Hi"}])
        await client.aclose()
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Perplexity API key
            base_url: API base URL
            timeout: Request timeout in seconds
            http_client: Preconfigured client (tests inject a mock transport)
        """
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
        )
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    async def chat(self, model: str, messages: list[dict[str, str]]) -> str | None:
        """
        Run one chat completion.

        Returns:
            The generated text, or None if the upstream returned no content

        Raises:
            UpstreamError: On transport failure, non-2xx status or a
                malformed response body
        """
        payload: dict[str, Any] = {"model": model, "messages": messages}

        try:
            response = await self._client.post(
                "/chat/completions", json=payload, headers=self._headers
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:200]
            raise UpstreamError(
                f"Perplexity API returned {e.response.status_code}: {body}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(
                f"Perplexity API request failed: {str(e) or type(e).__name__}"
            ) from e

        try:
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamError("Malformed response from Perplexity API") from e

    async def aclose(self) -> None:
        await self._client.aclose()
