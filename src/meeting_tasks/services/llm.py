"""Chat-completion transport for the model provider.

Provides ChatCompletionClient, a thin async httpx wrapper around an
OpenAI-compatible ``/chat/completions`` endpoint. It performs exactly one
HTTP call per invocation and returns the raw ``httpx.Response``: status
classification, backoff and retries belong to the Extraction Engine, which
needs the status code and ``Retry-After`` header untouched.
"""

from __future__ import annotations

import httpx
import structlog

from src.meeting_tasks.core.monitoring import track_llm_call

logger = structlog.get_logger(__name__)


class ChatCompletionClient:
    """Async client for an OpenAI-compatible chat-completion API.

    Args:
        api_key: Provider API key, sent as a bearer token.
        base_url: API root, e.g. ``https://api.openai.com/v1``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        """Create a new httpx client for one call."""
        return httpx.AsyncClient(
            headers=self._headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def complete(
        self,
        messages: list[dict],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> httpx.Response:
        """POST one chat completion and return the provider's response as-is.

        Raises:
            httpx.TransportError: On connection failures and timeouts.
        """
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        async with track_llm_call(model) as tracker:
            async with self._client() as client:
                response = await client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                )
            tracker["status"] = str(response.status_code)
            if response.is_success:
                usage = _usage(response)
                tracker["prompt_tokens"] = usage.get("prompt_tokens", 0)
                tracker["completion_tokens"] = usage.get("completion_tokens", 0)

        logger.debug(
            "llm.completion",
            model=model,
            status_code=response.status_code,
        )
        return response


def _usage(response: httpx.Response) -> dict:
    """Best-effort token usage from a successful response body."""
    try:
        body = response.json()
    except ValueError:
        return {}
    usage = body.get("usage") if isinstance(body, dict) else None
    return usage if isinstance(usage, dict) else {}
