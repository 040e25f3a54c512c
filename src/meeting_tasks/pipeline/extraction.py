"""Extraction Engine: prompt the model, classify failures, validate output.

Two nested retry loops:

- Transport (inner, default 3 attempts): 429 waits for the provider's
  ``Retry-After`` hint or ``min(2**attempt * 5s, 30s)``; 5xx and network
  failures wait ``2**attempt * 2s``. 401/403 fail at once. Any other
  non-2xx fails at once with ``ApiError``.
- Validation (outer, default 2 attempts): output that is not a JSON array
  of well-formed task objects triggers a fresh model call. The last raw
  output travels with ``InvalidSchema`` for the audit log.

Attempts are 1-based; no sleep follows the final attempt.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx
import structlog
from pydantic import TypeAdapter, ValidationError

from src.meeting_tasks.config import Settings
from src.meeting_tasks.errors import (
    ApiError,
    Forbidden,
    InvalidCredentials,
    InvalidSchema,
    RateLimited,
    ServiceError,
)
from src.meeting_tasks.meetings.schemas import ExtractedTaskCandidate
from src.meeting_tasks.pipeline.prompts import build_messages
from src.meeting_tasks.services.llm import ChatCompletionClient

logger = structlog.get_logger(__name__)

_candidates_adapter = TypeAdapter(list[ExtractedTaskCandidate])


# ── Configuration ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExtractionConfig:
    """Everything the engine needs; nothing is read from the environment later."""

    api_key: str
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 1000
    timeout: float = 30.0
    transport_attempts: int = 3
    validation_attempts: int = 2
    rate_limit_base_delay: float = 5.0
    rate_limit_max_delay: float = 30.0
    server_error_base_delay: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    @classmethod
    def from_settings(cls, settings: Settings) -> ExtractionConfig:
        return cls(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            model=settings.LLM_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
            timeout=float(settings.LLM_TIMEOUT),
            transport_attempts=settings.EXTRACTION_TRANSPORT_ATTEMPTS,
            validation_attempts=settings.EXTRACTION_VALIDATION_ATTEMPTS,
            rate_limit_base_delay=settings.RATE_LIMIT_BASE_DELAY_SECONDS,
            rate_limit_max_delay=settings.RATE_LIMIT_MAX_DELAY_SECONDS,
            server_error_base_delay=settings.SERVER_ERROR_BASE_DELAY_SECONDS,
        )


# ── Output Validation ───────────────────────────────────────────────────────


def parse_candidates(raw: str) -> list[ExtractedTaskCandidate]:
    """Validate model output as a JSON array of task candidates.

    Raises:
        ValidationError: If the text is not JSON, not an array, or any
            element lacks a required key or has a wrongly-typed value.
    """
    return _candidates_adapter.validate_json(raw)


def _message_content(response: httpx.Response) -> str | None:
    """Pull ``choices[0].message.content`` out of a 2xx response body."""
    try:
        body = response.json()
        content = body["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError):
        return None
    return content if isinstance(content, str) else None


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(seconds, 0.0)


# ── Engine ──────────────────────────────────────────────────────────────────


class ExtractionEngine:
    """Turns a transcript into validated task candidates.

    Args:
        config: Explicit engine configuration (credentials, budgets, sleep).
        client: Chat-completion transport; built from ``config`` if omitted.
    """

    def __init__(
        self,
        config: ExtractionConfig,
        client: ChatCompletionClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or ChatCompletionClient(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
        )

    @property
    def config(self) -> ExtractionConfig:
        return self._config

    async def extract(self, transcript: str) -> list[ExtractedTaskCandidate]:
        """Extract task candidates from a normalized transcript.

        Raises:
            RateLimited, InvalidCredentials, Forbidden, ServiceError, ApiError:
                Terminal transport classification.
            InvalidSchema: Output still malformed after the validation budget.
        """
        messages = build_messages(transcript)
        attempts = self._config.validation_attempts
        last_raw: str | None = None

        for attempt in range(1, attempts + 1):
            raw = await self._call_with_retries(messages)
            last_raw = raw
            try:
                candidates = parse_candidates(raw)
            except ValidationError as e:
                logger.warning(
                    "extraction.invalid_output",
                    attempt=attempt,
                    max_attempts=attempts,
                    errors=e.error_count(),
                    output_length=len(raw),
                )
                continue

            logger.info(
                "extraction.completed",
                attempt=attempt,
                tasks=len(candidates),
            )
            return candidates

        raise InvalidSchema(raw_output=last_raw, attempts=attempts)

    async def _call_with_retries(self, messages: list[dict]) -> str:
        """Run the transport loop and return the model's text output.

        A 2xx body without a text message is returned as an empty string so
        the validation loop treats it as invalid output.
        """
        cfg = self._config
        attempts = cfg.transport_attempts

        for attempt in range(1, attempts + 1):
            final = attempt == attempts
            logger.debug("extraction.attempt", attempt=attempt, max_attempts=attempts)

            try:
                response = await self._client.complete(
                    messages,
                    model=cfg.model,
                    temperature=cfg.temperature,
                    max_tokens=cfg.max_tokens,
                )
            except httpx.TransportError as e:
                logger.warning(
                    "extraction.transport_error",
                    attempt=attempt,
                    error=type(e).__name__,
                )
                if final:
                    raise ServiceError(f"Provider unreachable: {type(e).__name__}") from e
                await cfg.sleep(2**attempt * cfg.server_error_base_delay)
                continue

            status = response.status_code

            if response.is_success:
                return _message_content(response) or ""

            if status == 429:
                hinted = _retry_after_seconds(response)
                delay = (
                    hinted
                    if hinted is not None
                    else min(2**attempt * cfg.rate_limit_base_delay, cfg.rate_limit_max_delay)
                )
                logger.warning(
                    "extraction.rate_limited",
                    attempt=attempt,
                    max_attempts=attempts,
                    delay_seconds=delay,
                )
                if final:
                    raise RateLimited(f"Rate limited after {attempts} attempts")
                await cfg.sleep(delay)
                continue

            if status == 401:
                logger.error("extraction.invalid_credentials", status_code=status)
                raise InvalidCredentials("Provider rejected the API key")

            if status == 403:
                logger.error("extraction.forbidden", status_code=status)
                raise Forbidden("Provider refused the request")

            if status >= 500:
                logger.warning(
                    "extraction.server_error",
                    attempt=attempt,
                    max_attempts=attempts,
                    status_code=status,
                )
                if final:
                    raise ServiceError(f"Provider returned HTTP {status} after {attempts} attempts")
                await cfg.sleep(2**attempt * cfg.server_error_base_delay)
                continue

            logger.error("extraction.api_error", status_code=status)
            raise ApiError(status)

        # Only reachable with a zero transport budget.
        raise ServiceError("No transport attempts configured")
