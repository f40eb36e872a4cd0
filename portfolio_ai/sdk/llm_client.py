"""
Guarded client for the remote model provider.

Wraps the OpenAI-compatible chat completions API with a bounded timeout,
bounded linear-backoff retries for transient failures, and strict response
validation. Failures are loud: nothing is returned unless the provider
produced text and usage counts.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import openai
from openai import AsyncOpenAI

from ..config.loader import ApiConfig
from ..core.logging import get_logger
from ..core.token_counter import TokenUsage

logger = get_logger(__name__)

UPSTREAM_USER_MESSAGE = (
    "The assistant is temporarily unavailable. Please try again in a moment."
)


class UpstreamError(Exception):
    """Raised when the model provider fails or rejects a request.

    The status code and provider detail are kept for logs and audit; end
    users only ever see `user_message`.
    """

    user_message = UPSTREAM_USER_MESSAGE

    def __init__(self, message: str, status_code: Optional[int] = None,
                 detail: Optional[str] = None, attempts: int = 1):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail
        self.attempts = attempts


class MalformedResponseError(UpstreamError):
    """Raised when the provider answered but the completion is unusable."""


@dataclass(frozen=True)
class Completion:
    """Validated model output."""
    text: str
    usage: TokenUsage
    model: str
    request_id: Optional[str] = None
    attempts: int = 1


def _is_retryable(exc: Exception) -> bool:
    # Timeouts are a subclass of APIConnectionError
    if isinstance(exc, openai.APIConnectionError):
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code >= 500
    return False


class ModelClient:
    """Async chat-completion client with retry and validation."""

    def __init__(self, config: Optional[ApiConfig] = None, api_key: Optional[str] = None,
                 client: Optional[Any] = None):
        """Initialize the client.

        Args:
            config: Provider settings (defaults used when omitted)
            api_key: Provider key; falls back to the SDK's own environment lookup
            client: Pre-built AsyncOpenAI-compatible client, mainly for tests
        """
        self.config = config or ApiConfig()
        if client is None:
            client = AsyncOpenAI(
                api_key=api_key or self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                # Retries are handled here so 4xx responses are never repeated
                max_retries=0,
            )
        self.client = client

    async def aclose(self) -> None:
        """Close the underlying HTTP client. Call from the loop that used it."""
        await self.client.close()

    async def complete(self, model: str, system_prompt: str, user_prompt: str) -> Completion:
        """Create a chat completion.

        Transport errors and 5xx responses are retried up to `max_retries`
        times, sleeping `attempt * retry_backoff_seconds` between attempts.
        4xx responses and malformed completions are terminal.

        Args:
            model: Provider model identifier
            system_prompt: Compliance rules and portfolio snapshot
            user_prompt: The user's question and context

        Returns:
            Validated Completion

        Raises:
            ValueError: If model or user prompt is empty
            UpstreamError: If the provider call fails
            MalformedResponseError: If the completion lacks text or usage
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not user_prompt or not user_prompt.strip():
            raise ValueError("user_prompt is required and cannot be empty")

        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        max_attempts = self.config.max_retries + 1
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self.client.chat.completions.create(
                    model=model,
                    messages=messages,
                    max_tokens=self.config.max_tokens,
                    temperature=self.config.temperature,
                )
                break
            except openai.OpenAIError as exc:
                if not _is_retryable(exc) or attempt >= max_attempts:
                    raise self._upstream_error(exc, attempt) from exc

                delay = attempt * self.config.retry_backoff_seconds
                logger.warning(
                    "model_call_retry",
                    model=model,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay_seconds=delay,
                    error_type=type(exc).__name__,
                    status_code=getattr(exc, "status_code", None),
                )
                await asyncio.sleep(delay)

        return self._parse(response, model, attempt)

    @staticmethod
    def _upstream_error(exc: Exception, attempts: int) -> UpstreamError:
        status_code = getattr(exc, "status_code", None)
        detail = str(exc)
        logger.error(
            "model_call_failed",
            error_type=type(exc).__name__,
            status_code=status_code,
            detail=detail,
            attempts=attempts,
        )
        if status_code is not None:
            message = f"model provider returned HTTP {status_code}"
        else:
            message = f"model provider request failed: {type(exc).__name__}"
        return UpstreamError(message, status_code=status_code, detail=detail, attempts=attempts)

    @staticmethod
    def _parse(response: Any, model: str, attempts: int) -> Completion:
        choices = getattr(response, "choices", None)
        if not choices:
            raise MalformedResponseError("empty response from model provider", attempts=attempts)

        message = getattr(choices[0], "message", None)
        text = getattr(message, "content", None)
        if not isinstance(text, str) or not text.strip():
            raise MalformedResponseError("model provider returned no text", attempts=attempts)

        usage = getattr(response, "usage", None)
        if usage is None:
            raise MalformedResponseError("model provider response missing usage information",
                                         attempts=attempts)

        try:
            token_usage = TokenUsage(
                input_tokens=int(usage.prompt_tokens),
                output_tokens=int(usage.completion_tokens),
            )
        except (TypeError, ValueError) as exc:
            raise MalformedResponseError(f"invalid usage counts: {exc}", attempts=attempts) from exc

        return Completion(
            text=text,
            usage=token_usage,
            model=model,
            request_id=getattr(response, "id", None),
            attempts=attempts,
        )
