"""LLM client wrapper for Anthropic completions.

Plain requests return text; requests naming a response model use the
structured-outputs beta so the backend output matches its JSON schema.
Every request is routed through the retry policy; SDK exceptions are
translated into the transient/fatal taxonomy before the retry decision.
"""

from collections.abc import AsyncIterator
from typing import Protocol

import httpx
import structlog
from anthropic import APIConnectionError, APIError, APIStatusError, AsyncAnthropic
from pydantic import BaseModel, Field, ValidationError

from src.config import Settings, get_settings
from src.services.errors import (
    FatalProviderError,
    LLMClientError,
    TransientProviderError,
)
from src.services.retry import RetryPolicy, with_retry

logger = structlog.get_logger()

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 529})

STRUCTURED_OUTPUTS_BETA = "structured-outputs-2025-11-13"


class TokenUsage(BaseModel):
    """Token accounting for one or more backend calls."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class CostEstimate(BaseModel):
    """Estimated USD cost of a token usage."""

    input_cost: float = 0.0
    output_cost: float = 0.0
    total_cost: float = 0.0


def calculate_cost(
    usage: TokenUsage,
    input_cost_per_1m: float,
    output_cost_per_1m: float,
) -> CostEstimate:
    """Estimate cost from token counts and per-million pricing."""
    input_cost = usage.prompt_tokens / 1_000_000 * input_cost_per_1m
    output_cost = usage.completion_tokens / 1_000_000 * output_cost_per_1m
    return CostEstimate(
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=input_cost + output_cost,
    )


class CompletionRequest(BaseModel):
    """One request to the generative backend."""

    system_prompt: str
    user_prompt: str
    temperature: float = Field(default=0.3, ge=0.0, le=1.0)
    max_output_tokens: int = Field(default=1024, ge=1)
    response_model: type[BaseModel] | None = Field(
        default=None,
        description="Constrain the response to this model's JSON schema",
    )


class CompletionResponse(BaseModel):
    """Text and token usage returned by the backend."""

    text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""
    parsed: BaseModel | None = Field(
        default=None,
        description="Schema-validated output when a response_model was requested",
    )


class CompletionChunk(BaseModel):
    """One element of a streamed completion.

    Text chunks carry a delta; the final chunk carries usage only.
    """

    delta: str | None = None
    usage: TokenUsage | None = None


class CompletionClient(Protocol):
    """Anything that can answer a CompletionRequest."""

    model: str

    async def complete(self, request: CompletionRequest) -> CompletionResponse: ...


def _retry_after_seconds(response: httpx.Response | None) -> float | None:
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def map_provider_error(error: Exception) -> LLMClientError:
    """Translate an SDK or network exception into the provider taxonomy.

    Args:
        error: Exception raised while talking to the backend

    Returns:
        TransientProviderError for rate limits, 5xx and network failures,
        FatalProviderError for everything else
    """
    if isinstance(error, APIStatusError):
        status = error.status_code
        if status in RETRYABLE_STATUS_CODES or status >= 500:
            return TransientProviderError(
                f"Anthropic API error ({status}): {error.message}",
                status_code=status,
                retry_after=_retry_after_seconds(error.response),
            )
        return FatalProviderError(
            f"Anthropic API error ({status}): {error.message}",
            status_code=status,
        )
    if isinstance(error, (APIConnectionError, ConnectionError, TimeoutError)):
        return TransientProviderError(f"Network error: {error}")
    return FatalProviderError(f"Completion failed: {error}")


class LLMClient:
    """Anthropic client wrapper with retry-hardened completion calls.

    Constructed explicitly and passed to every pipeline component, so
    tests can substitute a fake implementing CompletionClient.
    """

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize LLM client.

        Args:
            client: Optional Anthropic client for dependency injection.
                   If not provided, creates one from settings.
            settings: Application settings (cached settings if None)
            retry_policy: Retry policy (derived from settings if None)
        """
        settings = settings or get_settings()
        self.model = settings.anthropic_model
        self._retry_policy = retry_policy or RetryPolicy.from_settings(settings)

        if client is not None:
            self._client = client
        elif settings.anthropic_api_key:
            self._client = AsyncAnthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.llm_timeout_seconds,
                # Retries are owned by the retry policy
                max_retries=0,
            )
        else:
            # Allow initialization without API key for testing
            self._client = None

    def _require_client(self) -> AsyncAnthropic:
        if self._client is None:
            raise FatalProviderError(
                "Anthropic client not initialized. "
                "Set ANTHROPIC_API_KEY environment variable."
            )
        return self._client

    def _message_kwargs(self, request: CompletionRequest) -> dict:
        return {
            "model": self.model,
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }

    async def _create(self, client: AsyncAnthropic, request: CompletionRequest):
        kwargs = self._message_kwargs(request)
        try:
            if request.response_model is None:
                return await client.messages.create(**kwargs)
            return await client.beta.messages.parse(
                **kwargs,
                betas=[STRUCTURED_OUTPUTS_BETA],
                output_format=request.response_model,
            )
        except APIError as e:
            raise map_provider_error(e) from e
        except ValidationError as e:
            raise LLMClientError(f"Structured output failed validation: {e}") from e

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Send one completion request, retrying transient failures.

        When the request names a response_model, the backend is asked for
        output constrained to that model's JSON schema and the validated
        instance is returned alongside the raw text.

        Args:
            request: Prompts, sampling parameters and optional response model

        Returns:
            CompletionResponse with the generated text and token usage

        Raises:
            TransientProviderError: If retries are exhausted
            FatalProviderError: On non-retryable backend errors
            LLMClientError: If the backend returned no text
        """
        client = self._require_client()
        message = await with_retry(
            lambda: self._create(client, request), self._retry_policy
        )

        text = "".join(
            block.text for block in message.content if block.type == "text"
        )
        if not text.strip():
            raise LLMClientError("No response from Anthropic")

        parsed = None
        if request.response_model is not None:
            parsed = message.parsed_output

        usage = TokenUsage(
            prompt_tokens=message.usage.input_tokens,
            completion_tokens=message.usage.output_tokens,
            total_tokens=message.usage.input_tokens + message.usage.output_tokens,
        )
        return CompletionResponse(
            text=text, usage=usage, model=message.model, parsed=parsed
        )

    async def stream(self, request: CompletionRequest) -> AsyncIterator[CompletionChunk]:
        """Stream a completion as text deltas followed by one usage chunk.

        Opening the stream is retried like complete(); failures after the
        first delta propagate without retry.

        Args:
            request: Prompts and sampling parameters

        Yields:
            CompletionChunk with delta text, then a final chunk with usage
        """
        client = self._require_client()
        kwargs = self._message_kwargs(request)

        async def open_stream():
            try:
                return await client.messages.create(**kwargs, stream=True)
            except APIError as e:
                raise map_provider_error(e) from e

        events = await with_retry(open_stream, self._retry_policy)

        prompt_tokens = 0
        completion_tokens = 0
        try:
            async for event in events:
                if event.type == "message_start":
                    prompt_tokens = event.message.usage.input_tokens
                elif event.type == "content_block_delta":
                    if event.delta.type == "text_delta":
                        yield CompletionChunk(delta=event.delta.text)
                elif event.type == "message_delta":
                    completion_tokens = event.usage.output_tokens
        except APIError as e:
            raise map_provider_error(e) from e
        finally:
            await events.close()

        yield CompletionChunk(
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            )
        )
