"""Anthropic API client with streaming, rate limiting and error handling."""

import asyncio
import json
import os
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import tiktoken
from anthropic import APIError, AsyncAnthropic
from anthropic.types import Message
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from claimdesk.errors import ModelServiceError
from claimdesk.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMResponse,
    LLMUsage,
    ResponseComplete,
    StreamChunk,
    TextBlock,
    TextChunk,
    ToolResultBlock,
    ToolUseBlock,
)
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 4096
    temperature: float = 0.1
    max_retries: int = 3
    retry_delay: float = 1.0
    timeout: float = 60.0

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    # Token limits for truncation
    max_conversation_tokens: int = 200_000
    token_headroom: int = 4096  # Reserve tokens for response


class ModelClient(Protocol):
    """Streaming model interface consumed by the orchestrator."""

    def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream one model step: text chunks, then the complete response."""
        ...


class AnthropicRateLimiter:
    """Moving-window rate limiter for requests and tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the rate limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        cost = max(1, min(estimated_tokens, self.token_limit.amount))
        if not self.limiter.hit(self.token_limit, token_identifier, cost=cost):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


def _load_tokenizer() -> tiktoken.Encoding | None:
    try:
        # Close approximation for Claude
        return tiktoken.get_encoding("cl100k_base")
    except Exception as e:
        logger.warning(f"Tokenizer unavailable, falling back to character estimate: {e}")
        return None


class AnthropicClient:
    """Low-level streaming Anthropic client with rate limiting and retries."""

    def __init__(
        self,
        api_key: str | None = None,
        config: AnthropicConfig | None = None,
        tokenizer: tiktoken.Encoding | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
            tokenizer: Token encoder used for estimates (loaded lazily if omitted)
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.config = config or AnthropicConfig()
        # Retries are handled here so a half-streamed step is never replayed
        self.client = AsyncAnthropic(api_key=anthropic_api_key, max_retries=0, timeout=self.config.timeout)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)
        self.tokenizer = tokenizer if tokenizer is not None else _load_tokenizer()

    async def stream_message(
        self,
        messages: list[LLMMessage],
        system_prompt: str,
        tools: list[AnthropicTool] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a single model step.

        Yields text chunks as they arrive and finishes with a
        ``ResponseComplete`` holding every content block of the step.

        Raises:
            ModelServiceError: If the model service fails
        """
        truncated_messages = self.truncate_conversation(messages, system_prompt, tools)

        estimated_tokens = self._estimate_tokens(truncated_messages, system_prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "system": system_prompt,
            "messages": [msg.model_dump() for msg in truncated_messages],
        }
        if tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]

        logger.debug(
            f"Streaming message with {len(truncated_messages)} messages, {len(tools) if tools else 0} tools, "
            f"model: {self.config.model}"
        )

        for attempt in range(self.config.max_retries):
            emitted = False
            try:
                async with self.client.messages.stream(**request_params) as stream:
                    async for text in stream.text_stream:
                        emitted = True
                        yield TextChunk(text=text)
                    final: Message = await stream.get_final_message()

                yield ResponseComplete(response=self._convert_response(final))
                return

            except APIError as e:
                status_code = getattr(e, "status_code", None)
                if emitted or attempt >= self.config.max_retries - 1:
                    raise ModelServiceError(f"Model service error: {e}", status_code=status_code) from e

                if status_code == 429:
                    retry_after = self._retry_after(e)
                    if retry_after >= 120:
                        raise ModelServiceError(f"Model service rate limited: {e}", status_code=429) from e
                    logger.warning(f"Rate limited by model service, retrying in {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue

                if status_code is None or status_code >= 500:
                    # Connection errors, timeouts and server errors back off exponentially
                    delay = self.config.retry_delay * (2**attempt)
                    logger.warning(f"Model service failure ({e}), retrying in {delay:.1f}s")
                    await asyncio.sleep(delay)
                    continue

                raise ModelServiceError(f"Model service error: {e}", status_code=status_code) from e

    @staticmethod
    def _retry_after(error: APIError) -> int:
        response = getattr(error, "response", None)
        if response is not None and hasattr(response, "headers"):
            try:
                return int(response.headers.get("retry-after", 60))
            except ValueError:
                return 60
        return 60

    def _convert_response(self, message: Message) -> LLMResponse:
        """Convert an Anthropic message to our provider-agnostic response."""
        content: list[ContentBlock] = []
        for block in message.content:
            block_dict = block.model_dump()
            if block_dict.get("type") == "text":
                content.append(TextBlock.model_validate(block_dict))
            elif block_dict.get("type") == "tool_use":
                content.append(ToolUseBlock.model_validate(block_dict))
            else:
                logger.warning(f"Unknown content block type: {block_dict.get('type')}")

        usage = LLMUsage()
        if message.usage:
            usage = LLMUsage(
                input_tokens=message.usage.input_tokens,
                output_tokens=message.usage.output_tokens,
                total_tokens=message.usage.input_tokens + message.usage.output_tokens,
                cache_creation_input_tokens=message.usage.cache_creation_input_tokens or 0,
                cache_read_input_tokens=message.usage.cache_read_input_tokens or 0,
            )

        logger.debug(f"Response received - Stop reason: {message.stop_reason}, Content blocks: {len(content)}")
        return LLMResponse(content=content, stop_reason=message.stop_reason, usage=usage, model=message.model)

    def estimate_message_tokens(self, text: str) -> int:
        """Estimate token count for a piece of text."""
        try:
            return len(self.tokenizer.encode(text)) if self.tokenizer else len(text) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(text) // 4

    def _estimate_tokens(self, messages: list[LLMMessage], system_prompt: str) -> int:
        text_content = system_prompt + "".join(_message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def truncate_conversation(
        self, messages: list[LLMMessage], system_prompt: str, tools: list[AnthropicTool] | None = None
    ) -> list[LLMMessage]:
        """Truncate conversation from the beginning to fit within token limits.

        The kept history always starts with a user message that carries no
        tool results, so every tool result still follows its tool call.

        Args:
            messages: Conversation messages
            system_prompt: System prompt
            tools: Available tools

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_message_tokens(system_prompt)
        if tools:
            tool_content = "".join(tool.name + tool.description + json.dumps(tool.input_schema) for tool in tools)
            available_tokens -= self.estimate_message_tokens(tool_content)

        truncated_messages: list[LLMMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self.estimate_message_tokens(_message_text(message))
            if current_tokens + message_tokens > available_tokens:
                break
            truncated_messages.insert(0, message)
            current_tokens += message_tokens

        if len(truncated_messages) == len(messages):
            return truncated_messages

        while truncated_messages and not _is_turn_start(truncated_messages[0]):
            truncated_messages.pop(0)

        if not truncated_messages:
            logger.warning("Latest message alone exceeds the token limit, sending it untruncated")
            return messages[-1:]

        logger.warning(
            f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
            f"to fit within {available_tokens} token limit"
        )
        return truncated_messages


def _message_text(message: LLMMessage) -> str:
    if isinstance(message.content, str):
        return message.content

    pieces: list[str] = []
    for block in message.content:
        if isinstance(block, TextBlock):
            pieces.append(block.text)
        elif isinstance(block, ToolUseBlock):
            pieces.append(block.name + json.dumps(block.input))
        elif isinstance(block, ToolResultBlock):
            pieces.append(block.content)
    return "".join(pieces)


def _is_turn_start(message: LLMMessage) -> bool:
    if message.role != "user":
        return False
    if isinstance(message.content, str):
        return True
    return not any(isinstance(block, ToolResultBlock) for block in message.content)


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client(config: AnthropicConfig | None = None) -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient(config=config)
    return _anthropic_client
