import logging
from typing import AsyncIterator, Protocol, Sequence

import openai
from openai import AsyncOpenAI

import support_chat.config.config as configs
from support_chat.errors import (
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimitError,
    UpstreamUnavailableError,
)
from support_chat.service.chat.prompt import PromptMessage

logger = logging.getLogger(__name__)


class CompletionClient(Protocol):
    def stream_reply(self, messages: Sequence[PromptMessage]) -> AsyncIterator[str]:
        """Yield reply fragments until the model signals end of generation."""
        ...


def classify_upstream_error(exc: openai.APIError) -> UpstreamError:
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return UpstreamAuthError(str(exc))
    if isinstance(exc, openai.RateLimitError):
        return UpstreamRateLimitError(str(exc))
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        # APITimeoutError is an APIConnectionError
        return UpstreamUnavailableError(str(exc))
    if isinstance(exc, openai.APIStatusError) and exc.status_code >= 500:
        return UpstreamUnavailableError(str(exc))
    return UpstreamError(str(exc))


class OpenAICompletionClient:
    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = configs.MODEL,
        max_tokens: int = configs.MAX_OUTPUT_TOKENS,
        temperature: float = configs.TEMPERATURE,
    ):
        self._client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def stream_reply(self, messages: Sequence[PromptMessage]) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(
                model=self.model,
                messages=list(messages),
                stream=True,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            # Closing the stream releases the HTTP connection even when the
            # caller stops iterating early.
            async with stream:
                async for chunk in stream:
                    if not chunk.choices:
                        continue
                    content = chunk.choices[0].delta.content
                    if content:
                        yield content
        except openai.APIError as exc:
            logger.warning("completion request failed model=%s: %s", self.model, exc)
            raise classify_upstream_error(exc) from exc

    async def aclose(self) -> None:
        await self._client.close()


def create_completion_client() -> OpenAICompletionClient:
    client = AsyncOpenAI(
        api_key=configs.require_api_key(),
        timeout=configs.UPSTREAM_TIMEOUT_SEC,
        max_retries=0,
    )
    logger.info("completion client ready model=%s", configs.MODEL)
    return OpenAICompletionClient(client)
