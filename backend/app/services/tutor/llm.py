import asyncio
import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from app.services.tutor.errors import ModelUnavailable
from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    OpenAIError,
    RateLimitError,
)
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Errors worth another attempt; anything else fails immediately
TRANSIENT_ERRORS = (
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
    asyncio.TimeoutError,
)


class LLMService:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        classifier_model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        retry_wait_multiplier: float = 1.0,
    ):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.model = model
        self.classifier_model = classifier_model or model
        self.max_attempts = max(1, max_attempts)
        self.retry_wait_multiplier = retry_wait_multiplier

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.retry_wait_multiplier,
                min=self.retry_wait_multiplier,
                max=10 * self.retry_wait_multiplier,
            ),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True,
        )

    async def _make_completion(
        self, messages: List[Dict[str, str]], response_format: Optional[Dict[str, Any]]
    ) -> str:
        """Make a chat completion call with retry on transient errors."""
        kwargs: Dict[str, Any] = {}
        if response_format is not None:
            kwargs["response_format"] = response_format

        async for attempt in self._retrying():
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        f"Retrying completion (attempt "
                        f"{attempt.retry_state.attempt_number}/{self.max_attempts})"
                    )
                completion = await self.client.chat.completions.create(
                    model=self.model, messages=messages, **kwargs
                )
        return completion.choices[0].message.content or ""

    async def complete(
        self, system_prompt: str, user_prompt: str, response_format: str = "json"
    ) -> str:
        """Return the raw text of the model's reply.

        Raises:
            ModelUnavailable: The endpoint could not be reached, timed out, or
                rejected the request.
        """
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        fmt = {"type": "json_object"} if response_format == "json" else None

        try:
            return await self._make_completion(messages, fmt)
        except (OpenAIError, asyncio.TimeoutError) as e:
            logger.error(f"Error calling {self.model}: {type(e).__name__}: {str(e)}")
            raise ModelUnavailable(f"completion failed: {type(e).__name__}") from e

    async def classify(self, messages: List[Dict[str, str]], response_format: Type[T]) -> T:
        """Structured classification call with the lightweight model."""
        try:
            async for attempt in self._retrying():
                with attempt:
                    completion = await self.client.chat.completions.parse(
                        model=self.classifier_model,
                        temperature=0,
                        messages=messages,
                        response_format=response_format,
                    )
        except (OpenAIError, ValidationError, asyncio.TimeoutError) as e:
            logger.error(f"Error classifying with {self.classifier_model}: {str(e)}")
            raise ModelUnavailable(f"classification failed: {type(e).__name__}") from e

        parsed = completion.choices[0].message.parsed
        if parsed is None:
            raise ModelUnavailable("classification returned no parsed result")
        return parsed

    async def close(self):
        await self.client.close()
