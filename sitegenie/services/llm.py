"""Answer generation through the OpenAI chat completions API."""

import logging
from typing import Optional, Protocol

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

INTERNAL_ERROR_ANSWER = "I'm sorry, I encountered an internal error."


class AnswerClient(Protocol):
    """Anything that turns a prompt into generated text."""

    async def generate(self, prompt: str) -> str:
        ...


class OpenAIAnswerClient:
    def __init__(self, api_key: Optional[str], model: str = "gpt-4o-mini",
                 temperature: float = 0.3, client: Optional[AsyncOpenAI] = None):
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        # created on first use so the service can start without a key
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def generate(self, prompt: str) -> str:
        if not prompt or not isinstance(prompt, str):
            logger.error(f"Invalid prompt received: {prompt!r}")
            return INTERNAL_ERROR_ANSWER

        logger.debug(f"Sending prompt to {self.model} ({len(prompt)} chars)")
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.temperature,
        )
        return response.choices[0].message.content or ""

    async def close(self):
        if self._client is not None:
            await self._client.close()
