"""
Summarization tool backed by Groq chat completions.

generate(prompt_parts) sends the first part as the system instruction and
each following part as a user message, and returns the model's text.
Any API failure or an empty answer raises SummarizationError.
"""
import logging
from typing import Optional, Sequence

import groq
from groq import AsyncGroq

from core.errors import SummarizationError

logger = logging.getLogger(__name__)


class GroqSummarizer:
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "llama-3.3-70b-versatile",
        temperature: float = 0.3,
        max_tokens: int = 400,
        client: Optional[AsyncGroq] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or AsyncGroq(api_key=api_key)

    async def generate(self, prompt_parts: Sequence[str]) -> str:
        if not prompt_parts:
            raise SummarizationError("empty prompt")
        messages = [{"role": "system", "content": prompt_parts[0]}]
        messages += [{"role": "user", "content": part} for part in prompt_parts[1:]]
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except groq.APIError as e:
            raise SummarizationError(f"groq completion failed: {e}") from e

        text = (completion.choices[0].message.content or "").strip() if completion.choices else ""
        if not text:
            raise SummarizationError("groq returned an empty summary")
        return text

    async def aclose(self) -> None:
        await self._client.close()
