import hashlib
import json
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI

from app.core.config import settings

logger = logging.getLogger(__name__)

JSON_ARRAY_PATTERN = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")


class AIResponseError(ValueError):
    """Raised when a model response does not contain the JSON we asked for."""


@dataclass(frozen=True)
class GenerationConfig:
    model: str
    temperature: float = 0.7
    max_tokens: int = 1024

    def cache_key(self) -> str:
        raw = f"{self.model}|{self.temperature}|{self.max_tokens}"
        return hashlib.sha256(raw.encode()).hexdigest()


class ModelHandle:
    """A chat-completions client bound to one generation config."""

    def __init__(self, client: AsyncOpenAI, config: GenerationConfig):
        self.client = client
        self.config = config

    async def generate(self, prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.config.model,
            temperature=self.config.temperature,
            max_tokens=self.config.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.choices[0].message.content or ""


class AIClient:
    """
    Text-completion entry point for the recommendation pipeline.

    Model handles are kept in a bounded LRU map owned by this instance,
    keyed by a hash of their generation config. Each FastAPI app (or test)
    gets its own instance through `app.core.deps.get_ai_client`.
    """

    def __init__(
        self,
        api_key: str | None = None,
        cache_size: int = 8,
        client: AsyncOpenAI | None = None,
    ):
        self._client = client or AsyncOpenAI(api_key=api_key or "")
        self._cache_size = max(1, cache_size)
        self._models: OrderedDict[str, ModelHandle] = OrderedDict()

    def get_model(
        self,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ModelHandle:
        config = GenerationConfig(
            model=model or settings.AI_MODEL,
            temperature=settings.AI_TEMPERATURE if temperature is None else temperature,
            max_tokens=max_tokens or settings.AI_MAX_TOKENS,
        )
        key = config.cache_key()
        handle = self._models.get(key)
        if handle is not None:
            self._models.move_to_end(key)
            return handle

        handle = ModelHandle(self._client, config)
        self._models[key] = handle
        if len(self._models) > self._cache_size:
            evicted, _ = self._models.popitem(last=False)
            logger.debug(f"Evicted model handle {evicted[:8]} from AI client cache")
        return handle

    @property
    def cached_models(self) -> int:
        return len(self._models)

    async def complete(self, prompt: str, model: str | None = None) -> str:
        """Send a single user prompt and return the model's raw text."""
        return await self.get_model(model).generate(prompt)


def extract_json_array(text: str) -> list[Any]:
    """
    Parse the first JSON array of objects found in a model response.

    Raises:
        AIResponseError: If no array is present or it does not parse
    """
    match = JSON_ARRAY_PATTERN.search(text or "")
    if not match:
        raise AIResponseError("Failed to parse AI response: no JSON array found")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Failed to parse AI response: {e}") from e
    if not isinstance(data, list):
        raise AIResponseError("Failed to parse AI response: expected a JSON array")
    return data
