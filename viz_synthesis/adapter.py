"""LLM adapters for visualization synthesis.

Provides a base interface and concrete adapters for OpenAI-compatible
APIs and a deterministic mock for testing.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from openai import AsyncOpenAI

from app.config import LLMSettings
from sandbox.templates import CATEGORY_TOOLTIP, bar_chart_source, category_counts_source
from viz_synthesis.schema import (
    CONCEPT,
    DATA_FUNCTION,
    HOVER_CALLBACK,
    METHODOLOGY,
    SVG_FUNCTION,
)


class BaseLLMAdapter(ABC):
    """Abstract base for all completion adapters."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Send a prompt to the model and return the raw response text.

        Args:
            prompt: The fully formatted prompt string.

        Returns:
            Raw string response from the model (expected to follow the
            section-marker protocol).
        """


class OpenAILLMAdapter(BaseLLMAdapter):
    """Adapter for OpenAI-compatible chat completion APIs.

    Non-streaming; temperature and output length come from LLMSettings.
    """

    def __init__(
        self,
        model: str = "gpt-4o",
        temperature: float = 0.1,
        max_tokens: int = 4000,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        """Initialise the OpenAI adapter.

        Args:
            model: Model identifier.
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in the completion.
            api_key: OpenAI API key. The client falls back to OPENAI_API_KEY.
            base_url: Optional base URL for OpenAI-compatible endpoints.
        """
        client_kwargs: dict = {}
        if api_key:
            client_kwargs["api_key"] = api_key
        if base_url:
            client_kwargs["base_url"] = base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    async def generate(self, prompt: str) -> str:
        """Call the chat completion API.

        Args:
            prompt: The fully formatted prompt string.

        Returns:
            Raw string content from the model response, or "" when the
            response carries no content.
        """
        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self._temperature,
            max_tokens=self._max_tokens,
            stream=False,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Fixed mock response used for local testing.
# ---------------------------------------------------------------------------
_MOCK_RESPONSE = "\n".join(
    [
        f"{METHODOLOGY} Counted companies per industry and ranked the ten largest groups.",
        f"{CONCEPT} Rounded bar chart with one colour per industry and hover tooltips.",
        DATA_FUNCTION,
        category_counts_source("industry", 10),
        "",
        SVG_FUNCTION,
        bar_chart_source("Companies by Industry"),
        "",
        HOVER_CALLBACK,
        CATEGORY_TOOLTIP,
    ]
)


class MockLLMAdapter(BaseLLMAdapter):
    """Deterministic adapter that returns a fixed protocol response.

    Used for local testing and CI pipelines where no LLM API
    is available. Every prompt it receives is kept in ``prompts``.
    """

    def __init__(self, response: Optional[str] = None) -> None:
        self._response = _MOCK_RESPONSE if response is None else response
        self.prompts: List[str] = []

    async def generate(self, prompt: str) -> str:
        """Return the fixed response regardless of input.

        Args:
            prompt: Recorded, otherwise ignored.

        Returns:
            A response that decodes into a complete StructuredCompletion.
        """
        self.prompts.append(prompt)
        return self._response


def build_adapter(settings: LLMSettings) -> BaseLLMAdapter:
    """Instantiate the adapter selected by the LLM_ADAPTER setting.

    LLM_ADAPTER=mock   -> MockLLMAdapter  (testing, no API key required)
    LLM_ADAPTER=openai -> OpenAILLMAdapter (default)
    """
    if settings.adapter == "mock":
        return MockLLMAdapter()

    return OpenAILLMAdapter(
        model=settings.model,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        api_key=settings.api_key,
        base_url=settings.base_url,
    )
