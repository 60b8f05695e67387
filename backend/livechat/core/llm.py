"""OpenAI chat wrapper used by the automated responder."""

from dataclasses import dataclass

from openai import OpenAI

from .config import get_settings


@dataclass
class TokenUsage:
    """Minimal token usage tracking."""

    input: int = 0
    output: int = 0
    model: str = ""

    @property
    def total(self) -> int:
        return self.input + self.output

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            input=self.input + other.input,
            output=self.output + other.output,
            model=other.model or self.model,
        )


class LLM:
    """OpenAI chat completion wrapper with token tracking."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_chat_model
        self._client: OpenAI | None = None
        self._last_usage: TokenUsage | None = None
        self._total_usage: TokenUsage = TokenUsage()

    @property
    def client(self) -> OpenAI:
        """Lazy-load OpenAI client."""
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key)
        return self._client

    @property
    def last_usage(self) -> TokenUsage | None:
        """Token usage from the most recent API call."""
        return self._last_usage

    @property
    def total_usage(self) -> TokenUsage:
        """Cumulative token usage across all API calls."""
        return self._total_usage

    def _track_usage(self, response) -> None:
        """Extract and track token usage from API response."""
        if hasattr(response, "usage") and response.usage:
            self._last_usage = TokenUsage(
                input=response.usage.prompt_tokens,
                output=response.usage.completion_tokens,
                model=getattr(response, "model", self.model),
            )
            self._total_usage = self._total_usage + self._last_usage
        else:
            self._last_usage = TokenUsage(model=self.model)

    def chat(
        self,
        messages: list[dict[str, str]],
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> str:
        """Send a chat completion request and return the reply text.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature
            max_tokens: Optional cap on completion tokens

        Returns:
            The assistant's reply ("" when the model returned no content)
        """
        kwargs = {}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            **kwargs,
        )
        self._track_usage(response)
        return response.choices[0].message.content or ""
