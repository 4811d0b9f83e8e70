"""
OpenAI provider implementation.

Supports GPT models with JSON mode for structured outputs.
"""

import openai
from openai import OpenAI

from ..exceptions import AiErrorCode, AiServiceError
from .base import LLMProvider, LLMResponse, ProviderCapabilities


def _translate_error(error: openai.OpenAIError) -> AiServiceError:
    """Map an OpenAI SDK exception to an AiServiceError."""
    message = str(error)
    if isinstance(error, openai.RateLimitError):
        code = AiErrorCode.RATE_LIMIT_EXCEEDED
    elif isinstance(error, (openai.AuthenticationError, openai.PermissionDeniedError)):
        code = AiErrorCode.AUTHENTICATION_FAILED
    elif isinstance(error, openai.NotFoundError):
        code = AiErrorCode.MODEL_UNAVAILABLE
    elif isinstance(error, openai.BadRequestError):
        error_code = getattr(error, "code", None) or ""
        if error_code == "content_filter" or "content_filter" in message:
            code = AiErrorCode.CONTENT_FILTERED
        elif error_code == "context_length_exceeded" or "token" in message.lower():
            code = AiErrorCode.TOKEN_LIMIT_EXCEEDED
        else:
            code = AiErrorCode.SERVICE_UNAVAILABLE
    else:
        code = AiErrorCode.SERVICE_UNAVAILABLE
    return AiServiceError(message, code, {"provider": "openai"})


class OpenAIProvider(LLMProvider):
    """
    OpenAI GPT provider with JSON mode support.
    """

    MODEL_ALIASES = {
        "fast": "gpt-5-mini",
        "standard": "gpt-5",
        "gpt4": "gpt-4o",
        "gpt4-mini": "gpt-4o-mini",
    }

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-5-mini",
        organization: str | None = None,
    ):
        self.client = OpenAI(api_key=api_key, organization=organization)
        self._default_model = self._resolve_model(default_model)

    def _resolve_model(self, model: str) -> str:
        """Resolve model alias to full model ID."""
        return self.MODEL_ALIASES.get(model, model)

    @property
    def name(self) -> str:
        return "openai"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_system_prompt=True,
            supports_json_mode=True,
            max_context_tokens=128000,
        )

    def complete(
        self,
        user_prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        json_mode: bool = False,
    ) -> LLMResponse:
        """
        Generate a completion using GPT.

        Args:
            user_prompt: The user message
            system_prompt: Optional system prompt
            model: Model to use (defaults to instance default)
            max_tokens: Maximum response tokens
            temperature: Sampling temperature
            json_mode: Request JSON-formatted response

        Returns:
            LLMResponse with generated text
        """
        resolved_model = self._resolve_model(model) if model else self._default_model

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        kwargs = {
            "model": resolved_model,
            "messages": messages,
            "max_completion_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            raise _translate_error(e) from e

        choice = response.choices[0]
        if choice.finish_reason == "content_filter":
            raise AiServiceError(
                "Response blocked by content filter",
                AiErrorCode.CONTENT_FILTERED,
                {"provider": "openai"},
            )

        usage = response.usage
        return LLMResponse(
            text=choice.message.content or "",
            model=resolved_model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            truncated=choice.finish_reason == "length",
            metadata={
                "finish_reason": choice.finish_reason,
                "provider": "openai",
            }
        )
