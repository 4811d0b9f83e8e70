"""
Anthropic Claude provider implementation.
"""

import anthropic

from ..exceptions import AiErrorCode, AiServiceError
from .base import LLMProvider, LLMResponse, ProviderCapabilities


def _translate_error(error: anthropic.APIError) -> AiServiceError:
    """Map an Anthropic SDK exception to an AiServiceError."""
    message = str(error)
    if isinstance(error, anthropic.RateLimitError):
        code = AiErrorCode.RATE_LIMIT_EXCEEDED
    elif isinstance(error, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        code = AiErrorCode.AUTHENTICATION_FAILED
    elif isinstance(error, anthropic.NotFoundError):
        code = AiErrorCode.MODEL_UNAVAILABLE
    elif isinstance(error, anthropic.BadRequestError) and "token" in message.lower():
        code = AiErrorCode.TOKEN_LIMIT_EXCEEDED
    else:
        code = AiErrorCode.SERVICE_UNAVAILABLE
    return AiServiceError(message, code, {"provider": "anthropic"})


class AnthropicProvider(LLMProvider):
    """Anthropic Claude provider."""

    # Model aliases for convenience
    MODEL_ALIASES = {
        "haiku": "claude-haiku-4-5",
        "sonnet": "claude-sonnet-4-5",
        "opus": "claude-opus-4-5",
    }

    def __init__(
        self,
        api_key: str,
        default_model: str = "claude-sonnet-4-5",
    ):
        self.client = anthropic.Anthropic(api_key=api_key)
        self._default_model = self._resolve_model(default_model)

    def _resolve_model(self, model: str) -> str:
        """Resolve model alias to full model ID."""
        return self.MODEL_ALIASES.get(model, model)

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_system_prompt=True,
            supports_json_mode=False,  # Claude doesn't have native JSON mode
            max_context_tokens=200000,
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
        """Generate a completion using Claude. ``json_mode`` is ignored."""
        resolved_model = self._resolve_model(model) if model else self._default_model

        kwargs = {
            "model": resolved_model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        if temperature > 0:
            kwargs["temperature"] = temperature
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIError as e:
            raise _translate_error(e) from e

        if response.stop_reason == "refusal":
            raise AiServiceError(
                "Claude declined to generate this content",
                AiErrorCode.CONTENT_FILTERED,
                {"provider": "anthropic"},
            )

        text = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            text=text,
            model=resolved_model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            truncated=response.stop_reason == "max_tokens",
            metadata={
                "stop_reason": response.stop_reason,
                "provider": "anthropic",
            }
        )
