"""
Google Gemini provider implementation.

Uses the google-genai SDK.
"""

from google import genai
from google.genai import errors, types

from ..exceptions import AiErrorCode, AiServiceError
from .base import LLMProvider, LLMResponse, ProviderCapabilities


def _translate_error(error: errors.APIError) -> AiServiceError:
    """Map a google-genai exception to an AiServiceError."""
    status = getattr(error, "code", None)
    message = str(error)
    if status == 429:
        code = AiErrorCode.RATE_LIMIT_EXCEEDED
    elif status in (401, 403):
        code = AiErrorCode.AUTHENTICATION_FAILED
    elif status == 404:
        code = AiErrorCode.MODEL_UNAVAILABLE
    elif status == 400 and "token" in message.lower():
        code = AiErrorCode.TOKEN_LIMIT_EXCEEDED
    else:
        code = AiErrorCode.SERVICE_UNAVAILABLE
    return AiServiceError(message, code, {"provider": "google", "status": status})


class GoogleProvider(LLMProvider):
    """
    Google Gemini provider with JSON mode support.
    """

    MODEL_ALIASES = {
        "flash": "gemini-2.5-flash",
        "pro": "gemini-2.5-pro",
        "fast": "gemini-2.5-flash",
        "standard": "gemini-2.5-pro",
    }

    def __init__(
        self,
        api_key: str,
        default_model: str = "gemini-2.5-flash",
    ):
        self.client = genai.Client(api_key=api_key)
        self._default_model = self._resolve_model(default_model)

    def _resolve_model(self, model: str) -> str:
        """Resolve model alias to full model ID."""
        return self.MODEL_ALIASES.get(model, model)

    @property
    def name(self) -> str:
        return "google"

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(
            supports_system_prompt=True,
            supports_json_mode=True,
            max_context_tokens=1000000,  # Gemini has very large context
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
        """Generate a completion using Gemini."""
        resolved_model = self._resolve_model(model) if model else self._default_model

        config_kwargs = {
            "max_output_tokens": max_tokens,
            "temperature": temperature,
        }
        if system_prompt:
            config_kwargs["system_instruction"] = system_prompt
        if json_mode:
            config_kwargs["response_mime_type"] = "application/json"

        try:
            response = self.client.models.generate_content(
                model=resolved_model,
                contents=user_prompt,
                config=types.GenerateContentConfig(**config_kwargs),
            )
        except errors.APIError as e:
            raise _translate_error(e) from e

        feedback = getattr(response, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", None):
            raise AiServiceError(
                f"Prompt blocked: {feedback.block_reason}",
                AiErrorCode.CONTENT_FILTERED,
                {"provider": "google"},
            )

        finish_reason = None
        if response.candidates:
            finish_reason = str(response.candidates[0].finish_reason or "")
            if "SAFETY" in finish_reason:
                raise AiServiceError(
                    "Response blocked by safety filters",
                    AiErrorCode.CONTENT_FILTERED,
                    {"provider": "google"},
                )

        input_tokens = 0
        output_tokens = 0
        if response.usage_metadata:
            input_tokens = response.usage_metadata.prompt_token_count or 0
            output_tokens = response.usage_metadata.candidates_token_count or 0

        return LLMResponse(
            text=response.text or "",
            model=resolved_model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            truncated=bool(finish_reason and "MAX_TOKENS" in finish_reason),
            metadata={
                "finish_reason": finish_reason,
                "provider": "google",
            }
        )
