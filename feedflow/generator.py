"""
Article generator - LLM-backed implementation of the AI service port.

Features:
- Multi-provider support (Anthropic, OpenAI, Google)
- Per-source prompt templates and model parameters
- Structured JSON output (title, content, SEO fields)
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .domain.article import GenerationParameters
from .exceptions import AiErrorCode, AiServiceError, ValidationError
from .providers import LLMProvider

logger = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    """Everything the AI collaborator needs to write one article."""
    parameters: GenerationParameters
    source_title: str
    source_content: str
    source_url: str | None = None
    title_prompt: str | None = None
    content_prompt: str | None = None


@dataclass
class GeneratedArticle:
    title: str
    content: str
    meta_description: str | None = None
    keywords: list[str] = field(default_factory=list)
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0


class AiService(ABC):
    """Port for the AI text-generation collaborator."""

    @abstractmethod
    async def generate_article(self, request: GenerationRequest) -> GeneratedArticle:
        """
        Write an article for the request.

        Raises:
            AiServiceError: the provider failed (rate limit, auth, filter...)
            ValidationError: the provider answered with unusable output
        """


class LLMArticleService(AiService):
    """Generates articles through an LLMProvider."""

    # Maximum source content length to send to the API
    MAX_SOURCE_LENGTH = 15000

    SYSTEM_PROMPT = """You are an experienced editor who turns source material into original, well-structured articles.

Core principles:
- Write in clear, direct language in active voice
- Stay faithful to the facts in the source; never invent quotes, numbers or names
- Do not copy sentences verbatim from the source
- Avoid meta-language like 'This article explains...' or 'The source says...'

Always answer with a single JSON object and nothing else."""

    OUTPUT_INSTRUCTIONS = """Respond with a JSON object with these keys:
{
  "title": "headline, 10 to 200 characters, plain text",
  "content": "the full article body, at least 150 words, paragraphs separated by blank lines",
  "meta_description": "one sentence of at most 160 characters",
  "keywords": ["3 to 6 short keywords"]
}"""

    def __init__(self, provider: LLMProvider):
        self.provider = provider

    def _build_prompt(self, request: GenerationRequest) -> str:
        params = request.parameters
        source_content = request.source_content
        if len(source_content) > self.MAX_SOURCE_LENGTH:
            source_content = source_content[:self.MAX_SOURCE_LENGTH] + "..."

        lines = [params.prompt.strip(), ""]
        if request.title_prompt:
            lines.append(f"Title guidance: {request.title_prompt}")
        if request.content_prompt:
            lines.append(f"Content guidance: {request.content_prompt}")
        lines.append(f"Language: {params.language}")
        if params.tone:
            lines.append(f"Tone: {params.tone}")
        if params.style:
            lines.append(f"Style: {params.style}")
        if params.target_audience:
            lines.append(f"Target audience: {params.target_audience}")

        lines += [
            "",
            "SOURCE:",
            f"Title: {request.source_title}",
        ]
        if request.source_url:
            lines.append(f"URL: {request.source_url}")
        lines += ["", source_content, "", self.OUTPUT_INSTRUCTIONS]
        return "\n".join(lines)

    async def generate_article(self, request: GenerationRequest) -> GeneratedArticle:
        params = request.parameters
        response = await self.provider.complete_async(
            user_prompt=self._build_prompt(request),
            system_prompt=self.SYSTEM_PROMPT,
            model=params.model,
            max_tokens=params.max_tokens,
            temperature=params.temperature,
            json_mode=self.provider.capabilities.supports_json_mode,
        )

        if response.truncated:
            raise AiServiceError(
                f"Response truncated at {params.max_tokens} tokens",
                AiErrorCode.TOKEN_LIMIT_EXCEEDED,
                {"provider": self.provider.name, "model": response.model},
            )

        data = self._parse_response(response.text)
        logger.debug(
            f"Generated article with {response.model} "
            f"({response.input_tokens} in / {response.output_tokens} out tokens)"
        )
        return GeneratedArticle(
            title=data["title"].strip(),
            content=data["content"].strip(),
            meta_description=data.get("meta_description"),
            keywords=[k for k in data.get("keywords") or [] if isinstance(k, str)],
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )

    def _parse_response(self, text: str) -> dict:
        """Extract the JSON object from the model's answer."""
        cleaned = text.strip()
        # Strip markdown code fences
        fenced = re.match(r"^```(?:json)?\s*(.*?)\s*```$", cleaned, re.DOTALL)
        if fenced:
            cleaned = fenced.group(1)
        else:
            start, end = cleaned.find("{"), cleaned.rfind("}")
            if start != -1 and end > start:
                cleaned = cleaned[start:end + 1]

        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise ValidationError(f"AI response is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ValidationError("AI response is not a JSON object")
        for key in ("title", "content"):
            if not isinstance(data.get(key), str) or not data[key].strip():
                raise ValidationError(f"AI response is missing '{key}'")
        return data
