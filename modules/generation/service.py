"""
Gemini content-generation service.

Calls Google Gemini through langchain-google-genai. Structured payloads
are requested with JsonOutputParser format instructions and validated
with their pydantic models. Identical requests within a process are
answered from a bounded in-memory cache that evicts the least recently
used entry.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from cachetools import LRUCache
from langchain_core.exceptions import OutputParserException
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_core.output_parsers import JsonOutputParser
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError

from modules.entitlements.models import DEFAULT_AI_MODELS, AppConfig
from shared.config import Settings, get_settings

from .exceptions import GenerationError, TransientServiceError
from .interfaces import GenerationResult
from .models import (
    LANGUAGE_PROMPT_NAMES,
    PAYLOAD_MODELS,
    GenerationRequest,
    Language,
)
from .retry import is_transient, with_retry

logger = logging.getLogger(__name__)

FALLBACK_MODEL = "gemini-2.5-flash"

LlmFactory = Callable[[str], BaseChatModel]


def _language_instruction(language: Language) -> str:
    instruction = f"All text content must be in {LANGUAGE_PROMPT_NAMES[language]}."
    if language != Language.EN:
        instruction += (
            " Do not use markdown formatting like asterisks or hashtags."
            " Use plain text with standard punctuation and line breaks."
        )
    return instruction


def _response_text(content: Any) -> str:
    """Flatten a chat response's content to text."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict):
            parts.append(part.get("text", ""))
    return "".join(parts)


class GeminiGenerationService:
    """
    IGenerationService backed by Google Gemini.

    The model for each request is looked up in the app config's
    ai_model_selection by the request's model_key.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm_factory: Optional[LlmFactory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings or get_settings()
        self._llm_factory = llm_factory or self._create_llm
        self._sleep = sleep
        self._cache: LRUCache = LRUCache(maxsize=self._settings.generation_cache_size)

    def resolve_model(self, model_key: str, config: Optional[AppConfig] = None) -> str:
        """Concrete model id for a logical model key."""
        if config is not None and model_key in config.ai_model_selection:
            return config.ai_model_selection[model_key]
        return DEFAULT_AI_MODELS.get(model_key, FALLBACK_MODEL)

    async def generate(
        self,
        request: GenerationRequest,
        config: Optional[AppConfig] = None,
    ) -> GenerationResult:
        model_id = self.resolve_model(request.model_key, config)
        cache_key = (model_id, *request.cache_key())
        if cache_key in self._cache:
            logger.debug(f"Generation cache hit for {request.model_key}")
            return self._cache[cache_key]

        payload_model = PAYLOAD_MODELS[request.kind]
        parser = JsonOutputParser(pydantic_object=payload_model) if payload_model else None

        user_content = f"{request.prompt}\n\n{_language_instruction(request.language)}"
        if parser is not None:
            user_content += f"\n\n{parser.get_format_instructions()}"

        messages = []
        if request.system_prompt:
            messages.append(SystemMessage(content=request.system_prompt))
        messages.append(HumanMessage(content=user_content))

        llm = self._llm_factory(model_id)
        try:
            response = await with_retry(
                lambda: llm.ainvoke(messages),
                max_attempts=self._settings.generation_max_attempts,
                initial_delay=self._settings.generation_initial_delay,
                sleep=self._sleep,
            )
        except GenerationError:
            raise
        except Exception as e:
            if is_transient(e):
                raise TransientServiceError(str(e)) from e
            raise GenerationError(f"Generation with {model_id} failed: {e}") from e

        text = _response_text(response.content).strip()
        if parser is None:
            result: GenerationResult = text
        else:
            try:
                result = payload_model.model_validate(parser.parse(text))
            except (OutputParserException, ValidationError) as e:
                raise GenerationError(
                    f"Unusable {request.kind.value} output from {model_id}: {e}",
                    code="INVALID_OUTPUT",
                ) from e

        self._cache[cache_key] = result
        return result

    def clear_cache(self) -> None:
        self._cache.clear()

    def _create_llm(self, model_id: str) -> ChatGoogleGenerativeAI:
        if not self._settings.google_api_key:
            raise GenerationError(
                "Google AI API key is required. Set it via the GOOGLE_API_KEY environment variable.",
                code="NOT_CONFIGURED",
            )
        return ChatGoogleGenerativeAI(
            model=model_id,
            google_api_key=self._settings.google_api_key,
            # One attempt per call; with_retry owns the backoff.
            max_retries=1,
        )

