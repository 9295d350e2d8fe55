"""Text completion service used by the screening stages."""

import asyncio
from typing import Any, Optional, Protocol

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_groq import ChatGroq
from langchain_openai import ChatOpenAI

from jobnick_agent.config import settings
from jobnick_agent.core.errors import (
    CompletionAuthError,
    CompletionError,
    CompletionRateLimitError,
    ConfigurationError,
    MalformedCompletionError,
)
from jobnick_agent.utils.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = "You screen job listings for a candidate. Answer with the requested JSON object only."


class TextCompletionService(Protocol):
    """Prompt in, text out."""

    @property
    def is_configured(self) -> bool:
        ...

    def set_credential(self, api_key: str) -> None:
        ...

    async def complete(self, prompt: str) -> str:
        ...


class LangChainCompletionService:
    """
    Completion service over a LangChain chat model.

    Groq is preferred when a Groq key is available, OpenAI otherwise. A
    credential supplied at runtime through ``set_credential`` replaces the
    configured one for the preferred provider.
    """

    def __init__(
        self,
        chat_model: Optional[Any] = None,
        groq_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.groq_api_key = groq_api_key or settings.groq_api_key
        self.openai_api_key = openai_api_key or settings.openai_api_key
        self.timeout = timeout or settings.completion_timeout
        self.logger = logger.bind(component="completion_service")

        if chat_model is not None:
            self.chat_model = chat_model
        else:
            try:
                self.chat_model = self._create_chat_model()
            except ConfigurationError:
                self.chat_model = None

    @property
    def is_configured(self) -> bool:
        return self.chat_model is not None

    def set_credential(self, api_key: str) -> None:
        """Install a new API key and rebuild the chat model."""
        api_key = (api_key or "").strip()
        if not api_key:
            self.chat_model = None
            return
        if self.openai_api_key and not self.groq_api_key:
            self.openai_api_key = api_key
        else:
            self.groq_api_key = api_key
        self.chat_model = self._create_chat_model()
        self.logger.info("Completion credential updated")

    def _create_chat_model(self) -> Any:
        if self.groq_api_key:
            return ChatGroq(
                model=settings.screening_model,
                api_key=self.groq_api_key,
                temperature=0.0,
                max_tokens=1024,
                timeout=self.timeout,
            )
        elif self.openai_api_key:
            return ChatOpenAI(
                model=settings.openai_screening_model,
                api_key=self.openai_api_key,
                temperature=0.0,
                max_tokens=1024,
                timeout=self.timeout,
            )
        else:
            raise ConfigurationError("No API key configured for the screening model")

    async def complete(self, prompt: str) -> str:
        if self.chat_model is None:
            raise CompletionAuthError("No API key configured for the screening model")

        messages = [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=prompt)]
        try:
            response = await asyncio.wait_for(self.chat_model.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise CompletionError(f"Completion timed out after {self.timeout}s") from e
        except Exception as e:
            raise translate_completion_error(e) from e

        text = getattr(response, "content", response)
        if isinstance(text, list):
            text = " ".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in text)
        if not isinstance(text, str) or not text.strip():
            raise MalformedCompletionError("Empty completion")
        return text


def translate_completion_error(error: Exception) -> CompletionError:
    """Map a provider SDK exception onto the completion error taxonomy."""
    if isinstance(error, CompletionError):
        return error
    status = getattr(error, "status_code", None)
    if status is None:
        status = getattr(getattr(error, "response", None), "status_code", None)
    if status in (401, 403):
        return CompletionAuthError(str(error))
    if status == 429:
        return CompletionRateLimitError(str(error))
    return CompletionError(str(error))
