"""Chat completion through LangChain chat models.

OpenAI, LM Studio and GitHub Copilot all expose OpenAI-compatible chat
endpoints, so every provider is a ``ChatOpenAI`` pointed at a different
base URL with a different credential.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from omnichat.config import ClientSettings, LlmProvider, LlmSettings
from omnichat.errors import ProviderError
from omnichat.models.logs import LogRecord

logger = logging.getLogger(__name__)

COPILOT_BASE_URL = "https://api.githubcopilot.com"
LMSTUDIO_PLACEHOLDER_KEY = "lm-studio"


def clean_base_url(url: str) -> str:
    return url.strip().rstrip("/")


def build_chat_model(llm: LlmSettings) -> BaseChatModel:
    """Instantiate the chat model for the configured provider.

    Raises:
        ProviderError: If the provider is missing its credential or model.
    """
    if llm.provider == LlmProvider.LMSTUDIO:
        if not llm.lmstudio.model:
            raise ProviderError("No LM Studio model selected.", configured=False)
        return ChatOpenAI(
            model=llm.lmstudio.model,
            base_url=f"{clean_base_url(llm.lmstudio.url)}/v1",
            api_key=LMSTUDIO_PLACEHOLDER_KEY,
        )

    if llm.provider == LlmProvider.COPILOT:
        if not llm.copilot.github_token:
            raise ProviderError("GitHub Copilot token is not configured.", configured=False)
        return ChatOpenAI(
            model=llm.copilot.model,
            base_url=COPILOT_BASE_URL,
            api_key=llm.copilot.github_token,
            default_headers={"Copilot-Integration-Id": "vscode-chat"},
        )

    if not llm.openai.api_key:
        raise ProviderError("OpenAI API key is not configured.", configured=False)
    return ChatOpenAI(model=llm.openai.model, api_key=llm.openai.api_key)


class Completion(BaseModel):
    """An answer plus what it cost."""

    answer: str
    llm_ms: int
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChatAgent:
    """Sends one message, with prior exchanges as context, to the provider."""

    def __init__(
        self,
        client_settings: ClientSettings,
        *,
        model_factory: Callable[[LlmSettings], BaseChatModel] = build_chat_model,
    ) -> None:
        self._settings = client_settings
        self._llm = model_factory(client_settings.llm)
        logger.info(
            "ChatAgent initialised with provider=%s model=%s",
            client_settings.llm_provider.value,
            client_settings.llm.active_model,
        )

    @property
    def provider(self) -> LlmProvider:
        return self._settings.llm_provider

    @property
    def model_name(self) -> str:
        return self._settings.llm.active_model

    def build_messages(self, message: str, history: Sequence[LogRecord]) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if self._settings.system_instruction.strip():
            messages.append(SystemMessage(content=self._settings.system_instruction.strip()))
        for record in history:
            messages.append(HumanMessage(content=record.question))
            messages.append(AIMessage(content=record.answer))
        messages.append(HumanMessage(content=message))
        return messages

    async def complete(self, message: str, history: Sequence[LogRecord] = ()) -> Completion:
        """Return the provider's answer to ``message``.

        Raises:
            ProviderError: If the provider call fails.
        """
        messages = self.build_messages(message, history)
        started = time.perf_counter()
        try:
            result = await self._llm.ainvoke(messages)
        except Exception as exc:
            logger.exception("LLM call failed (provider=%s)", self.provider.value)
            raise ProviderError(f"LLM request failed: {exc}") from exc
        llm_ms = int((time.perf_counter() - started) * 1000)

        answer = result.content if isinstance(result.content, str) else str(result.content)
        usage = getattr(result, "usage_metadata", None) or {}
        logger.info(
            "LLM answered in %dms (%d chars, provider=%s)",
            llm_ms,
            len(answer),
            self.provider.value,
        )
        return Completion(
            answer=answer,
            llm_ms=llm_ms,
            prompt_tokens=usage.get("input_tokens"),
            completion_tokens=usage.get("output_tokens"),
            total_tokens=usage.get("total_tokens"),
        )
