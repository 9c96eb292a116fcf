"""
Reasoning Gateway

Single call site for the classification model. The classifier only sees the
ReasoningService interface:

    complete(system_prompt, user_prompt, json_response=True) -> Completion

OpenAIReasoningService is the production implementation over LangChain's
ChatOpenAI. When json_response is set the model is bound with
response_format={"type": "json_object"} so the provider enforces a JSON
object reply.

Without a configured credential, complete() raises ReasoningUnavailable
before any network call is attempted.

Usage::

    service = OpenAIReasoningService.from_settings(settings)
    completion = await service.complete(system_prompt, user_prompt)
    completion.text              # raw model output
    completion.model_identifier  # e.g. "gpt-4o-mini-2024-07-18"
    completion.token_count       # provider-reported total, estimated if absent
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage

from insight_vault.core.config import Settings
from insight_vault.core.errors import ReasoningUnavailable

logger = logging.getLogger(__name__)


def _estimate_tokens(messages: list[BaseMessage], reply: str = "") -> int:
    """
    Rough token count: 4 chars ≈ 1 token (OpenAI heuristic).
    Only used when the provider response carries no usage metadata.
    """
    total_chars = sum(len(m.content) for m in messages if isinstance(m.content, str))
    return max(1, (total_chars + len(reply)) // 4)


@dataclass(frozen=True)
class Completion:
    """One reasoning-service reply."""
    text:             str
    model_identifier: str
    token_count:      int


class ReasoningService(ABC):
    """Black-box prompt-in, text-out reasoning capability."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """True when a credential is available."""

    @property
    @abstractmethod
    def model_identifier(self) -> str:
        """Configured model name, used when a reply carries none."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt:   str,
        json_response: bool = True,
    ) -> Completion:
        """Send one prompt; raise ReasoningUnavailable when not configured."""


class OpenAIReasoningService(ReasoningService):
    """
    ChatOpenAI-backed reasoning service.

    The underlying model object is built lazily on first use and reused for
    every call; ChatOpenAI is safe for concurrent async use.
    """

    def __init__(
        self,
        api_key:     str,
        model:       str = "gpt-4o-mini",
        temperature: float = 0.2,
        max_tokens:  int = 1024,
    ) -> None:
        self._api_key     = api_key
        self._model       = model
        self._temperature = temperature
        self._max_tokens  = max_tokens
        self._chat        = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenAIReasoningService":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.llm_model,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def model_identifier(self) -> str:
        return self._model

    def _build_chat(self):
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=self._model,
            api_key=self._api_key,
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

    @staticmethod
    def build_messages(system_prompt: str, user_prompt: str) -> list[BaseMessage]:
        return [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

    async def complete(
        self,
        system_prompt: str,
        user_prompt:   str,
        json_response: bool = True,
    ) -> Completion:
        if not self.configured:
            raise ReasoningUnavailable()

        if self._chat is None:
            self._chat = self._build_chat()

        runnable = self._chat
        if json_response:
            runnable = self._chat.bind(response_format={"type": "json_object"})

        messages = self.build_messages(system_prompt, user_prompt)

        t0 = time.perf_counter()
        reply = await runnable.ainvoke(messages)
        latency = (time.perf_counter() - t0) * 1000

        text = reply.content if isinstance(reply.content, str) else str(reply.content)

        usage = getattr(reply, "usage_metadata", None) or {}
        tokens = usage.get("total_tokens") or _estimate_tokens(messages, text)

        metadata = getattr(reply, "response_metadata", None) or {}
        model_id = metadata.get("model_name") or self._model

        logger.info(
            "Reasoning call | model=%s tokens=%d latency_ms=%.1f",
            model_id, tokens, latency,
        )
        return Completion(text=text, model_identifier=model_id, token_count=int(tokens))
