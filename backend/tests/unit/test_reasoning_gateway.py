"""
Unit Tests: OpenAI Reasoning Gateway
════════════════════════════════════
Tests for insight_vault/llm/gateway.py

ChatOpenAI is never constructed: _build_chat is patched to return a mock
runnable, so no network access or API key validation happens.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import HumanMessage, SystemMessage

from insight_vault.core.errors import ReasoningUnavailable
from insight_vault.llm.gateway import OpenAIReasoningService, _estimate_tokens


def _reply(content: str, usage: dict | None = None, metadata: dict | None = None) -> MagicMock:
    reply = MagicMock()
    reply.content = content
    reply.usage_metadata = usage
    reply.response_metadata = metadata or {}
    return reply


def _chat_returning(reply: MagicMock) -> MagicMock:
    chat = MagicMock()
    bound = MagicMock()
    bound.ainvoke = AsyncMock(return_value=reply)
    chat.bind.return_value = bound
    chat.ainvoke = AsyncMock(return_value=reply)
    return chat


@pytest.mark.unit
class TestOpenAIReasoningService:

    async def test_missing_key_raises_before_building_client(self):
        service = OpenAIReasoningService(api_key="")
        with patch.object(OpenAIReasoningService, "_build_chat") as build_chat:
            with pytest.raises(ReasoningUnavailable):
                await service.complete("system", "user")
        build_chat.assert_not_called()
        assert service.configured is False

    async def test_json_mode_binds_response_format(self):
        chat = _chat_returning(_reply(
            '{"pillar_id": "P1"}',
            usage={"input_tokens": 300, "output_tokens": 20, "total_tokens": 320},
            metadata={"model_name": "gpt-4o-mini-2024-07-18"},
        ))
        service = OpenAIReasoningService(api_key="sk-test")

        with patch.object(OpenAIReasoningService, "_build_chat", return_value=chat):
            completion = await service.complete("system prompt", "user prompt")

        chat.bind.assert_called_once_with(response_format={"type": "json_object"})
        messages = chat.bind.return_value.ainvoke.call_args.args[0]
        assert isinstance(messages[0], SystemMessage) and messages[0].content == "system prompt"
        assert isinstance(messages[1], HumanMessage) and messages[1].content == "user prompt"

        assert completion.text == '{"pillar_id": "P1"}'
        assert completion.token_count == 320
        assert completion.model_identifier == "gpt-4o-mini-2024-07-18"

    async def test_plain_mode_and_fallbacks(self):
        chat = _chat_returning(_reply("x" * 40))
        service = OpenAIReasoningService(api_key="sk-test", model="gpt-4o-mini")

        with patch.object(OpenAIReasoningService, "_build_chat", return_value=chat):
            completion = await service.complete("s" * 40, "u" * 40, json_response=False)

        chat.bind.assert_not_called()
        assert completion.model_identifier == "gpt-4o-mini"
        assert completion.token_count == 30   # (40 + 40 + 40) // 4

    async def test_client_built_once(self):
        chat = _chat_returning(_reply("{}"))
        service = OpenAIReasoningService(api_key="sk-test")

        with patch.object(OpenAIReasoningService, "_build_chat", return_value=chat) as build_chat:
            await service.complete("s", "u")
            await service.complete("s", "u")

        build_chat.assert_called_once()

    def test_from_settings(self, settings):
        configured = settings.model_copy(update={"openai_api_key": "sk-abc", "llm_model": "gpt-4o"})
        service = OpenAIReasoningService.from_settings(configured)
        assert service.configured is True
        assert service.model_identifier == "gpt-4o"


@pytest.mark.unit
def test_estimate_tokens_never_zero():
    assert _estimate_tokens([HumanMessage(content="")]) == 1
