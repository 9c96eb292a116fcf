"""
Reasoning Package

Adapter over the external classification model plus the prompt templates
that ground it in the taxonomy.

Public API::

    from insight_vault.llm import OpenAIReasoningService

    service = OpenAIReasoningService.from_settings(settings)
    completion = await service.complete(system_prompt, user_prompt)
"""

from insight_vault.llm.gateway import Completion, OpenAIReasoningService, ReasoningService
from insight_vault.llm.prompts import build_system_prompt, build_user_prompt

__all__ = [
    "Completion",
    "OpenAIReasoningService",
    "ReasoningService",
    "build_system_prompt",
    "build_user_prompt",
]
