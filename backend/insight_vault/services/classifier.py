"""
Classifier

Turns extracted text into a taxonomy-grounded classification.

Flow per call:
  1. Refuse early with ReasoningUnavailable when no credential is configured
     (nothing is invoked, no audit draft is produced).
  2. Build the grounding prompt (full taxonomy + display name + capped text).
  3. complete(json_response=True) on the reasoning service.
  4. Parse → validate → normalise → resolve against the taxonomy.
  5. Return ClassificationAttempt(outcome, log): outcome is either a
     ClassificationResult or a ClassificationFailed, and log is exactly one
     LogEntryDraft whatever happened after step 1.

Model output is untrusted: pillar/topic names are always taken from the
taxonomy, never from the reply.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from insight_vault.core.errors import ClassificationFailed, ReasoningUnavailable
from insight_vault.llm.gateway import ReasoningService
from insight_vault.llm.prompts import build_system_prompt, build_user_prompt
from insight_vault.services.ledger import LogEntryDraft
from insight_vault.taxonomy import Taxonomy

logger = logging.getLogger(__name__)

MAX_TAGS = 7


# ---------------------------------------------------------------------------
# Outcome types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClassificationResult:
    summary:         str
    tags:            list[str]
    pillar_id:       str
    pillar_name:     str
    topic_id:        str
    topic_name:      str
    confidence:      float
    rationale:       str
    suggested_topic: str | None = None

    def as_item_fields(self) -> dict[str, Any]:
        return {
            "summary":         self.summary,
            "tags":            list(self.tags),
            "pillar_id":       self.pillar_id,
            "pillar_name":     self.pillar_name,
            "topic_id":        self.topic_id,
            "topic_name":      self.topic_name,
            "confidence":      self.confidence,
            "rationale":       self.rationale,
            "suggested_topic": self.suggested_topic,
        }


Outcome = Union[ClassificationResult, ClassificationFailed]


@dataclass(frozen=True)
class ClassificationAttempt:
    outcome: Outcome
    log:     LogEntryDraft

    @property
    def succeeded(self) -> bool:
        return isinstance(self.outcome, ClassificationResult)

    def unwrap(self) -> ClassificationResult:
        if isinstance(self.outcome, ClassificationFailed):
            raise self.outcome
        return self.outcome


# ---------------------------------------------------------------------------
# Reply validation
# ---------------------------------------------------------------------------

def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return json.dumps(value, ensure_ascii=False) if isinstance(value, (dict, list)) else str(value)


class _ModelReply(BaseModel):
    """Shape of the JSON object the model is asked to return."""

    model_config = ConfigDict(extra="ignore")

    summary:           str = ""
    tags:              list[str] = []
    pillar_id:         str | None = None
    topic_id:          str | None = None
    topic_name:        str | None = None
    confidence:        float
    rationale:         str = ""
    suggest_new_topic: str | None = None

    @field_validator("summary", "rationale", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("pillar_id", "topic_id", "topic_name", "suggest_new_topic", mode="before")
    @classmethod
    def _coerce_optional(cls, v: Any) -> str | None:
        text = _as_text(v)
        return text or None

    @field_validator("tags", mode="before")
    @classmethod
    def _normalise_tags(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple)):
            return []
        seen: list[str] = []
        for raw in v:
            tag = _as_text(raw).lower()
            if tag and tag not in seen:
                seen.append(tag)
        return seen[:MAX_TAGS]

    @field_validator("confidence", mode="before")
    @classmethod
    def _finite_confidence(cls, v: Any) -> float:
        if isinstance(v, bool):
            raise ValueError("confidence must be a number")
        try:
            value = float(v)
        except (TypeError, ValueError) as exc:
            raise ValueError("confidence must be a number") from exc
        if not math.isfinite(value):
            raise ValueError("confidence must be finite")
        return min(1.0, max(0.0, value))


# ---------------------------------------------------------------------------
# Classifier
# ---------------------------------------------------------------------------

class Classifier:
    def __init__(
        self,
        taxonomy:  Taxonomy,
        reasoning: ReasoningService,
        max_chars: int = 4000,
    ) -> None:
        self._taxonomy      = taxonomy
        self._reasoning     = reasoning
        self._max_chars     = max_chars
        self._system_prompt = build_system_prompt(taxonomy)

    @property
    def configured(self) -> bool:
        return self._reasoning.configured

    async def classify(self, text: str, display_name: str) -> ClassificationAttempt:
        if not self._reasoning.configured:
            raise ReasoningUnavailable()

        user_prompt = build_user_prompt(display_name, text, self._max_chars)

        try:
            completion = await self._reasoning.complete(
                self._system_prompt, user_prompt, json_response=True,
            )
        except ReasoningUnavailable:
            raise
        except Exception as exc:
            logger.error("Reasoning call failed | name=%s error=%s", display_name, exc)
            detail = f"{type(exc).__name__}: {exc}"
            return ClassificationAttempt(
                outcome=ClassificationFailed(f"Reasoning service error: {exc}", raw_text=detail),
                log=LogEntryDraft(
                    prompt_text=user_prompt,
                    raw_response_text=detail,
                    model_identifier=self._reasoning.model_identifier,
                    token_count=0,
                    succeeded=False,
                ),
            )

        outcome = self._interpret(completion.text)
        if isinstance(outcome, ClassificationFailed):
            logger.warning(
                "Classification rejected | name=%s reason=%s", display_name, outcome.message,
            )
        else:
            logger.info(
                "Classified | name=%s pillar=%s topic=%s confidence=%.2f",
                display_name, outcome.pillar_id, outcome.topic_id, outcome.confidence,
            )

        return ClassificationAttempt(
            outcome=outcome,
            log=LogEntryDraft(
                prompt_text=user_prompt,
                raw_response_text=completion.text,
                model_identifier=completion.model_identifier,
                token_count=completion.token_count,
                succeeded=isinstance(outcome, ClassificationResult),
            ),
        )

    def _interpret(self, raw: str) -> Outcome:
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as exc:
            return ClassificationFailed(f"Reply is not valid JSON: {exc}", raw_text=raw or "")

        if not isinstance(payload, dict):
            return ClassificationFailed("Reply is not a JSON object", raw_text=raw)

        try:
            reply = _ModelReply.model_validate(payload)
        except ValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in e["loc"]) for e in exc.errors())
            return ClassificationFailed(f"Reply failed validation: {fields}", raw_text=raw)

        return self._resolve(reply)

    def _resolve(self, reply: _ModelReply) -> ClassificationResult:
        topic_id = reply.topic_id
        if reply.pillar_id in self._taxonomy.pillar_ids:
            pillar = self._taxonomy.find_pillar(reply.pillar_id)
            if pillar.topic(topic_id) is None:
                by_name = self._taxonomy.find_topic_by_name(pillar.id, reply.topic_name)
                if by_name is not None:
                    topic_id = by_name.id

        pillar, topic = self._taxonomy.resolve_or_default(reply.pillar_id, topic_id)

        return ClassificationResult(
            summary=reply.summary,
            tags=reply.tags,
            pillar_id=pillar.id,
            pillar_name=pillar.name_primary,
            topic_id=topic.id,
            topic_name=topic.name,
            confidence=reply.confidence,
            rationale=reply.rationale,
            suggested_topic=reply.suggest_new_topic,
        )
