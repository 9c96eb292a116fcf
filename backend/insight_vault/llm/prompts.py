"""
Classification prompt templates.

The system prompt carries the whole taxonomy and the JSON reply contract;
the user prompt carries the display name and the (already capped) content.
"""

from __future__ import annotations

from insight_vault.taxonomy import Taxonomy

_SYSTEM_TEMPLATE = """You are a knowledge classification engine for Insight Vault.
You MUST respond with valid JSON only: no explanation, no markdown, no extra text.

Taxonomy of {pillar_count} pillars (taxonomy version {version}):
{taxonomy}

Return exactly this JSON structure:
{{
  "summary": "2-3 sentence summary in the language of the content",
  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"],
  "pillar_id": "{first_pillar}",
  "pillar_name": "Pillar name in English",
  "topic_id": "{first_topic}",
  "topic_name": "Most relevant topic name",
  "confidence": 0.92,
  "rationale": "One sentence explaining why this pillar was chosen",
  "suggest_new_topic": null
}}

Rules:
- tags: 3-7 lowercase keywords
- confidence: 0.0 to 1.0
- topic_id must be one of the ids listed under the chosen pillar
- suggest_new_topic: only if content does not fit existing topics; otherwise null
- pillar_id must be one of: {pillar_ids}"""


def build_system_prompt(taxonomy: Taxonomy) -> str:
    first = taxonomy.list_pillars()[0]
    return _SYSTEM_TEMPLATE.format(
        pillar_count=len(taxonomy.list_pillars()),
        version=taxonomy.version,
        taxonomy=taxonomy.render_for_prompt(),
        first_pillar=first.id,
        first_topic=first.topics[0].id,
        pillar_ids=", ".join(taxonomy.pillar_ids),
    )


def build_user_prompt(display_name: str, text: str, max_chars: int) -> str:
    return f"Filename: {display_name}\n\nContent:\n{text[:max_chars]}"
