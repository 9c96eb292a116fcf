"""
Immutable two-level catalogue (pillars → topics).

Loaded once from the catalogue and read-only afterwards: Pillar and Topic are
frozen dataclasses and topic collections are tuples, so no caller can mutate
the shared instance returned by default_taxonomy().

Lookup contract:
  find_pillar, find_topic    → raise NotFound
  validate                   → raise ValidationFailed (operator input)
  resolve_or_default         → never raises; falls back to (P1, P1.01)

resolve_or_default exists because classifier output is untrusted external
data and an item must never be persisted with a dangling taxonomy reference.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable

from insight_vault.core.errors import NotFound, ValidationFailed
from insight_vault.taxonomy.catalog import PILLARS, TAXONOMY_VERSION


@dataclass(frozen=True)
class Topic:
    id:        str   # "P3.07"
    name:      str
    pillar_id: str


@dataclass(frozen=True)
class Pillar:
    id:             str               # "P3"
    name_primary:   str               # English
    name_secondary: str               # Portuguese
    topics:         tuple[Topic, ...]

    def topic(self, topic_id: str | None) -> Topic | None:
        """Return the topic with this id, or None."""
        if not topic_id:
            return None
        for t in self.topics:
            if t.id == topic_id:
                return t
        return None


def topic_id_for(pillar_id: str, position: int) -> str:
    """Build the stable topic id for a 1-based position inside a pillar."""
    return f"{pillar_id}.{position:02d}"


def _fold(value: str) -> str:
    """Case- and accent-insensitive comparison key."""
    decomposed = unicodedata.normalize("NFKD", value.strip().casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


class Taxonomy:
    """Read-only pillar/topic catalogue with lookup and validation helpers."""

    def __init__(self, pillars: Iterable[Pillar], version: str = TAXONOMY_VERSION) -> None:
        self._pillars: tuple[Pillar, ...] = tuple(pillars)
        if not self._pillars:
            raise ValueError("Taxonomy requires at least one pillar")
        if any(not p.topics for p in self._pillars):
            raise ValueError("Every pillar requires at least one topic")

        ids = [p.id for p in self._pillars]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate pillar ids in taxonomy: {ids}")
        for p in self._pillars:
            topic_ids = [t.id for t in p.topics]
            if len(topic_ids) != len(set(topic_ids)):
                raise ValueError(f"Duplicate topic ids in pillar {p.id}")

        self._by_id = {p.id: p for p in self._pillars}
        self.version = version

    @classmethod
    def from_catalog(cls, raw: list[dict], version: str = TAXONOMY_VERSION) -> "Taxonomy":
        pillars = []
        for entry in raw:
            pid = entry["id"]
            topics = tuple(
                Topic(id=topic_id_for(pid, i), name=name, pillar_id=pid)
                for i, name in enumerate(entry["topics"], start=1)
            )
            pillars.append(
                Pillar(
                    id=pid,
                    name_primary=entry["name_en"],
                    name_secondary=entry.get("name_pt", entry["name_en"]),
                    topics=topics,
                )
            )
        return cls(pillars, version=version)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def list_pillars(self) -> tuple[Pillar, ...]:
        return self._pillars

    @property
    def pillar_ids(self) -> tuple[str, ...]:
        return tuple(p.id for p in self._pillars)

    def find_pillar(self, pillar_id: str) -> Pillar:
        pillar = self._by_id.get(pillar_id)
        if pillar is None:
            raise NotFound("pillar", pillar_id)
        return pillar

    def find_topic(self, pillar_id: str, topic_id: str) -> Topic:
        topic = self.find_pillar(pillar_id).topic(topic_id)
        if topic is None:
            raise NotFound("topic", topic_id)
        return topic

    def find_topic_by_name(self, pillar_id: str | None, name: str | None) -> Topic | None:
        """Case/accent-insensitive topic name lookup within one pillar."""
        pillar = self._by_id.get(pillar_id or "")
        if pillar is None or not name:
            return None
        key = _fold(name)
        for t in pillar.topics:
            if _fold(t.name) == key:
                return t
        return None

    def resolve_or_default(
        self,
        pillar_id: str | None,
        topic_id: str | None,
    ) -> tuple[Pillar, Topic]:
        """
        Return (pillar, topic) when the pair is valid; otherwise the first
        pillar and its first topic. Never raises.
        """
        pillar = self._by_id.get(pillar_id or "")
        topic = pillar.topic(topic_id) if pillar else None
        if pillar is None or topic is None:
            first = self._pillars[0]
            return first, first.topics[0]
        return pillar, topic

    def validate(self, pillar_id: str, topic_id: str) -> tuple[Pillar, Topic]:
        """Strict lookup for operator input; raises ValidationFailed."""
        pillar = self._by_id.get(pillar_id)
        if pillar is None:
            raise ValidationFailed(
                f"Unknown pillar '{pillar_id}'.",
                {"pillar_id": pillar_id, "allowed": list(self.pillar_ids)},
            )
        topic = pillar.topic(topic_id)
        if topic is None:
            raise ValidationFailed(
                f"Topic '{topic_id}' does not belong to pillar '{pillar_id}'.",
                {"pillar_id": pillar_id, "topic_id": topic_id},
            )
        return pillar, topic

    # ------------------------------------------------------------------
    # Prompt rendering
    # ------------------------------------------------------------------

    def render_for_prompt(self) -> str:
        """Every pillar and every topic, one pillar block per line group."""
        blocks = []
        for p in self._pillars:
            topics = "; ".join(f"{t.id} {t.name}" for t in p.topics)
            blocks.append(f"{p.id}: {p.name_primary} ({p.name_secondary})\n  Topics: {topics}")
        return "\n".join(blocks)


@lru_cache(maxsize=1)
def default_taxonomy() -> Taxonomy:
    """Process-wide taxonomy built from the bundled catalogue."""
    return Taxonomy.from_catalog(PILLARS)
