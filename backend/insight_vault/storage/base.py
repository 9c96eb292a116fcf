"""
Storage backend contract.

A backend stores original upload bytes under an opaque blob id and can read
or delete them again. The gateway picks exactly one backend for writes at
start-up; reads are routed by the StorageRef recorded on the item.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from insight_vault.core.steps import StepOutcome


class StorageBackendKind(str, Enum):
    REMOTE = "remote"
    LOCAL  = "local"


@dataclass(frozen=True)
class StorageRef:
    """
    Where an item's original bytes live.

    backend     : which backend wrote the blob
    blob_id     : S3 object key (remote) or filesystem path (local)
    locator_url : browsable URL for remote blobs; None for local
    steps       : outcomes of best-effort side actions run during store()
    """
    backend:     StorageBackendKind
    blob_id:     str
    locator_url: str | None = None
    steps:       tuple[StepOutcome, ...] = field(default=(), compare=False)

    @property
    def diagnostics(self) -> list[str]:
        return [f"{s.step}: {s.error}" for s in self.steps if not s.ok]


class StorageBackend(ABC):
    """Interface every storage backend implements."""

    kind: StorageBackendKind

    @abstractmethod
    async def store(
        self,
        data: bytes,
        *,
        item_id: UUID,
        display_name: str,
        media_type: str,
    ) -> StorageRef:
        """Persist bytes and return a reference to them."""

    @abstractmethod
    async def fetch(self, blob_id: str) -> bytes:
        """Return the stored bytes; raise NotFound when the blob is gone."""

    @abstractmethod
    async def delete(self, blob_id: str) -> None:
        """Remove the blob; a missing blob is not an error."""
