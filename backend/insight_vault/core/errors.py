"""
Domain exceptions for the ingestion & classification pipeline.

Every error raised across a component boundary derives from VaultError and
carries a stable machine-readable `code` plus optional structured `details`.
The HTTP layer (main.py) maps each class to a status code and the uniform
ErrorResponse envelope; services never build HTTP responses themselves.

Propagation policy:
  ConfigurationMissing  : non-fatal; classification → needs_api_key,
                          storage → local backend
  ExtractionDegraded    : non-fatal; absorbed inside the extractor
  ClassificationFailed  : item → error, audit entry still written
  StorageUnavailable    : fatal to that ingestion, no local fallback
  NotFound              : missing item / pillar / topic / video / blob
  ValidationFailed      : rejected before any mutation
  UpstreamUnavailable   : video metadata source failed
"""

from __future__ import annotations

from typing import Any


class VaultError(Exception):
    """Base exception for every domain error raised by the package."""

    code: str = "VAULT_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationMissing(VaultError):
    """A credential or setting required by an optional capability is absent."""

    code = "CONFIGURATION_MISSING"

    def __init__(self, setting: str, message: str | None = None) -> None:
        super().__init__(message or f"Setting '{setting}' is not configured.", {"setting": setting})
        self.setting = setting


class ReasoningUnavailable(ConfigurationMissing):
    """No reasoning-service credential is configured."""

    code = "NEEDS_API_KEY"

    def __init__(self) -> None:
        super().__init__(
            "openai_api_key",
            "Set OPENAI_API_KEY to enable classification.",
        )


class ExtractionDegraded(VaultError):
    """A document could not be parsed; extraction continues with empty text."""

    code = "EXTRACTION_DEGRADED"


class ClassificationFailed(VaultError):
    """
    The reasoning service failed or returned output that could not be used.

    raw_text keeps whatever the service returned (or the error detail) so the
    audit log can show exactly what went wrong.
    """

    code = "CLASSIFICATION_FAILED"

    def __init__(self, message: str, raw_text: str = "", item_id: Any = None) -> None:
        details: dict[str, Any] = {}
        if item_id is not None:
            details["item_id"] = str(item_id)
        super().__init__(message, details)
        self.raw_text = raw_text
        self.item_id = item_id

    def for_item(self, item_id: Any) -> "ClassificationFailed":
        """Return a copy bound to the item whose classification failed."""
        return ClassificationFailed(self.message, raw_text=self.raw_text, item_id=item_id)


class StorageUnavailable(VaultError):
    """The selected storage backend could not complete the operation."""

    code = "STORAGE_UNAVAILABLE"


class NotFound(VaultError):
    """A referenced item, pillar, topic, video or blob does not exist."""

    code = "NOT_FOUND"

    def __init__(self, kind: str, identifier: Any) -> None:
        super().__init__(f"{kind} '{identifier}' was not found.", {"kind": kind, "id": str(identifier)})
        self.kind = kind
        self.identifier = identifier


class ValidationFailed(VaultError):
    """The request names unknown taxonomy ids or violates an input rule."""

    code = "VALIDATION_FAILED"


class InvalidTransition(ValidationFailed):
    """The requested status change is not allowed by the item state machine."""

    code = "INVALID_TRANSITION"

    def __init__(self, item_id: Any, current: str, target: str) -> None:
        super().__init__(
            f"Item '{item_id}' cannot move from '{current}' to '{target}'.",
            {"item_id": str(item_id), "current": current, "target": target},
        )


class UpstreamUnavailable(VaultError):
    """An external metadata source failed or returned an unusable reply."""

    code = "UPSTREAM_UNAVAILABLE"
