"""
Non-critical step wrapper.

Some side actions (sharing a stored blob with its owner, publishing progress)
must never change the success of the operation that triggered them. They are
run through run_non_critical(), which logs the failure and returns it as a
StepOutcome the caller can inspect or attach to its own result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    """Result of a best-effort side action."""
    step:  str
    ok:    bool
    error: str | None = None


async def run_non_critical(step: str, action: Awaitable[object], **context: object) -> StepOutcome:
    """
    Await `action`; a failure is logged at WARNING and reported, never raised.

    `context` is only used for the log line (e.g. blob_id=…).
    """
    try:
        await action
    except Exception as exc:
        ctx = " ".join(f"{k}={v}" for k, v in context.items())
        logger.warning("Non-critical step failed | step=%s %s error=%s", step, ctx, exc)
        return StepOutcome(step=step, ok=False, error=str(exc))
    return StepOutcome(step=step, ok=True)
