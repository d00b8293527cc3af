"""
Error taxonomy for the duplicate engine.

Caller errors (InvalidInputError, EntityNotFoundError) never mutate anything.
Merge errors carry a MergeContext naming the step that was running, and every
merge step is idempotent, so repeating the same call after any of them is safe.
Only MergeTimeoutError promises that a repeat will make forward progress.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import asyncpg
from sqlalchemy.exc import DBAPIError

# PostgreSQL query_canceled: raised when statement_timeout fires
QUERY_CANCELED_SQLSTATE = "57014"


class MergeStep(str, Enum):
    """Where a preview or merge was when it stopped."""
    VALIDATE = "validate"
    PREVIEW = "preview"
    TRANSFER_EVENTS = "transfer_events"
    TRANSFER_EVENT_VENDORS = "transfer_event_vendors"
    TRANSFER_FAVORITES = "transfer_favorites"
    FOLD = "fold"
    RELOAD = "reload"
    DONE = "done"


@dataclass(frozen=True)
class MergeContext:
    kind: str
    primary_id: str
    duplicate_id: str
    step: MergeStep

    def __str__(self) -> str:
        return (
            f"{self.kind} {self.duplicate_id[:8]} -> {self.primary_id[:8]} "
            f"at step {self.step.value}"
        )

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "primaryId": self.primary_id,
            "duplicateId": self.duplicate_id,
            "step": self.step.value,
        }


class DuplicateEngineError(Exception):
    """Base class for every error the duplicate engine raises."""

    code = "INTERNAL_ERROR"
    retryable = False


class InvalidInputError(DuplicateEngineError):
    """Bad kind tag, identical ids, or threshold out of range."""

    code = "INVALID_INPUT"


class EntityNotFoundError(DuplicateEngineError):
    code = "NOT_FOUND"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")


class MergeError(DuplicateEngineError):
    """A merge step failed. Earlier steps' progress is kept."""

    def __init__(self, context: MergeContext, cause: Optional[BaseException] = None):
        self.context = context
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{self.describe()} ({context}){detail}")

    def describe(self) -> str:
        return "Merge failed"


class MergeConflictError(MergeError):
    """
    A relationship row could not be repointed because of a uniqueness
    violation the skip-and-delete rule did not anticipate, usually a row
    written concurrently between planning and repointing.
    """

    code = "CONFLICT"

    def describe(self) -> str:
        return "Merge conflict"


class MergeTimeoutError(MergeError):
    """The compute budget ran out mid-operation. Retrying is expected to finish the job."""

    code = "RESOURCE_EXHAUSTED"
    retryable = True

    def describe(self) -> str:
        return "Merge timed out"


class MergeStepError(MergeError):
    """Any other failure inside a merge step."""

    def describe(self) -> str:
        return "Merge step failed"


def is_statement_timeout(exc: BaseException) -> bool:
    """
    Classify store-side cancellations as timeouts by type and SQLSTATE.

    SQLAlchemy wraps asyncpg errors in DBAPIError; the adapted driver error
    exposes the SQLSTATE and chains the original asyncpg exception.
    """
    if isinstance(exc, (asyncio.TimeoutError, asyncpg.exceptions.QueryCanceledError)):
        return True
    if isinstance(exc, DBAPIError):
        orig = exc.orig
        for attr in ("sqlstate", "pgcode"):
            if getattr(orig, attr, None) == QUERY_CANCELED_SQLSTATE:
                return True
        return isinstance(
            getattr(orig, "__cause__", None), asyncpg.exceptions.QueryCanceledError
        )
    return False
