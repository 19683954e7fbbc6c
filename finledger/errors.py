"""
Error taxonomy for the ledger engine.

DESIGN DECISION: Every failure the engine can surface belongs to one of five
kinds, and callers only ever need to catch LedgerError subclasses:

- ValidationError: bad input, raised before any write happens
- NotFoundError: a referenced record does not exist
- ConflictError: duplicate key on an idempotent insert (recovered locally)
- PartialBatchFailure: one item of a batch failed (recorded, not raised)
- UpstreamError: storage or AI collaborator unreachable

The engine never retries. Retry policy belongs to the caller.
"""

from typing import Any, Optional


class LedgerError(Exception):
    """Base exception for everything the engine raises."""
    pass


class ValidationError(LedgerError):
    """
    Input rejected before any write.

    Carries the list of ValidationIssue objects so the caller can show
    every problem at once instead of fixing them one by one.
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []

    @property
    def fields(self) -> list[str]:
        return [issue.field for issue in self.issues]


class NotFoundError(LedgerError):
    """A referenced group, account, invoice or goal is absent."""

    def __init__(self, entity_type: str, entity_id: Any):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ConflictError(LedgerError):
    """Duplicate key on insert."""

    def __init__(self, message: str, key: Optional[tuple] = None):
        super().__init__(message)
        self.key = key


class UpstreamError(LedgerError):
    """
    A collaborator (storage, AI) could not be reached or failed.

    Always raised with `raise ... from original` so the cause is preserved.
    """
    pass


class PartialBatchFailure(LedgerError):
    """
    One item of a multi-item operation failed.

    Never propagated out of a batch: it is recorded on the batch report
    so the rest of the batch completes.
    """

    def __init__(self, item_id: Any, stage: str, cause: BaseException):
        super().__init__(f"{stage} failed for {item_id}: {cause}")
        self.item_id = item_id
        self.stage = stage
        self.cause = cause

    def to_dict(self) -> dict:
        return {
            "item_id": str(self.item_id),
            "stage": self.stage,
            "error_type": type(self.cause).__name__,
            "error": str(self.cause),
        }
