"""Error taxonomy shared by the mutation core and its host."""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for every error the core raises on purpose."""

    code = "TRACKER_ERROR"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        details: dict | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if retryable is not None:
            self.retryable = retryable


class ValidationError(TrackerError):
    """Malformed input caught defensively inside the core."""

    code = "VALIDATION_ERROR"


class NotFoundError(TrackerError):
    """A referenced task, tag, project or notification does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: object):
        super().__init__(
            f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidStatusError(TrackerError):
    """Status value outside the enum, or a forbidden transition."""

    code = "INVALID_STATUS"


class ConflictError(TrackerError):
    """Unique violation or a write conflict reported by the store.

    Write conflicts (lock contention, serialization failures) are raised with
    ``retryable=True``; duplicate keys are not retryable.
    """

    code = "CONFLICT"


class ConstraintError(TrackerError):
    """Foreign-key, check or not-null violation reported by the store."""

    code = "CONSTRAINT_VIOLATION"


class TransactionTimeoutError(TrackerError):
    """The unit of work exceeded its deadline and was rolled back."""

    code = "TRANSACTION_TIMEOUT"
    retryable = True
