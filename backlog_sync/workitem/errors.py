"""
Error taxonomy for backlog synchronization.

Transport-level transient failures are retried inside the gateway and only
surface as GatewayUnavailable once retries are exhausted. Everything else
propagates immediately with the identifier, field and HTTP status that
produced it.
"""


class BacklogSyncError(Exception):
    """Base class for all backlog-sync errors."""

    def __init__(
        self,
        message: str,
        *,
        item_id: int | None = None,
        field: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.item_id = item_id
        self.field = field
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "item_id": self.item_id,
            "field": self.field,
            "status_code": self.status_code,
        }


class InvalidSpec(BacklogSyncError, ValueError):
    """Malformed caller input. Never retried."""


# --- Gateway errors ---


class GatewayError(BacklogSyncError):
    """Failure talking to the tracking service."""


class RequestRejected(GatewayError):
    """The service refused the request (4xx other than 429). Never retried."""


class GatewayUnavailable(GatewayError):
    """Transient transport failure that persisted after all retries."""

    def __init__(self, message: str, *, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class DeadlineExceeded(GatewayUnavailable):
    """The caller's overall deadline passed before the call could complete."""


# --- Reorder preconditions ---


class ReorderPreconditionError(BacklogSyncError):
    """A reorder intent cannot be resolved against the context set."""


class EmptyIntent(ReorderPreconditionError):
    """The intent names no identifiers to move."""


class UnknownAnchor(ReorderPreconditionError):
    """AFTER/BEFORE references an identifier outside the context set."""


class DuplicateIdentifier(ReorderPreconditionError):
    """An identifier appears more than once in an intent."""


class OrderResolutionError(BacklogSyncError):
    """New order values could not be computed even after renumbering."""
