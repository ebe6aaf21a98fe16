"""Exceptions raised by the complaint lifecycle services.

Each error carries the HTTP status the API layer should answer with, so
routers can translate the whole family with a single handler.
"""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for failures surfaced to the caller of the engine."""

    status_code: int = 400

    def __init__(self, message: str, *, complaint_ref: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.complaint_ref = complaint_ref


class ComplaintNotFoundError(LifecycleError):
    status_code = 404

    def __init__(self, complaint_ref: str) -> None:
        super().__init__(f"Complaint {complaint_ref} not found", complaint_ref=complaint_ref)


class TransitionForbiddenError(LifecycleError):
    status_code = 403


class InvalidAssigneeError(LifecycleError):
    status_code = 422


class MissingResolutionProofError(LifecycleError):
    status_code = 422


class CommentValidationError(LifecycleError, ValueError):
    status_code = 422


class ConflictError(LifecycleError):
    """The record changed between read and write (lost-update guard)."""

    status_code = 409

    def __init__(self, complaint_ref: str, *, expected: int, actual: int | None) -> None:
        super().__init__(
            f"Complaint {complaint_ref} was modified concurrently "
            f"(expected version {expected}, found {actual})",
            complaint_ref=complaint_ref,
        )
        self.expected = expected
        self.actual = actual


class PersistenceError(LifecycleError):
    """The complaint store could not commit the write."""

    status_code = 503
