"""Error taxonomy for the CRM record layer.

- NotFoundError: single-record fetch with no match.
- RemoteFailureError: table- or row-level failure reported by the backend,
  carrying the backend's message.
- RemoteTransportError: the request never produced a usable response
  (connection error, timeout, 5xx, unparseable body).
- DuplicateAssignmentError: a user already holds an active sales-rep
  assignment.

Form validation errors never become exceptions; the form controller keeps
them as a field -> message map.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a failed CRM operation."""

    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    REMOTE_FAILURE = "remote_failure"
    CONFLICT = "conflict"


class CRMError(Exception):
    """Base class for CRM record layer errors.

    Attributes:
        kind: ErrorKind category for callers that branch on failure type.
        message: Human-readable message, suitable for a notification.
    """

    kind: ErrorKind = ErrorKind.REMOTE_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(CRMError):
    """Raised when a single-record lookup matches nothing."""

    kind = ErrorKind.NOT_FOUND


class RemoteFailureError(CRMError):
    """Raised when the backend reports a table-level or row-level failure."""

    kind = ErrorKind.REMOTE_FAILURE


class RemoteTransportError(RemoteFailureError):
    """Raised when the backend could not be reached or answered garbage."""


class DuplicateAssignmentError(CRMError):
    """Raised when a user is already assigned as an active sales rep."""

    kind = ErrorKind.CONFLICT
