"""Error taxonomy for the leave lifecycle.

Rule violations use Django's own ``ValidationError`` so forms, the admin and
the workflow share one type; everything else derives from
``LeaveWorkflowError`` and carries the HTTP status a view should answer with.
"""
from __future__ import annotations

from django.core.exceptions import PermissionDenied, ValidationError

__all__ = [
    "ApprovalLockedError",
    "ConflictError",
    "DependencyError",
    "ForbiddenError",
    "LeaveWorkflowError",
    "NoApproverFound",
    "NotFoundError",
    "ValidationError",
]


class LeaveWorkflowError(Exception):
    status_code = 400
    default_message = "Leave request could not be processed."

    def __init__(self, message: str = "") -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(LeaveWorkflowError):
    status_code = 404
    default_message = "Leave request not found"


class NoApproverFound(NotFoundError):
    default_message = "No approver found"


class ConflictError(LeaveWorkflowError):
    status_code = 409
    default_message = "Request already processed"


class ForbiddenError(LeaveWorkflowError, PermissionDenied):
    status_code = 403
    default_message = "You are not authorized to act on this request"


class ApprovalLockedError(LeaveWorkflowError):
    status_code = 423
    default_message = "Approvals are locked while the payroll recap is in progress."


class DependencyError(LeaveWorkflowError):
    """A collaborator (ledger, mail, storage) failed after or during a transition."""

    status_code = 502
    default_message = "A dependent service failed"
