"""
Approval error taxonomy.

Every failure the engine raises is an HTTPException subclass whose detail is
already in the {"error": {"code": ..., "message": ...}} shape produced by the
global handler in main.py, so services can raise them directly and callers
outside HTTP can still switch on `.code`.

  NotFoundError          404  policy / request / assignment missing
  ConflictError          409  duplicate code, request terminal, slot resolved
  ForbiddenError         403  caller not assigned / not allowed
  ValidationError        422  bad input (comments, approver list, labels)
  MisconfigurationError  422  policy cannot be resolved against the directory
"""

from typing import Optional

from fastapi import HTTPException, status as http_status


class ApprovalError(HTTPException):
    status_code: int = http_status.HTTP_400_BAD_REQUEST
    code: str = "APPROVAL_ERROR"
    message: str = "Approval operation failed"

    def __init__(self, message: Optional[str] = None, **extra):
        self.message = message or self.message
        error = {"code": self.code, "message": self.message}
        error.update(extra)
        super().__init__(status_code=self.status_code, detail={"error": error})

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NotFoundError(ApprovalError):
    status_code = http_status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(ApprovalError):
    status_code = http_status.HTTP_409_CONFLICT
    code = "CONFLICT"


class ForbiddenError(ApprovalError):
    status_code = http_status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class ValidationError(ApprovalError):
    status_code = http_status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class MisconfigurationError(ApprovalError):
    status_code = http_status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "MISCONFIGURATION"


# ---------- not found ----------


class PolicyNotFound(NotFoundError):
    code = "APPROVAL_TYPE_NOT_FOUND"
    message = "Approval type not found"


class RequestNotFound(NotFoundError):
    code = "APPROVAL_REQUEST_NOT_FOUND"
    message = "Approval request not found"


# ---------- conflict ----------


class RequestClosed(ConflictError):
    code = "APPROVAL_REQUEST_CLOSED"
    message = "Approval request is no longer pending"


class AssignmentClosed(ConflictError):
    code = "APPROVAL_ASSIGNMENT_CLOSED"
    message = "Approval assignment has already been resolved"


class DuplicatePolicyCode(ConflictError):
    code = "APPROVAL_TYPE_DUPLICATE_CODE"
    message = "Approval type code already exists"


class PolicyInUse(ConflictError):
    code = "APPROVAL_TYPE_IN_USE"
    message = "Approval type is referenced by approval requests"


class DelegateAlreadyAssigned(ConflictError):
    code = "APPROVAL_DELEGATE_ALREADY_ASSIGNED"
    message = "Delegate already holds an open assignment on this request"


# ---------- forbidden ----------


class PolicyInactive(ForbiddenError):
    code = "APPROVAL_TYPE_INACTIVE"
    message = "Approval type is not active"


class NotAssigned(ForbiddenError):
    code = "APPROVAL_NOT_ASSIGNED"
    message = "You are not assigned to approve this request"


class CancelForbidden(ForbiddenError):
    code = "APPROVAL_CANCEL_FORBIDDEN"
    message = "Only the requester or an admin can cancel this request"


class DelegationNotAllowed(ForbiddenError):
    code = "APPROVAL_DELEGATION_NOT_ALLOWED"
    message = "Approval type does not allow delegation"


# ---------- validation ----------


class CommentsRequired(ValidationError):
    code = "APPROVAL_COMMENTS_REQUIRED"
    message = "Comments are required for this response"


class InvalidResponse(ValidationError):
    code = "APPROVAL_INVALID_RESPONSE"
    message = "Response is not one of the approval type's response options"


class EmptyApproverList(ValidationError):
    code = "APPROVAL_EMPTY_APPROVER_LIST"
    message = "Approval type does not define any approvers"


class MalformedApproverSpec(ValidationError):
    code = "APPROVAL_MALFORMED_APPROVER"
    message = "Approver entry must name exactly one of user_id or role"


class SelfDelegation(ValidationError):
    code = "APPROVAL_SELF_DELEGATION"
    message = "Cannot delegate an assignment to its current approver"


# ---------- misconfiguration ----------


class ApproverResolutionError(MisconfigurationError):
    code = "APPROVAL_APPROVER_UNRESOLVED"
    message = "Approver role must resolve to exactly one active user"


class InvalidTransition(RuntimeError):
    """Raised when code attempts a non-monotonic request status change."""
