from typing import Any, Optional
from fastapi import HTTPException, status


class FormNotFoundException(HTTPException):
    """Exception raised when a form does not exist in the caller's tenant."""

    def __init__(self, detail: str = "Form not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class AgentNotFoundException(HTTPException):
    """Exception raised when an agent profile does not exist."""

    def __init__(self, detail: str = "Agent not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class SubmissionNotFoundException(HTTPException):
    """Exception raised when a submission does not exist."""

    def __init__(self, detail: str = "Submission not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class FormNotVisibleException(HTTPException):
    """
    Exception raised when an agent submits a form that is not visible to them.

    Carries the visibility outcome so the caller can tell a frozen form
    from an exhausted month.
    """

    def __init__(self, reason: str, visibility: Optional[Any] = None, detail: Optional[str] = None):
        self.reason = reason
        self.visibility = visibility
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail or f"Form is not available for submission: {reason}"
        )


class CycleConflictException(HTTPException):
    """Exception raised when concurrent submissions kept winning the cycle update."""

    def __init__(self, detail: str = "Submission conflicted with concurrent submissions, try again"):
        self.reason = "cycle_conflict"
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )


class SelfReviewForbiddenException(HTTPException):
    """Exception raised when a reviewer tries to review their own submission."""

    def __init__(self, detail: str = "A submission cannot be reviewed by its submitter"):
        self.reason = "self_review_forbidden"
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class AlreadyReviewedException(HTTPException):
    """Exception raised when a submission already has a review decision."""

    def __init__(self, detail: str = "Submission has already been reviewed"):
        self.reason = "already_reviewed"
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )


class RejectionReasonRequiredException(HTTPException):
    """Exception raised when a rejection has no reason."""

    def __init__(self, detail: str = "A rejection reason is required"):
        self.reason = "rejection_reason_required"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail
        )


class InvalidCriteriaException(HTTPException):
    """Exception raised when attachment criteria reference unknown fields or operators."""

    def __init__(self, detail: str = "Invalid visibility criteria"):
        self.reason = "invalid_criteria"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail
        )


class FormConfigurationException(HTTPException):
    """Exception raised when a form's cycle/freeze configuration is inconsistent."""

    def __init__(self, detail: str = "Invalid form configuration"):
        self.reason = "invalid_form_configuration"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail
        )


class ExternalAPIException(HTTPException):
    """Exception raised when external API call fails."""

    def __init__(self, detail: str = "External API call failed"):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=detail
        )


class PermissionDeniedException(HTTPException):
    """Exception raised when an API key acts outside its tenant."""

    def __init__(self, detail: str = "Permission denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )
