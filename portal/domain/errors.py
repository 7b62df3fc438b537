from __future__ import annotations

from collections.abc import Sequence

from portal.domain.error_taxonomy import ErrorCode


class DomainError(Exception):
    code: ErrorCode = "internal_error"


class DomainValidationError(DomainError):
    code: ErrorCode = "validation_error"


class DomainInvariantError(DomainError):
    pass


class DomainDependencyError(DomainError):
    code: ErrorCode = "persistence_failed"


class SubmissionNotFoundError(DomainError):
    code: ErrorCode = "not_found"

    def __init__(self, submission_id: str) -> None:
        super().__init__(f"submission not found: {submission_id}")
        self.submission_id = submission_id


class ApprovalRequestNotFoundError(DomainError):
    code: ErrorCode = "not_found"

    def __init__(self, request_id: str) -> None:
        super().__init__(f"approval request not found: {request_id}")
        self.request_id = request_id


class IllegalTransitionError(DomainInvariantError):
    code: ErrorCode = "illegal_transition"

    def __init__(self, *, action: str, lifecycle_status: str, allowed_actions: Sequence[str]) -> None:
        allowed = ", ".join(allowed_actions) or "none"
        super().__init__(
            f"Action {action} is not allowed from {lifecycle_status}. Allowed actions: {allowed}."
        )
        self.action = action
        self.lifecycle_status = lifecycle_status
        self.allowed_actions = tuple(allowed_actions)


class UnknownStageError(DomainValidationError):
    code: ErrorCode = "unknown_stage"

    def __init__(self, stage: str) -> None:
        super().__init__(f"Approval stage {stage} is not configured for this submission.")
        self.stage = stage


class StageNotPendingError(DomainInvariantError):
    code: ErrorCode = "stage_not_pending"

    def __init__(self, *, stage: str, status: str) -> None:
        super().__init__(f"Approval stage {stage} is not pending (current status {status}).")
        self.stage = stage
        self.status = status


class ApprovalRequestClosedError(DomainInvariantError):
    code: ErrorCode = "request_closed"

    def __init__(self, *, request_id: str, status: str) -> None:
        super().__init__(f"Approval request {request_id} is already {status}.")
        self.request_id = request_id
        self.status = status


class SponsorNotConfiguredError(DomainValidationError):
    code: ErrorCode = "sponsor_not_configured"

    def __init__(self, submission_id: str) -> None:
        super().__init__(f"Submission {submission_id} has no business sponsor or delegate configured.")
        self.submission_id = submission_id
