from __future__ import annotations

from collections.abc import Mapping
from typing import Literal

# Canonical error vocabulary for all engine operations.
ErrorCode = Literal[
    "not_found",
    "illegal_transition",
    "unknown_stage",
    "stage_not_pending",
    "request_closed",
    "sponsor_not_configured",
    "validation_error",
    "notification_failed",
    "persistence_failed",
    "internal_error",
]

RetryClassification = Literal["recoverable", "terminal"]

CANONICAL_ERROR_CODES: tuple[ErrorCode, ...] = (
    "not_found",
    "illegal_transition",
    "unknown_stage",
    "stage_not_pending",
    "request_closed",
    "sponsor_not_configured",
    "validation_error",
    "notification_failed",
    "persistence_failed",
    "internal_error",
)

# Caller logic errors are terminal; only collaborator faults may be retried.
RECOVERABLE_ERROR_CODES: frozenset[ErrorCode] = frozenset(
    {
        "notification_failed",
        "persistence_failed",
        "internal_error",
    }
)

# Operation-specific allowlist. Codes outside this map are reported
# as internal_error by resolve_operation_error().
OPERATION_ERROR_MAP: Mapping[str, frozenset[ErrorCode]] = {
    "create_submission": frozenset({"validation_error", "persistence_failed", "internal_error"}),
    "update_sponsors": frozenset({"not_found", "validation_error", "persistence_failed", "internal_error"}),
    "run_action": frozenset(
        {
            "not_found",
            "illegal_transition",
            "sponsor_not_configured",
            "persistence_failed",
            "internal_error",
        }
    ),
    "record_approval_decision": frozenset(
        {
            "not_found",
            "unknown_stage",
            "stage_not_pending",
            "validation_error",
            "persistence_failed",
            "internal_error",
        }
    ),
    "decide_approval_request": frozenset(
        {
            "not_found",
            "request_closed",
            "validation_error",
            "persistence_failed",
            "internal_error",
        }
    ),
    "reconcile": frozenset({"not_found", "persistence_failed", "internal_error"}),
    "complete_gating_task": frozenset({"not_found", "validation_error", "persistence_failed", "internal_error"}),
    "get_submission": frozenset({"not_found", "persistence_failed", "internal_error"}),
    "list_submissions": frozenset({"validation_error", "persistence_failed", "internal_error"}),
    "approval_summary": frozenset({"not_found", "persistence_failed", "internal_error"}),
    "approval_queue": frozenset({"validation_error", "persistence_failed", "internal_error"}),
    "notify": frozenset({"notification_failed"}),
}

HTTP_STATUS_BY_CODE: Mapping[ErrorCode, int] = {
    "not_found": 404,
    "illegal_transition": 409,
    "stage_not_pending": 409,
    "request_closed": 409,
    "unknown_stage": 400,
    "sponsor_not_configured": 400,
    "validation_error": 400,
    "notification_failed": 502,
    "persistence_failed": 503,
    "internal_error": 500,
}


def is_canonical_error_code(code: str) -> bool:
    return code in CANONICAL_ERROR_CODES


def classify_error(code: ErrorCode) -> RetryClassification:
    if code in RECOVERABLE_ERROR_CODES:
        return "recoverable"
    return "terminal"


def resolve_operation_error(*, operation: str, code: str) -> ErrorCode:
    allowed = OPERATION_ERROR_MAP.get(operation, frozenset({"internal_error"}))
    if code in allowed and is_canonical_error_code(code):
        return code
    return "internal_error"


def http_status_for(code: ErrorCode) -> int:
    return HTTP_STATUS_BY_CODE.get(code, 500)
