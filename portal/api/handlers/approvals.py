from __future__ import annotations

from portal.api.handlers.deps import ApiDeps, actor_from_payload
from portal.api.handlers.submissions import submission_response
from portal.api.schemas import (
    ActorPayload,
    ApprovalQueueResponse,
    ApprovalRequestResponse,
    ApprovalSummaryResponse,
    SubmissionResponse,
)
from portal.domain.dto import DecideApprovalRequestCommand, RecordApprovalDecisionCommand
from portal.domain.models import ActingAs, ApprovalRequest, ApprovalRequestStatus, ApprovalStageStatus
from portal.domain.use_cases.approvals import (
    approval_queue,
    approval_summary,
    decide_approval_request,
    record_approval_decision,
)
from portal.domain.use_cases.submissions import load_submission

COMPONENT_ID_STAGE_DECISION = "api.record_stage_decision"
COMPONENT_ID_REQUEST_DECISION = "api.decide_approval_request"
COMPONENT_ID_SUMMARY = "api.approval_summary"
COMPONENT_ID_QUEUE = "api.approval_queue"


async def record_stage_decision_handler(
    *,
    submission_id: str,
    stage: str,
    decision: ApprovalStageStatus,
    acting_as: ActingAs | None,
    comment: str | None,
    actor: ActorPayload | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    submission = await record_approval_decision(
        api_deps.workflow,
        RecordApprovalDecisionCommand(
            submission_id=submission_id,
            stage=stage,
            decision=decision,
            actor=actor_from_payload(actor),
            acting_as=acting_as,
            comment=comment,
        ),
    )
    return submission_response(submission)


async def decide_request_handler(
    *,
    request_id: str,
    decision: ApprovalRequestStatus,
    comment: str | None,
    actor: ActorPayload | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    submission = await decide_approval_request(
        api_deps.workflow,
        DecideApprovalRequestCommand(
            request_id=request_id,
            decision=decision,
            actor=actor_from_payload(actor),
            comment=comment,
        ),
    )
    return submission_response(submission)


async def approval_summary_handler(*, submission_id: str, api_deps: ApiDeps) -> ApprovalSummaryResponse:
    submission = await load_submission(api_deps.workflow, submission_id)
    summary = await approval_summary(api_deps.workflow, submission_id)
    return ApprovalSummaryResponse(
        submission_id=submission.id,
        review_round=submission.workflow.review_round,
        required_contexts=list(summary.required_contexts),
        pending_count=summary.pending_count,
        all_required_approved=summary.all_required_approved,
        any_rejected=summary.any_rejected,
        any_need_more_info=summary.any_need_more_info,
        items=[approval_request_response(row) for row in summary.rows],
    )


async def approval_queue_handler(*, approver_email: str, api_deps: ApiDeps) -> ApprovalQueueResponse:
    normalized = approver_email.strip().lower()
    rows = await approval_queue(api_deps.workflow, approver_email=normalized)
    return ApprovalQueueResponse(
        approver_email=normalized,
        items=[approval_request_response(row) for row in rows],
    )


def approval_request_response(request: ApprovalRequest) -> ApprovalRequestResponse:
    return ApprovalRequestResponse(
        id=request.id,
        submission_id=request.submission_id,
        entity_type=request.entity_type,
        role_context=request.role_context,
        approver_name=request.approver_name,
        approver_email=request.approver_email,
        status=request.status,
        review_round=request.review_round,
        requested_at=request.requested_at,
        updated_at=request.updated_at,
        decided_at=request.decided_at,
        comment=request.comment,
    )
