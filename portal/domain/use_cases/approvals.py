from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import logging

from portal.domain.approval_requests import (
    REQUEST_STATUS_FOR_STAGE,
    ROLE_CONTEXT_STAGE,
    STAGE_STATUS_FOR_REQUEST,
    current_round_requests,
    role_contexts_for_stage,
)
from portal.domain.approval_stages import find_stage, record_stage_decision
from portal.domain.audit import record_transition
from portal.domain.dto import DecideApprovalRequestCommand, RecordApprovalDecisionCommand
from portal.domain.errors import ApprovalRequestNotFoundError, DomainValidationError, UnknownStageError
from portal.domain.models import (
    ActingAs,
    Actor,
    ApprovalRequest,
    ApprovalRequestStatus,
    ApprovalStageCode,
    ApprovalStageStatus,
    ApprovalSummary,
    RoleContext,
    Submission,
)
from portal.domain.use_cases.approval_registry import ApprovalRequestRegistry
from portal.domain.use_cases.deps import WorkflowDeps
from portal.domain.use_cases.reconcile import reconcile_locked
from portal.domain.use_cases.submissions import load_submission

COMPONENT_ID_STAGE_DECISION = "domain.approvals.stage_decision"
COMPONENT_ID_REQUEST_DECISION = "domain.approvals.request_decision"

STAGE_DECISION_ACTION = "UPDATED"

logger = logging.getLogger("workflow")


def _registry(deps: WorkflowDeps) -> ApprovalRequestRegistry:
    return ApprovalRequestRegistry(repository=deps.approval_requests, notifier=deps.notifier, clock=deps.clock)


async def record_approval_decision(deps: WorkflowDeps, cmd: RecordApprovalDecisionCommand) -> Submission:
    """Decide one approval stage, mirror it onto open requests, then reconcile once."""
    if cmd.decision == ApprovalStageStatus.PENDING:
        raise DomainValidationError("PENDING is not a decision")
    try:
        stage = ApprovalStageCode(str(cmd.stage).upper())
    except ValueError:
        raise UnknownStageError(str(cmd.stage)) from None

    async with deps.locks.for_submission(cmd.submission_id):
        submission = await load_submission(deps, cmd.submission_id)
        now = deps.clock()
        updated = _decide_stage(
            submission,
            stage=stage,
            status=cmd.decision,
            now=now,
            actor=cmd.actor,
            acting_as=cmd.acting_as,
            comment=cmd.comment,
        )
        await deps.submissions.save_all([updated])

        registry = _registry(deps)
        rows = await deps.approval_requests.list_for_submission(submission_id=updated.id)
        contexts = set(role_contexts_for_stage(stage))
        for row in current_round_requests(updated, rows):
            if row.role_context in contexts and row.status == ApprovalRequestStatus.PENDING:
                await registry.decide(
                    row,
                    decision=REQUEST_STATUS_FOR_STAGE[cmd.decision],
                    actor=cmd.actor,
                    comment=cmd.comment,
                )

        logger.info(
            "approval stage decided",
            extra={"submission_id": updated.id, "action": STAGE_DECISION_ACTION, "stage": stage},
        )
        reconciled, _ = await reconcile_locked(deps, updated, actor=cmd.actor)
        return reconciled


async def decide_approval_request(deps: WorkflowDeps, cmd: DecideApprovalRequestCommand) -> Submission:
    """Record an approver's answer on a request, mirror it onto its stage, then reconcile once."""
    request = await deps.approval_requests.get(request_id=cmd.request_id)
    if request is None:
        raise ApprovalRequestNotFoundError(cmd.request_id)

    async with deps.locks.for_submission(request.submission_id):
        submission = await load_submission(deps, request.submission_id)
        request = await deps.approval_requests.get(request_id=cmd.request_id) or request
        decided = await _registry(deps).decide(
            request,
            decision=cmd.decision,
            actor=cmd.actor,
            comment=cmd.comment,
        )

        if _is_current_round(submission, decided):
            stage = ROLE_CONTEXT_STAGE[decided.role_context]
            record = find_stage(submission.approval_stages, stage)
            if record is not None and record.status == ApprovalStageStatus.PENDING:
                submission = _decide_stage(
                    submission,
                    stage=stage,
                    status=STAGE_STATUS_FOR_REQUEST[decided.status],
                    now=deps.clock(),
                    actor=cmd.actor,
                    acting_as=_acting_as(decided.role_context),
                    comment=cmd.comment,
                )
                await deps.submissions.save_all([submission])

        logger.info(
            "approval request decided",
            extra={"submission_id": submission.id, "action": decided.status, "request_id": decided.id},
        )
        reconciled, _ = await reconcile_locked(deps, submission, actor=cmd.actor)
        return reconciled


async def approval_summary(deps: WorkflowDeps, submission_id: str) -> ApprovalSummary:
    submission = await load_submission(deps, submission_id)
    return await _registry(deps).summarize(submission)


async def approval_queue(deps: WorkflowDeps, *, approver_email: str) -> list[ApprovalRequest]:
    return await _registry(deps).list_open_for_approver(approver_email=approver_email)


def _decide_stage(
    submission: Submission,
    *,
    stage: ApprovalStageCode,
    status: ApprovalStageStatus,
    now: datetime,
    actor: Actor | None,
    acting_as: ActingAs | None,
    comment: str | None,
) -> Submission:
    stages = record_stage_decision(
        submission.approval_stages,
        stage=stage,
        status=status,
        decided_at=now,
        decided_by_user_id=actor.user_id if actor else None,
        acting_as=acting_as,
        comment=comment,
    )
    updated = replace(submission, approval_stages=stages, updated_at=now)
    return record_transition(
        updated,
        action=STAGE_DECISION_ACTION,
        note=f"{stage} approval marked {status}.",
        now=now,
        actor=actor,
    )


def _is_current_round(submission: Submission, request: ApprovalRequest) -> bool:
    return request in current_round_requests(submission, [request])


def _acting_as(role_context: RoleContext) -> ActingAs:
    if role_context == RoleContext.BUSINESS_DELEGATE:
        return ActingAs.DELEGATE
    return ActingAs.SPONSOR
