from __future__ import annotations

import logging

from portal.domain.approval_requests import required_role_contexts
from portal.domain.dto import RunActionCommand
from portal.domain.lifecycle import ACTION_TRANSITIONS
from portal.domain.models import Submission
from portal.domain.use_cases.approval_registry import ApprovalRequestRegistry
from portal.domain.use_cases.deps import WorkflowDeps
from portal.domain.use_cases.notifications import notify_action
from portal.domain.use_cases.submissions import load_submission
from portal.domain.workflow import apply_workflow_action

COMPONENT_ID = "domain.workflow.run_action"

logger = logging.getLogger("workflow")


async def run_action(deps: WorkflowDeps, cmd: RunActionCommand) -> Submission:
    """Execute a named workflow action.

    Order: validate, transition with audit, persist, rotate approval
    requests, then notify the owner exactly once. Illegal actions raise
    before anything is written.
    """
    async with deps.locks.for_submission(cmd.submission_id):
        submission = await load_submission(deps, cmd.submission_id)
        now = deps.clock()
        updated = apply_workflow_action(submission, cmd.action, now=now, actor=cmd.actor)
        await deps.submissions.save_all([updated])

        transition = ACTION_TRANSITIONS[cmd.action]
        registry = ApprovalRequestRegistry(
            repository=deps.approval_requests,
            notifier=deps.notifier,
            clock=deps.clock,
        )
        await registry.cancel_pending(
            updated,
            reason=transition.supersede_reason or f"Superseded by workflow action {cmd.action}.",
        )
        if transition.opens_review_round:
            await registry.create_requests(updated, required_role_contexts(updated), requested_by=cmd.actor)

        logger.info(
            "workflow action applied",
            extra={
                "submission_id": updated.id,
                "action": cmd.action,
                "lifecycle_status": updated.workflow.lifecycle_status,
            },
        )
        notify_action(deps.notifier, submission=updated, action=cmd.action)
        return updated
