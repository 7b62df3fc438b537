from __future__ import annotations

from datetime import datetime
import logging

from portal.domain.dto import ReconcileCommand
from portal.domain.lifecycle import entity_type_for
from portal.domain.ids import new_task_id
from portal.domain.models import (
    Actor,
    EntityType,
    GovernanceLane,
    LifecycleStatus,
    ProjectManagementTask,
    Submission,
    TaskStatus,
)
from portal.domain.reconciliation import GatingSignals, reconcile_submission
from portal.domain.use_cases.approval_registry import ApprovalRequestRegistry
from portal.domain.use_cases.deps import WorkflowDeps
from portal.domain.use_cases.notifications import notify_reconciled
from portal.domain.use_cases.submissions import load_submission

COMPONENT_ID = "domain.workflow.reconcile"
ASSIGN_PROJECT_MANAGER = "ASSIGN_PROJECT_MANAGER"

_GATED_STATES = frozenset({LifecycleStatus.AT_PGO_FGO_REVIEW, LifecycleStatus.FR_AT_PGO_FGO_REVIEW})

logger = logging.getLogger("workflow")


async def reconcile(deps: WorkflowDeps, cmd: ReconcileCommand) -> Submission:
    """Advance the submission by at most one transition; no-op when nothing is due."""
    async with deps.locks.for_submission(cmd.submission_id):
        submission = await load_submission(deps, cmd.submission_id)
        reconciled, _ = await reconcile_locked(deps, submission, actor=cmd.actor)
        return reconciled


async def reconcile_locked(
    deps: WorkflowDeps,
    submission: Submission,
    *,
    actor: Actor | None = None,
) -> tuple[Submission, bool]:
    """Reconcile a submission whose lock the caller already holds."""
    registry = ApprovalRequestRegistry(
        repository=deps.approval_requests,
        notifier=deps.notifier,
        clock=deps.clock,
    )
    now = deps.clock()
    summary = await registry.summarize(submission)
    gating = _gating_signals(deps, submission)
    reconciled = reconcile_submission(submission, summary=summary, gating=gating, now=now, actor=actor)
    changed = reconciled is not submission

    if changed:
        await deps.submissions.save_all([reconciled])
        logger.info(
            "workflow reconciled",
            extra={
                "submission_id": submission.id,
                "lifecycle_status": reconciled.workflow.lifecycle_status,
                "action": "WORKFLOW_RECONCILED",
            },
        )

    if changed and reconciled.workflow.lifecycle_status == LifecycleStatus.FR_APPROVED:
        await ensure_project_manager_task(deps, reconciled, now=now)

    if changed:
        notify_reconciled(deps.notifier, submission=reconciled)
    return reconciled, changed


async def ensure_project_manager_task(
    deps: WorkflowDeps,
    submission: Submission,
    *,
    now: datetime,
) -> ProjectManagementTask:
    existing = await deps.tasks.find_open(project_id=submission.id, task_type=ASSIGN_PROJECT_MANAGER)
    if existing is not None:
        return existing
    task = ProjectManagementTask(
        id=new_task_id(),
        project_id=submission.id,
        funding_request_id=submission.id,
        task_type=ASSIGN_PROJECT_MANAGER,
        status=TaskStatus.OPEN,
        created_at=now,
        updated_at=now,
    )
    await deps.tasks.save(task)
    logger.info(
        "project manager task created",
        extra={"submission_id": submission.id, "action": ASSIGN_PROJECT_MANAGER},
    )
    return task


def _gating_signals(deps: WorkflowDeps, submission: Submission) -> GatingSignals:
    lifecycle = submission.workflow.lifecycle_status
    if lifecycle not in _GATED_STATES:
        return GatingSignals()
    workflow_stage = entity_type_for(lifecycle)
    return GatingSignals(
        finance_done=_lane_done(deps, submission.id, GovernanceLane.FINANCE, workflow_stage),
        governance_done=_lane_done(deps, submission.id, GovernanceLane.PROJECT_GOVERNANCE, workflow_stage),
    )


def _lane_done(
    deps: WorkflowDeps,
    project_id: str,
    lane: GovernanceLane,
    workflow_stage: EntityType,
) -> bool:
    try:
        return deps.board.is_gating_task_done(project_id=project_id, lane=lane, workflow_stage=workflow_stage)
    except Exception:
        # An unreachable board reads as "not done"; the next reconcile retries.
        logger.warning(
            "governance board lookup failed",
            exc_info=True,
            extra={"submission_id": project_id, "error_code": "internal_error"},
        )
        return False
