from __future__ import annotations

import logging

from portal.domain.contracts import GovernanceTaskUpdater
from portal.domain.dto import CompleteGatingTaskCommand, ReconcileCommand
from portal.domain.errors import DomainDependencyError
from portal.domain.models import Submission
from portal.domain.use_cases.deps import WorkflowDeps
from portal.domain.use_cases.reconcile import reconcile
from portal.domain.use_cases.submissions import load_submission

COMPONENT_ID = "domain.governance.complete_gating_task"

logger = logging.getLogger("workflow")


async def complete_gating_task(deps: WorkflowDeps, cmd: CompleteGatingTaskCommand) -> Submission:
    """Mark a lane's gating task done on the board and reconcile the project."""
    if not isinstance(deps.board, GovernanceTaskUpdater):
        raise DomainDependencyError("governance board does not accept task updates")
    await load_submission(deps, cmd.project_id)
    deps.board.mark_gating_task_done(
        project_id=cmd.project_id,
        lane=cmd.lane,
        workflow_stage=cmd.workflow_stage,
    )
    logger.info(
        "gating task completed",
        extra={"submission_id": cmd.project_id, "lane": cmd.lane, "workflow_stage": cmd.workflow_stage},
    )
    return await reconcile(deps, ReconcileCommand(submission_id=cmd.project_id, actor=cmd.actor))
