from __future__ import annotations

from portal.api.handlers.deps import ApiDeps, actor_from_payload
from portal.api.handlers.submissions import submission_response
from portal.api.schemas import ActorPayload, SubmissionResponse
from portal.domain.dto import ReconcileCommand, RunActionCommand
from portal.domain.models import WorkflowAction
from portal.domain.use_cases.reconcile import reconcile
from portal.domain.use_cases.workflow import run_action

COMPONENT_ID_ACTION = "api.run_workflow_action"
COMPONENT_ID_RECONCILE = "api.reconcile_submission"


async def run_action_handler(
    *,
    submission_id: str,
    action: WorkflowAction,
    actor: ActorPayload | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    submission = await run_action(
        api_deps.workflow,
        RunActionCommand(submission_id=submission_id, action=action, actor=actor_from_payload(actor)),
    )
    return submission_response(submission)


async def reconcile_handler(
    *,
    submission_id: str,
    actor: ActorPayload | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    submission = await reconcile(
        api_deps.workflow,
        ReconcileCommand(submission_id=submission_id, actor=actor_from_payload(actor)),
    )
    return submission_response(submission)
