from __future__ import annotations

from portal.api.handlers.deps import ApiDeps, actor_from_payload
from portal.api.handlers.submissions import submission_response
from portal.api.schemas import ActorPayload, SubmissionResponse
from portal.domain.dto import CompleteGatingTaskCommand
from portal.domain.models import EntityType, GovernanceLane
from portal.domain.use_cases.governance import complete_gating_task

COMPONENT_ID = "api.complete_gating_task"


async def complete_gating_task_handler(
    *,
    project_id: str,
    lane: GovernanceLane,
    workflow_stage: EntityType,
    actor: ActorPayload | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    submission = await complete_gating_task(
        api_deps.workflow,
        CompleteGatingTaskCommand(
            project_id=project_id,
            lane=lane,
            workflow_stage=workflow_stage,
            actor=actor_from_payload(actor),
        ),
    )
    return submission_response(submission)
