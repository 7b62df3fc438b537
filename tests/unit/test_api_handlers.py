import asyncio

import pytest

from portal.api.handlers import approvals, governance, submissions, workflow
from portal.api.handlers.deps import ApiDeps, actor_from_payload
from portal.api.schemas import ActorPayload, PersonRefPayload, SponsorContactsPayload
from portal.domain.models import (
    ApprovalRequestStatus,
    EntityType,
    GovernanceLane,
    LifecycleStatus,
    ProjectStage,
    ProjectStatus,
    WorkflowAction,
)
from tests.unit.workflow_builders import Harness


@pytest.mark.unit
def test_api_handler_component_ids_are_stable() -> None:
    assert submissions.COMPONENT_ID_CREATE == "api.create_submission"
    assert submissions.COMPONENT_ID_LIST == "api.list_submissions"
    assert submissions.COMPONENT_ID_GET == "api.get_submission"
    assert submissions.COMPONENT_ID_SPONSORS == "api.update_sponsors"
    assert workflow.COMPONENT_ID_ACTION == "api.run_workflow_action"
    assert workflow.COMPONENT_ID_RECONCILE == "api.reconcile_submission"
    assert approvals.COMPONENT_ID_STAGE_DECISION == "api.record_stage_decision"
    assert approvals.COMPONENT_ID_REQUEST_DECISION == "api.decide_approval_request"
    assert approvals.COMPONENT_ID_SUMMARY == "api.approval_summary"
    assert approvals.COMPONENT_ID_QUEUE == "api.approval_queue"
    assert governance.COMPONENT_ID == "api.complete_gating_task"


@pytest.mark.unit
def test_actor_payload_email_is_lowercased() -> None:
    actor = actor_from_payload(ActorPayload(name="Riley", email="Riley.Owner@Portal.local", user_id="user-riley"))

    assert actor is not None
    assert actor.email == "riley.owner@portal.local"
    assert actor_from_payload(None) is None


@pytest.mark.unit
def test_handlers_execute_proposal_flow() -> None:
    harness = Harness()
    deps = ApiDeps(workflow=harness.deps)

    async def _run() -> None:
        created = await submissions.create_submission_handler(
            title="Warehouse automation",
            owner_name="Riley Owner",
            owner_email="riley.owner@portal.local",
            sponsor_contacts=SponsorContactsPayload(
                business_sponsor=PersonRefPayload(display_name="Jordan Sponsor", email="Approver@Portal.local"),
            ),
            payload={"businessCase": "Reduce picking time."},
            actor=None,
            api_deps=deps,
        )
        assert created.lifecycle_status == LifecycleStatus.DRAFT
        assert (created.stage, created.status) == (ProjectStage.PROPOSAL, ProjectStatus.DRAFT)
        assert created.editable is True
        assert created.sponsor_contacts.business_sponsor is not None
        assert created.sponsor_contacts.business_sponsor.email == "approver@portal.local"

        sent = await workflow.run_action_handler(
            submission_id=created.id,
            action=WorkflowAction.SEND_TO_SPONSOR,
            actor=None,
            api_deps=deps,
        )
        assert sent.editable is False
        assert sent.allowed_actions == []

        queue = await approvals.approval_queue_handler(approver_email=" APPROVER@portal.local ", api_deps=deps)
        assert queue.approver_email == "approver@portal.local"
        (item,) = queue.items

        decided = await approvals.decide_request_handler(
            request_id=item.id,
            decision=ApprovalRequestStatus.APPROVED,
            comment=None,
            actor=None,
            api_deps=deps,
        )
        assert decided.lifecycle_status == LifecycleStatus.AT_PGO_FGO_REVIEW

        for lane in (GovernanceLane.FINANCE, GovernanceLane.PROJECT_GOVERNANCE):
            gated = await governance.complete_gating_task_handler(
                project_id=created.id,
                lane=lane,
                workflow_stage=EntityType.PROPOSAL,
                actor=None,
                api_deps=deps,
            )
        assert gated.lifecycle_status == LifecycleStatus.AT_SPO_REVIEW

        summary = await approvals.approval_summary_handler(submission_id=created.id, api_deps=deps)
        assert summary.review_round == 1
        assert summary.all_required_approved is True
        assert [row.status for row in summary.items] == [ApprovalRequestStatus.APPROVED]

        listed = await submissions.list_submissions_handler(
            lifecycle_status=LifecycleStatus.AT_SPO_REVIEW,
            api_deps=deps,
        )
        assert [row.id for row in listed.items] == [created.id]

    asyncio.run(_run())
