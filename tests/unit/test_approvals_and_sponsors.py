from __future__ import annotations

import asyncio

import pytest

from portal.domain.dto import (
    CompleteGatingTaskCommand,
    DecideApprovalRequestCommand,
    RecordApprovalDecisionCommand,
    RunActionCommand,
    UpdateSponsorsCommand,
)
from portal.domain.errors import (
    ApprovalRequestClosedError,
    ApprovalRequestNotFoundError,
    DomainValidationError,
    StageNotPendingError,
    SubmissionNotFoundError,
    UnknownStageError,
)
from portal.domain.models import (
    ActingAs,
    Actor,
    ApprovalRequestStatus,
    ApprovalStageCode,
    ApprovalStageStatus,
    EntityType,
    GovernanceLane,
    LifecycleStatus,
    SponsorContacts,
    Submission,
    WorkflowAction,
)
from portal.domain.use_cases.approvals import (
    approval_queue,
    approval_summary,
    decide_approval_request,
    record_approval_decision,
)
from portal.domain.use_cases.governance import complete_gating_task
from portal.domain.use_cases.submissions import update_sponsors
from portal.domain.use_cases.workflow import run_action
from tests.unit.workflow_builders import AVERY, CASEY, JORDAN, Harness

SPONSOR = Actor(name="Jordan Sponsor", email="approver@portal.local", user_id="user-jordan")


async def _submitted(harness: Harness, contacts: SponsorContacts | None = None) -> Submission:
    draft = await harness.create_draft(sponsor_contacts=contacts)
    return await run_action(
        harness.deps,
        RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR),
    )


@pytest.mark.unit
def test_stage_decision_mirrors_onto_open_request_and_reconciles() -> None:
    async def _run() -> None:
        harness = Harness()
        submitted = await _submitted(harness)

        result = await record_approval_decision(
            harness.deps,
            RecordApprovalDecisionCommand(
                submission_id=submitted.id,
                stage="business",
                decision=ApprovalStageStatus.APPROVED,
                actor=SPONSOR,
                acting_as=ActingAs.SPONSOR,
                comment="Approved for review.",
            ),
        )

        assert result.workflow.lifecycle_status == LifecycleStatus.AT_PGO_FGO_REVIEW
        stage = result.approval_stages[0]
        assert stage.status == ApprovalStageStatus.APPROVED
        assert stage.decided_by_user_id == "user-jordan"
        assert [entry.action for entry in result.audit_trail[-2:]] == ["UPDATED", "WORKFLOW_RECONCILED"]
        (request,) = await harness.requests_for(submitted.id)
        assert request.status == ApprovalRequestStatus.APPROVED
        assert request.comment == "Approved for review."

    asyncio.run(_run())


@pytest.mark.unit
def test_stage_decision_errors() -> None:
    async def _run() -> None:
        harness = Harness()
        submitted = await _submitted(harness)

        def _cmd(stage: str, decision: ApprovalStageStatus) -> RecordApprovalDecisionCommand:
            return RecordApprovalDecisionCommand(submission_id=submitted.id, stage=stage, decision=decision)

        with pytest.raises(UnknownStageError):
            await record_approval_decision(harness.deps, _cmd("bogus", ApprovalStageStatus.APPROVED))
        with pytest.raises(UnknownStageError):
            await record_approval_decision(harness.deps, _cmd("FINANCE", ApprovalStageStatus.APPROVED))
        with pytest.raises(DomainValidationError):
            await record_approval_decision(harness.deps, _cmd("BUSINESS", ApprovalStageStatus.PENDING))
        with pytest.raises(SubmissionNotFoundError):
            await record_approval_decision(
                harness.deps,
                RecordApprovalDecisionCommand(
                    submission_id="SP-2026-999",
                    stage=ApprovalStageCode.BUSINESS,
                    decision=ApprovalStageStatus.APPROVED,
                ),
            )

        await record_approval_decision(harness.deps, _cmd("BUSINESS", ApprovalStageStatus.APPROVED))
        with pytest.raises(StageNotPendingError):
            await record_approval_decision(harness.deps, _cmd("BUSINESS", ApprovalStageStatus.REJECTED))

    asyncio.run(_run())


@pytest.mark.unit
def test_request_decision_errors() -> None:
    async def _run() -> None:
        harness = Harness()
        submitted = await _submitted(harness)
        (request,) = await harness.requests_for(submitted.id)
        approve = DecideApprovalRequestCommand(request_id=request.id, decision=ApprovalRequestStatus.APPROVED)

        with pytest.raises(ApprovalRequestNotFoundError):
            await decide_approval_request(
                harness.deps,
                DecideApprovalRequestCommand(
                    request_id="apr_01HZZZZZZZZZZZZZZZZZZZZZZZ",
                    decision=ApprovalRequestStatus.APPROVED,
                ),
            )
        await decide_approval_request(harness.deps, approve)
        with pytest.raises(ApprovalRequestClosedError):
            await decide_approval_request(harness.deps, approve)

    asyncio.run(_run())


@pytest.mark.unit
def test_summary_and_queue_reflect_current_round() -> None:
    async def _run() -> None:
        harness = Harness()
        submitted = await _submitted(harness)

        summary = await approval_summary(harness.deps, submitted.id)
        queue = await approval_queue(harness.deps, approver_email="APPROVER@portal.local")

        assert summary.pending_count == 1
        assert summary.all_required_approved is False
        assert [row.submission_id for row in queue] == [submitted.id]
        assert await approval_queue(harness.deps, approver_email="nobody@portal.local") == []

    asyncio.run(_run())


@pytest.mark.unit
def test_update_sponsors_in_draft_recomputes_stages_without_requests() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()

        updated = await update_sponsors(
            harness.deps,
            UpdateSponsorsCommand(
                submission_id=draft.id,
                sponsor_contacts=SponsorContacts(business_sponsor=JORDAN, technology_sponsor=CASEY),
            ),
        )

        assert [record.stage for record in updated.approval_stages] == [
            ApprovalStageCode.BUSINESS,
            ApprovalStageCode.TECHNOLOGY,
        ]
        assert updated.audit_trail[-1].action == "SPONSORS_UPDATED"
        assert await harness.requests_for(draft.id) == []

    asyncio.run(_run())


@pytest.mark.unit
def test_update_sponsors_during_review_rotates_only_changed_approvers() -> None:
    async def _run() -> None:
        harness = Harness()
        submitted = await _submitted(harness)
        (original,) = await harness.requests_for(submitted.id)

        unchanged = await update_sponsors(
            harness.deps,
            UpdateSponsorsCommand(
                submission_id=submitted.id,
                sponsor_contacts=SponsorContacts(business_sponsor=JORDAN, technology_sponsor=CASEY),
            ),
        )
        rows_after_unchanged = await harness.requests_for(submitted.id)
        assert [row.id for row in rows_after_unchanged] == [original.id]
        assert unchanged.workflow.lifecycle_status == LifecycleStatus.AT_SPONSOR_REVIEW

        await update_sponsors(
            harness.deps,
            UpdateSponsorsCommand(submission_id=submitted.id, sponsor_contacts=SponsorContacts(business_sponsor=AVERY)),
        )
        cancelled = await harness.requests_for(submitted.id, status=ApprovalRequestStatus.CANCELLED)
        pending = await harness.requests_for(submitted.id, status=ApprovalRequestStatus.PENDING)
        assert [row.id for row in cancelled] == [original.id]
        assert [row.approver_email for row in pending] == ["avery@portal.local"]
        assert pending[0].review_round == submitted.workflow.review_round

    asyncio.run(_run())


@pytest.mark.unit
def test_completing_gating_tasks_advances_review() -> None:
    async def _run() -> None:
        harness = Harness()
        submitted = await _submitted(harness)
        (request,) = await harness.requests_for(submitted.id)
        await decide_approval_request(
            harness.deps,
            DecideApprovalRequestCommand(request_id=request.id, decision=ApprovalRequestStatus.APPROVED),
        )

        def _complete(lane: GovernanceLane) -> CompleteGatingTaskCommand:
            return CompleteGatingTaskCommand(project_id=submitted.id, lane=lane, workflow_stage=EntityType.PROPOSAL)

        halfway = await complete_gating_task(harness.deps, _complete(GovernanceLane.FINANCE))
        done = await complete_gating_task(harness.deps, _complete(GovernanceLane.PROJECT_GOVERNANCE))

        assert halfway.workflow.lifecycle_status == LifecycleStatus.AT_PGO_FGO_REVIEW
        assert done.workflow.lifecycle_status == LifecycleStatus.AT_SPO_REVIEW

    asyncio.run(_run())


@pytest.mark.unit
def test_completing_gating_task_for_unknown_project_fails() -> None:
    async def _run() -> None:
        harness = Harness()

        with pytest.raises(SubmissionNotFoundError):
            await complete_gating_task(
                harness.deps,
                CompleteGatingTaskCommand(
                    project_id="SP-2026-404",
                    lane=GovernanceLane.FINANCE,
                    workflow_stage=EntityType.PROPOSAL,
                ),
            )

        assert harness.board.cards == []

    asyncio.run(_run())
