from __future__ import annotations

import asyncio

import pytest

from portal.domain.dto import DecideApprovalRequestCommand, RunActionCommand
from portal.domain.errors import IllegalTransitionError, SponsorNotConfiguredError
from portal.domain.lifecycle import CHANGE_REVIEW_LOCK_REASON
from portal.domain.models import (
    ApprovalRequestStatus,
    CommitteeDecision,
    Decision,
    EntityType,
    FundingStatus,
    LifecycleStatus,
    ProjectStage,
    ProjectStatus,
    SponsorContacts,
    Submission,
    WorkflowAction,
)
from portal.domain.use_cases.approvals import decide_approval_request
from portal.domain.use_cases.workflow import run_action
from tests.unit.workflow_builders import FailingNotifier, Harness


async def _act(harness: Harness, submission_id: str, action: WorkflowAction) -> Submission:
    return await run_action(harness.deps, RunActionCommand(submission_id=submission_id, action=action))


def _import(harness: Harness, submission_id: str, lifecycle: LifecycleStatus) -> str:
    (submission,) = harness.submissions.import_records(
        [
            {
                "id": submission_id,
                "title": "Imported case",
                "ownerName": "Riley Owner",
                "ownerEmail": "riley.owner@portal.local",
                "createdAt": "2026-01-10T09:00:00+00:00",
                "workflow": {"lifecycleStatus": lifecycle.value, "reviewRound": 2},
                "businessSponsor": "Jordan Sponsor",
            }
        ]
    )
    return submission.id


@pytest.mark.unit
def test_send_to_sponsor_opens_review_with_one_request_and_one_audit_entry() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()

        submitted = await _act(harness, draft.id, WorkflowAction.SEND_TO_SPONSOR)

        assert submitted.workflow.lifecycle_status == LifecycleStatus.AT_SPONSOR_REVIEW
        assert submitted.workflow.entity_type == EntityType.PROPOSAL
        assert submitted.workflow.review_round == 1
        assert submitted.workflow.locked_at is not None
        assert len(submitted.approval_stages) == 1
        assert len(submitted.audit_trail) == len(draft.audit_trail) + 1
        entry = submitted.audit_trail[-1]
        assert entry.action == "SEND_TO_SPONSOR"
        assert (entry.stage, entry.status) == (ProjectStage.PROPOSAL, ProjectStatus.SPONSOR_REVIEW)
        assert "PROPOSAL/DRAFT" in entry.note

        requests = await harness.requests_for(draft.id)
        assert [(row.approver_email, row.status) for row in requests] == [
            ("approver@portal.local", ApprovalRequestStatus.PENDING)
        ]
        assert harness.notifier.titles() == [
            f"{draft.id} approval request",
            f"{draft.id} sent to sponsor",
        ]

    asyncio.run(_run())


@pytest.mark.unit
def test_illegal_action_leaves_submission_untouched() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()
        submitted = await _act(harness, draft.id, WorkflowAction.SEND_TO_SPONSOR)
        sent_before = len(harness.notifier.sent)

        with pytest.raises(IllegalTransitionError) as exc_info:
            await _act(harness, draft.id, WorkflowAction.SUBMIT_FUNDING_REQUEST)

        assert "AT_SPONSOR_REVIEW" in str(exc_info.value)
        reloaded = await harness.submissions.load(submission_id=draft.id)
        assert reloaded is not None
        assert reloaded.workflow.lifecycle_status == LifecycleStatus.AT_SPONSOR_REVIEW
        assert len(reloaded.audit_trail) == len(submitted.audit_trail)
        assert len(await harness.requests_for(draft.id)) == 1
        assert len(harness.notifier.sent) == sent_before

    asyncio.run(_run())


@pytest.mark.unit
def test_send_to_sponsor_requires_business_sponsor_or_delegate() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft(sponsor_contacts=SponsorContacts())

        with pytest.raises(SponsorNotConfiguredError):
            await _act(harness, draft.id, WorkflowAction.SEND_TO_SPONSOR)

        reloaded = await harness.submissions.load(submission_id=draft.id)
        assert reloaded is not None
        assert reloaded.workflow.lifecycle_status == LifecycleStatus.DRAFT

    asyncio.run(_run())


@pytest.mark.unit
def test_notification_failures_do_not_block_transitions() -> None:
    async def _run() -> None:
        notifier = FailingNotifier()
        harness = Harness(notifier=notifier)
        draft = await harness.create_draft()

        submitted = await _act(harness, draft.id, WorkflowAction.SEND_TO_SPONSOR)

        assert submitted.workflow.lifecycle_status == LifecycleStatus.AT_SPONSOR_REVIEW
        assert notifier.attempts == 2
        assert len(await harness.requests_for(draft.id)) == 1

    asyncio.run(_run())


@pytest.mark.unit
def test_resubmission_opens_a_new_round_and_ignores_old_answers() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()
        await _act(harness, draft.id, WorkflowAction.SEND_TO_SPONSOR)
        (first_request,) = await harness.requests_for(draft.id)
        returned = await decide_approval_request(
            harness.deps,
            DecideApprovalRequestCommand(request_id=first_request.id, decision=ApprovalRequestStatus.NEED_MORE_INFO),
        )
        assert returned.workflow.lifecycle_status == LifecycleStatus.DRAFT

        resubmitted = await _act(harness, draft.id, WorkflowAction.SEND_TO_SPONSOR)

        assert resubmitted.workflow.review_round == 2
        assert resubmitted.workflow.sponsor_decision == Decision.PENDING
        assert resubmitted.approval_stages[0].status == "PENDING"
        pending = await harness.requests_for(draft.id, status=ApprovalRequestStatus.PENDING)
        assert len(pending) == 1
        assert pending[0].review_round == 2

        approved = await decide_approval_request(
            harness.deps,
            DecideApprovalRequestCommand(request_id=pending[0].id, decision=ApprovalRequestStatus.APPROVED),
        )
        assert approved.workflow.lifecycle_status == LifecycleStatus.AT_PGO_FGO_REVIEW

    asyncio.run(_run())


@pytest.mark.unit
def test_spo_decisions_drive_proposal_outcome() -> None:
    async def _run() -> None:
        harness = Harness()
        approved_id = _import(harness, "SP-2026-010", LifecycleStatus.AT_SPO_REVIEW)
        rejected_id = _import(harness, "SP-2026-011", LifecycleStatus.SPO_DECISION_DEFERRED)

        approved = await _act(harness, approved_id, WorkflowAction.SPO_APPROVE)
        rejected = await _act(harness, rejected_id, WorkflowAction.SPO_REJECT)

        assert approved.workflow.lifecycle_status == LifecycleStatus.FR_DRAFT
        assert approved.workflow.entity_type == EntityType.FUNDING_REQUEST
        assert approved.workflow.spo_decision == Decision.APPROVED
        assert approved.committee_decision == CommitteeDecision.APPROVED
        assert approved.workflow.locked_at is None
        assert rejected.workflow.lifecycle_status == LifecycleStatus.SPO_DECISION_REJECTED
        assert rejected.committee_decision == CommitteeDecision.REJECTED

    asyncio.run(_run())


@pytest.mark.unit
def test_funding_request_can_be_rejected_from_draft() -> None:
    async def _run() -> None:
        harness = Harness()
        submission_id = _import(harness, "SP-2026-012", LifecycleStatus.FR_DRAFT)

        rejected = await _act(harness, submission_id, WorkflowAction.REJECT_FUNDING_REQUEST)

        assert rejected.workflow.lifecycle_status == LifecycleStatus.FR_REJECTED
        assert rejected.workflow.funding_status == FundingStatus.NOT_REQUESTED

    asyncio.run(_run())


@pytest.mark.unit
def test_live_project_moves_to_change_review() -> None:
    async def _run() -> None:
        harness = Harness()
        submission_id = _import(harness, "SP-2026-013", LifecycleStatus.FR_APPROVED)

        live = await _act(harness, submission_id, WorkflowAction.MARK_LIVE)
        changed = await _act(harness, submission_id, WorkflowAction.RAISE_CHANGE_REQUEST)

        assert live.workflow.lifecycle_status == LifecycleStatus.CLOSED
        assert live.workflow.funding_status == FundingStatus.LIVE
        assert changed.workflow.lifecycle_status == LifecycleStatus.ARCHIVED
        assert changed.workflow.lock_reason == CHANGE_REVIEW_LOCK_REASON
        assert harness.notifier.titles()[-1] == f"{submission_id} moved to change review"

    asyncio.run(_run())
