from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from portal.domain.approval_requests import required_role_contexts, summarize_requests
from portal.domain.dto import RunActionCommand
from portal.domain.errors import ApprovalRequestClosedError, DomainValidationError
from portal.domain.models import (
    ApprovalRequestStatus,
    LifecycleStatus,
    RoleContext,
    SponsorContacts,
    WorkflowAction,
)
from portal.domain.use_cases.approval_registry import ApprovalRequestRegistry
from portal.domain.use_cases.workflow import run_action
from tests.unit.workflow_builders import CASEY, DANA, DREW, JORDAN, Harness


def _registry(harness: Harness) -> ApprovalRequestRegistry:
    return ApprovalRequestRegistry(
        repository=harness.approval_requests,
        notifier=harness.notifier,
        clock=harness.clock,
    )


@pytest.mark.unit
def test_required_contexts_for_proposal_prefer_business_sponsor() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft(
            sponsor_contacts=SponsorContacts(business_sponsor=JORDAN, business_delegate=DANA, finance_sponsor=DREW)
        )
        in_review = replace(draft, workflow=replace(draft.workflow, lifecycle_status=LifecycleStatus.AT_SPONSOR_REVIEW))
        delegate_only = replace(in_review, sponsor_contacts=SponsorContacts(business_delegate=DANA))
        funding = replace(
            draft,
            workflow=replace(draft.workflow, lifecycle_status=LifecycleStatus.FR_AT_SPONSOR_APPROVALS),
        )

        assert required_role_contexts(draft) == ()
        assert required_role_contexts(in_review) == (RoleContext.BUSINESS_SPONSOR,)
        assert required_role_contexts(delegate_only) == (RoleContext.BUSINESS_DELEGATE,)
        assert required_role_contexts(funding) == (
            RoleContext.BUSINESS_SPONSOR,
            RoleContext.BUSINESS_DELEGATE,
            RoleContext.FINANCE_SPONSOR,
        )

    asyncio.run(_run())


@pytest.mark.unit
def test_create_requests_skips_live_requests_for_same_approver() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()
        submitted = await run_action(
            harness.deps,
            RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR),
        )

        again = await _registry(harness).create_requests(submitted, [RoleContext.BUSINESS_SPONSOR])

        assert again == []
        rows = await harness.requests_for(submitted.id)
        assert len(rows) == 1
        assert rows[0].approver_email == "approver@portal.local"
        assert rows[0].review_round == 1

    asyncio.run(_run())


@pytest.mark.unit
def test_cancel_pending_keeps_listed_approvers() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft(
            sponsor_contacts=SponsorContacts(business_sponsor=JORDAN, technology_sponsor=CASEY)
        )
        funding = replace(
            draft,
            workflow=replace(draft.workflow, lifecycle_status=LifecycleStatus.FR_AT_SPONSOR_APPROVALS, review_round=1),
        )
        registry = _registry(harness)
        created = await registry.create_requests(funding, required_role_contexts(funding))

        cancelled = await registry.cancel_pending(
            funding,
            reason="Sponsor contacts were updated.",
            keep={RoleContext.BUSINESS_SPONSOR: JORDAN.email},
        )

        assert len(created) == 2
        assert [row.role_context for row in cancelled] == [RoleContext.TECH_SPONSOR]
        assert cancelled[0].status == ApprovalRequestStatus.CANCELLED
        assert cancelled[0].comment == "Sponsor contacts were updated."
        pending = await harness.requests_for(funding.id, status=ApprovalRequestStatus.PENDING)
        assert [row.role_context for row in pending] == [RoleContext.BUSINESS_SPONSOR]

    asyncio.run(_run())


@pytest.mark.unit
def test_decide_rejects_closed_requests_and_non_decisions() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()
        submitted = await run_action(
            harness.deps,
            RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR),
        )
        registry = _registry(harness)
        (request,) = await harness.requests_for(submitted.id)

        with pytest.raises(DomainValidationError):
            await registry.decide(request, decision=ApprovalRequestStatus.CANCELLED)
        decided = await registry.decide(request, decision=ApprovalRequestStatus.APPROVED, comment="Looks good.")
        with pytest.raises(ApprovalRequestClosedError):
            await registry.decide(decided, decision=ApprovalRequestStatus.REJECTED)

        assert decided.decided_at is not None
        assert decided.comment == "Looks good."

    asyncio.run(_run())


@pytest.mark.unit
def test_summary_ignores_earlier_rounds_and_cancelled_rows() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()
        first = await run_action(
            harness.deps,
            RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR),
        )
        (old_request,) = await harness.requests_for(first.id)
        await _registry(harness).decide(old_request, decision=ApprovalRequestStatus.APPROVED)

        # A later round for the same submission must not count the earlier approval.
        next_round = replace(first, workflow=replace(first.workflow, review_round=2))
        rows = await harness.requests_for(first.id)
        summary = summarize_requests(next_round, rows)

        assert summary.rows == ()
        assert summary.required_contexts == (RoleContext.BUSINESS_SPONSOR,)
        assert summary.all_required_approved is False
        assert summary.pending_count == 0

    asyncio.run(_run())


@pytest.mark.unit
def test_open_queue_lists_pending_requests_by_email() -> None:
    async def _run() -> None:
        harness = Harness()
        draft = await harness.create_draft()
        await run_action(
            harness.deps,
            RunActionCommand(submission_id=draft.id, action=WorkflowAction.SEND_TO_SPONSOR),
        )

        queue = await _registry(harness).list_open_for_approver(approver_email=" Approver@Portal.local ")

        assert [row.submission_id for row in queue] == [draft.id]

    asyncio.run(_run())
