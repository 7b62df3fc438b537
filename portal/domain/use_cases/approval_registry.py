from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
import logging

from portal.domain.approval_requests import (
    OPEN_REQUEST_STATUSES,
    current_round_requests,
    latest_by_context,
    person_for_role_context,
    summarize_requests,
)
from portal.domain.contracts import ApprovalRequestRepository, Notifier
from portal.domain.errors import ApprovalRequestClosedError, DomainValidationError
from portal.domain.ids import new_approval_request_id
from portal.domain.lifecycle import entity_type_for
from portal.domain.models import (
    Actor,
    ApprovalRequest,
    ApprovalRequestStatus,
    ApprovalSummary,
    RoleContext,
    Submission,
)
from portal.domain.use_cases.deps import utc_now
from portal.domain.use_cases.notifications import notify_request_created

COMPONENT_ID = "domain.approvals.registry"

logger = logging.getLogger("workflow")


@dataclass
class ApprovalRequestRegistry:
    repository: ApprovalRequestRepository
    notifier: Notifier
    clock: Callable[[], datetime] = utc_now

    async def create_requests(
        self,
        submission: Submission,
        role_contexts: Iterable[RoleContext],
        *,
        requested_by: Actor | None = None,
    ) -> list[ApprovalRequest]:
        """Open one request per role context for the submission's current round.

        A context whose latest live request already targets the same approver
        is skipped, so repeated calls never duplicate outstanding asks.
        """
        existing = await self.repository.list_for_submission(submission_id=submission.id)
        latest = latest_by_context(current_round_requests(submission, existing))
        entity_type = entity_type_for(submission.workflow.lifecycle_status)
        now = self.clock()

        created: list[ApprovalRequest] = []
        for role_context in dict.fromkeys(role_contexts):
            person = person_for_role_context(submission.sponsor_contacts, role_context)
            if person is None:
                continue
            current = latest.get(role_context)
            if current is not None and current.approver_email == person.email:
                continue
            created.append(
                ApprovalRequest(
                    id=new_approval_request_id(),
                    submission_id=submission.id,
                    entity_type=entity_type,
                    role_context=role_context,
                    approver_name=person.display_name,
                    approver_email=person.email,
                    approver_user_id=person.id,
                    status=ApprovalRequestStatus.PENDING,
                    requested_at=now,
                    updated_at=now,
                    review_round=submission.workflow.review_round,
                    created_by_user_id=requested_by.user_id if requested_by else None,
                )
            )

        if created:
            await self.repository.save_all(created)
            logger.info(
                "approval requests created",
                extra={"submission_id": submission.id, "request_count": len(created)},
            )
        for request in created:
            notify_request_created(self.notifier, submission=submission, request=request)
        return created

    async def cancel_pending(
        self,
        submission: Submission,
        *,
        reason: str,
        keep: Mapping[RoleContext, str] | None = None,
    ) -> list[ApprovalRequest]:
        """Cancel PENDING requests so a late answer cannot resolve a newer cycle.

        ``keep`` maps role contexts to approver emails whose pending requests
        of the current round are still valid and must survive.
        """
        rows = await self.repository.list_for_submission(submission_id=submission.id)
        current_ids = {row.id for row in current_round_requests(submission, rows)}
        now = self.clock()
        cancelled: list[ApprovalRequest] = []
        for row in rows:
            if row.status != ApprovalRequestStatus.PENDING:
                continue
            if keep and row.id in current_ids and keep.get(row.role_context) == row.approver_email:
                continue
            cancelled.append(
                replace(
                    row,
                    status=ApprovalRequestStatus.CANCELLED,
                    comment=reason,
                    decided_at=now,
                    updated_at=now,
                )
            )
        if cancelled:
            await self.repository.save_all(cancelled)
            logger.info(
                "approval requests cancelled",
                extra={"submission_id": submission.id, "request_count": len(cancelled)},
            )
        return cancelled

    async def summarize(self, submission: Submission) -> ApprovalSummary:
        rows = await self.repository.list_for_submission(submission_id=submission.id)
        return summarize_requests(submission, rows)

    async def decide(
        self,
        request: ApprovalRequest,
        *,
        decision: ApprovalRequestStatus,
        actor: Actor | None = None,
        comment: str | None = None,
    ) -> ApprovalRequest:
        if decision in {ApprovalRequestStatus.PENDING, ApprovalRequestStatus.CANCELLED}:
            raise DomainValidationError(f"{decision} is not a decision")
        if request.status not in OPEN_REQUEST_STATUSES:
            raise ApprovalRequestClosedError(request_id=request.id, status=request.status)
        now = self.clock()
        decided = replace(
            request,
            status=decision,
            comment=comment if comment is not None else request.comment,
            decided_at=now,
            updated_at=now,
            approver_user_id=(actor.user_id if actor and actor.user_id else request.approver_user_id),
        )
        await self.repository.save_all([decided])
        return decided

    async def list_open_for_approver(self, *, approver_email: str) -> list[ApprovalRequest]:
        rows = await self.repository.list_for_approver(approver_email=approver_email.strip().lower())
        return [row for row in rows if row.status in OPEN_REQUEST_STATUSES]
