from __future__ import annotations

from collections.abc import Iterable

from portal.domain.lifecycle import entity_type_for
from portal.domain.models import (
    ApprovalRequest,
    ApprovalRequestStatus,
    ApprovalStageCode,
    ApprovalStageStatus,
    ApprovalSummary,
    LifecycleStatus,
    PersonRef,
    RoleContext,
    SponsorContacts,
    Submission,
)

ROLE_CONTEXT_STAGE: dict[RoleContext, ApprovalStageCode] = {
    RoleContext.BUSINESS_SPONSOR: ApprovalStageCode.BUSINESS,
    RoleContext.BUSINESS_DELEGATE: ApprovalStageCode.BUSINESS,
    RoleContext.TECH_SPONSOR: ApprovalStageCode.TECHNOLOGY,
    RoleContext.FINANCE_SPONSOR: ApprovalStageCode.FINANCE,
    RoleContext.BENEFITS_SPONSOR: ApprovalStageCode.BENEFITS,
}

ROLE_CONTEXT_LABELS: dict[RoleContext, str] = {
    RoleContext.BUSINESS_SPONSOR: "Business Sponsor",
    RoleContext.BUSINESS_DELEGATE: "Business Delegate",
    RoleContext.TECH_SPONSOR: "Technology Sponsor",
    RoleContext.FINANCE_SPONSOR: "Finance Sponsor",
    RoleContext.BENEFITS_SPONSOR: "Benefits Sponsor",
}

# Stage order BUSINESS, TECHNOLOGY, FINANCE, BENEFITS.
_FUNDING_CONTEXT_ORDER: tuple[RoleContext, ...] = (
    RoleContext.BUSINESS_SPONSOR,
    RoleContext.BUSINESS_DELEGATE,
    RoleContext.TECH_SPONSOR,
    RoleContext.FINANCE_SPONSOR,
    RoleContext.BENEFITS_SPONSOR,
)

_FUNDING_REVIEW_STATES = frozenset(
    {LifecycleStatus.FR_AT_SPONSOR_APPROVALS, LifecycleStatus.FR_AT_PGO_FGO_REVIEW}
)

STAGE_STATUS_FOR_REQUEST: dict[ApprovalRequestStatus, ApprovalStageStatus] = {
    ApprovalRequestStatus.APPROVED: ApprovalStageStatus.APPROVED,
    ApprovalRequestStatus.REJECTED: ApprovalStageStatus.REJECTED,
    ApprovalRequestStatus.NEED_MORE_INFO: ApprovalStageStatus.NEED_MORE_INFO,
}

REQUEST_STATUS_FOR_STAGE: dict[ApprovalStageStatus, ApprovalRequestStatus] = {
    stage_status: request_status for request_status, stage_status in STAGE_STATUS_FOR_REQUEST.items()
}

OPEN_REQUEST_STATUSES = frozenset({ApprovalRequestStatus.PENDING, ApprovalRequestStatus.NEED_MORE_INFO})


def person_for_role_context(contacts: SponsorContacts, role_context: RoleContext) -> PersonRef | None:
    if role_context == RoleContext.BUSINESS_SPONSOR:
        return contacts.business_sponsor
    if role_context == RoleContext.BUSINESS_DELEGATE:
        return contacts.business_delegate
    if role_context == RoleContext.TECH_SPONSOR:
        return contacts.technology_sponsor
    if role_context == RoleContext.FINANCE_SPONSOR:
        return contacts.finance_sponsor
    return contacts.benefits_sponsor


def required_role_contexts(submission: Submission) -> tuple[RoleContext, ...]:
    contacts = submission.sponsor_contacts
    lifecycle = submission.workflow.lifecycle_status
    if lifecycle == LifecycleStatus.AT_SPONSOR_REVIEW:
        if contacts.business_sponsor is not None:
            return (RoleContext.BUSINESS_SPONSOR,)
        if contacts.business_delegate is not None:
            return (RoleContext.BUSINESS_DELEGATE,)
        return ()
    if lifecycle in _FUNDING_REVIEW_STATES:
        return tuple(
            context
            for context in _FUNDING_CONTEXT_ORDER
            if person_for_role_context(contacts, context) is not None
        )
    return ()


def role_contexts_for_stage(stage: ApprovalStageCode) -> tuple[RoleContext, ...]:
    return tuple(context for context, mapped in ROLE_CONTEXT_STAGE.items() if mapped == stage)


def current_round_requests(submission: Submission, requests: Iterable[ApprovalRequest]) -> list[ApprovalRequest]:
    entity_type = entity_type_for(submission.workflow.lifecycle_status)
    return [
        request
        for request in requests
        if request.submission_id == submission.id
        and request.entity_type == entity_type
        and request.review_round == submission.workflow.review_round
    ]


def latest_by_context(rows: Iterable[ApprovalRequest]) -> dict[RoleContext, ApprovalRequest]:
    """Most recent non-cancelled request per role context."""
    latest: dict[RoleContext, ApprovalRequest] = {}
    for row in sorted(rows, key=lambda item: (item.requested_at, item.id)):
        if row.status == ApprovalRequestStatus.CANCELLED:
            continue
        latest[row.role_context] = row
    return latest


def summarize_requests(submission: Submission, requests: Iterable[ApprovalRequest]) -> ApprovalSummary:
    """Aggregate the current review round for the reconciliation engine."""
    rows = current_round_requests(submission, requests)
    required = required_role_contexts(submission)
    latest = latest_by_context(rows)
    in_scope = [latest[context] for context in required if context in latest]
    return ApprovalSummary(
        rows=tuple(rows),
        required_contexts=required,
        pending_count=sum(1 for row in in_scope if row.status == ApprovalRequestStatus.PENDING),
        all_required_approved=bool(required)
        and len(in_scope) == len(required)
        and all(row.status == ApprovalRequestStatus.APPROVED for row in in_scope),
        any_rejected=any(row.status == ApprovalRequestStatus.REJECTED for row in in_scope),
        any_need_more_info=any(row.status == ApprovalRequestStatus.NEED_MORE_INFO for row in in_scope),
    )
