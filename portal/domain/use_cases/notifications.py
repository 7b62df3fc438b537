from __future__ import annotations

import logging

from portal.domain.approval_requests import ROLE_CONTEXT_LABELS
from portal.domain.contracts import Notifier
from portal.domain.models import ApprovalRequest, LifecycleStatus, Submission, WorkflowAction

COMPONENT_ID = "domain.notifications.dispatch"

logger = logging.getLogger("workflow")

ACTION_NOTIFICATIONS: dict[WorkflowAction, tuple[str, str]] = {
    WorkflowAction.SEND_TO_SPONSOR: (
        "{id} sent to sponsor",
        "Proposal submitted and routed to sponsor review.",
    ),
    WorkflowAction.SUBMIT_FUNDING_REQUEST: (
        "{id} funding request submitted",
        "Funding request submitted and routed to sponsor approvals.",
    ),
    WorkflowAction.SPO_APPROVE: (
        "{id} SPO approved",
        "SPO committee approved the proposal. A funding request can now be prepared.",
    ),
    WorkflowAction.SPO_REJECT: (
        "{id} SPO rejected",
        "SPO committee rejected the proposal.",
    ),
    WorkflowAction.REJECT_FUNDING_REQUEST: (
        "{id} funding request rejected",
        "The funding request was rejected and will not be resubmitted.",
    ),
    WorkflowAction.MARK_LIVE: (
        "{id} marked live",
        "The funded project is now live.",
    ),
    WorkflowAction.RAISE_CHANGE_REQUEST: (
        "{id} moved to change review",
        "A change request was raised for the live project.",
    ),
}


def submission_link(submission_id: str) -> str:
    return f"/submissions/{submission_id}"


def dispatch(notifier: Notifier, *, recipient: str, title: str, body: str, link: str) -> bool:
    """Send one notification; failures are logged and never propagate."""
    try:
        notifier.notify(recipient=recipient, title=title, body=body, link=link)
    except Exception:
        logger.warning(
            "notification failed",
            exc_info=True,
            extra={"error_code": "notification_failed", "recipient": recipient},
        )
        return False
    return True


def notify_action(notifier: Notifier, *, submission: Submission, action: WorkflowAction) -> bool:
    title, body = ACTION_NOTIFICATIONS[action]
    return dispatch(
        notifier,
        recipient=submission.owner_email,
        title=title.format(id=submission.id),
        body=body,
        link=submission_link(submission.id),
    )


def notify_request_created(notifier: Notifier, *, submission: Submission, request: ApprovalRequest) -> bool:
    return dispatch(
        notifier,
        recipient=request.approver_email,
        title=f"{submission.id} approval request",
        body=f"Approval required as {ROLE_CONTEXT_LABELS[request.role_context]} for {submission.title}.",
        link="/approvals",
    )


def notify_reconciled(notifier: Notifier, *, submission: Submission) -> bool:
    if submission.workflow.lifecycle_status == LifecycleStatus.FR_APPROVED:
        title = f"{submission.id} funding request approved"
        body = "Funding request approved. Assign a project manager to start delivery."
    else:
        title = f"{submission.id} workflow updated"
        body = f"Workflow moved to {submission.workflow.lifecycle_status}."
    return dispatch(
        notifier,
        recipient=submission.owner_email,
        title=title,
        body=body,
        link=submission_link(submission.id),
    )
