from __future__ import annotations

from collections.abc import Collection
import copy
from dataclasses import replace
import logging

from portal.domain.approval_requests import person_for_role_context, required_role_contexts
from portal.domain.approval_stages import compute_applicable_stages
from portal.domain.audit import append_audit_entry, build_audit_entry, record_transition
from portal.domain.dto import CreateSubmissionCommand, UpdateSponsorsCommand
from portal.domain.errors import DomainValidationError, SubmissionNotFoundError
from portal.domain.ids import format_case_id
from portal.domain.lifecycle import apply_lock
from portal.domain.models import (
    EntityType,
    LifecycleStatus,
    RoleContext,
    Submission,
    WorkflowState,
)
from portal.domain.normalization import INITIAL_AUDIT_NOTE
from portal.domain.use_cases.approval_registry import ApprovalRequestRegistry
from portal.domain.use_cases.deps import WorkflowDeps

COMPONENT_ID_CREATE = "domain.submission.create"
COMPONENT_ID_SPONSORS = "domain.submission.sponsors"

SPONSORS_UPDATED_ACTION = "SPONSORS_UPDATED"
SPONSOR_UPDATE_REASON = "Sponsor contacts were updated."

_SPONSOR_REVIEW_STATES = frozenset(
    {
        LifecycleStatus.AT_SPONSOR_REVIEW,
        LifecycleStatus.FR_AT_SPONSOR_APPROVALS,
        LifecycleStatus.FR_AT_PGO_FGO_REVIEW,
    }
)

logger = logging.getLogger("workflow")


async def load_submission(deps: WorkflowDeps, submission_id: str) -> Submission:
    submission = await deps.submissions.load(submission_id=submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)
    return submission


async def list_submissions(
    deps: WorkflowDeps,
    *,
    lifecycle_statuses: Collection[LifecycleStatus] | None = None,
) -> list[Submission]:
    return await deps.submissions.list_submissions(lifecycle_statuses=lifecycle_statuses)


async def create_submission(deps: WorkflowDeps, cmd: CreateSubmissionCommand) -> Submission:
    """Create a DRAFT submission with a fresh case id and its creation audit entry."""
    title = cmd.title.strip()
    if not title:
        raise DomainValidationError("title must not be empty")

    now = deps.clock()
    sequence = await deps.submissions.allocate_case_sequence(year=now.year)
    submission_id = format_case_id(year=now.year, sequence=sequence)
    workflow = apply_lock(
        WorkflowState(
            entity_type=EntityType.PROPOSAL,
            lifecycle_status=LifecycleStatus.DRAFT,
            last_saved_at=now,
        ),
        now=now,
    )
    submission = Submission(
        id=submission_id,
        title=title,
        owner_name=cmd.owner_name.strip(),
        owner_email=cmd.owner_email.strip().lower(),
        workflow=workflow,
        sponsor_contacts=cmd.sponsor_contacts,
        approval_stages=compute_applicable_stages(
            submission_id=submission_id,
            sponsor_contacts=cmd.sponsor_contacts,
            workflow=workflow,
        ),
        audit_trail=(),
        created_at=now,
        updated_at=now,
        created_by_user_id=cmd.actor.user_id if cmd.actor else None,
        payload=copy.deepcopy(cmd.payload),
    )
    entry = build_audit_entry(
        submission,
        action="CREATED",
        note=INITIAL_AUDIT_NOTE,
        created_at=now,
        actor=cmd.actor,
        entry_id=f"audit-init-{submission_id}",
    )
    submission = append_audit_entry(submission, entry)
    await deps.submissions.save_all([submission])
    logger.info(
        "submission created",
        extra={"submission_id": submission_id, "lifecycle_status": LifecycleStatus.DRAFT},
    )
    return submission


async def update_sponsors(deps: WorkflowDeps, cmd: UpdateSponsorsCommand) -> Submission:
    """Replace sponsor slots, keeping stage records for slots that remain populated."""
    async with deps.locks.for_submission(cmd.submission_id):
        submission = await load_submission(deps, cmd.submission_id)
        now = deps.clock()
        updated = replace(
            submission,
            sponsor_contacts=cmd.sponsor_contacts,
            approval_stages=compute_applicable_stages(
                submission_id=submission.id,
                sponsor_contacts=cmd.sponsor_contacts,
                workflow=submission.workflow,
                existing=submission.approval_stages,
            ),
            updated_at=now,
        )
        updated = record_transition(
            updated,
            action=SPONSORS_UPDATED_ACTION,
            note="Sponsor contacts updated.",
            now=now,
            actor=cmd.actor,
        )
        await deps.submissions.save_all([updated])

        if updated.workflow.lifecycle_status in _SPONSOR_REVIEW_STATES:
            registry = ApprovalRequestRegistry(
                repository=deps.approval_requests,
                notifier=deps.notifier,
                clock=deps.clock,
            )
            required = required_role_contexts(updated)
            keep: dict[RoleContext, str] = {}
            for context in required:
                person = person_for_role_context(updated.sponsor_contacts, context)
                if person is not None:
                    keep[context] = person.email
            await registry.cancel_pending(updated, reason=SPONSOR_UPDATE_REASON, keep=keep)
            await registry.create_requests(updated, required, requested_by=cmd.actor)

        logger.info(
            "sponsor contacts updated",
            extra={"submission_id": updated.id, "action": SPONSORS_UPDATED_ACTION},
        )
        return updated
