from __future__ import annotations

from portal.api.handlers.deps import ApiDeps, actor_from_payload, sponsor_contacts_from_payload
from portal.api.schemas import (
    ActorPayload,
    ApprovalStageResponse,
    AuditEntryResponse,
    PersonRefResponse,
    SponsorContactsPayload,
    SponsorContactsResponse,
    SubmissionListResponse,
    SubmissionResponse,
    WorkflowResponse,
)
from portal.domain.dto import CreateSubmissionCommand, UpdateSponsorsCommand
from portal.domain.lifecycle import allowed_actions, is_editable, lifecycle_label, stage_status_for
from portal.domain.models import LifecycleStatus, PersonRef, Submission, WorkflowState
from portal.domain.use_cases.submissions import (
    create_submission,
    list_submissions,
    load_submission,
    update_sponsors,
)

COMPONENT_ID_CREATE = "api.create_submission"
COMPONENT_ID_LIST = "api.list_submissions"
COMPONENT_ID_GET = "api.get_submission"
COMPONENT_ID_SPONSORS = "api.update_sponsors"


async def create_submission_handler(
    *,
    title: str,
    owner_name: str,
    owner_email: str,
    sponsor_contacts: SponsorContactsPayload,
    payload: dict[str, object],
    actor: ActorPayload | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    submission = await create_submission(
        api_deps.workflow,
        CreateSubmissionCommand(
            title=title,
            owner_name=owner_name,
            owner_email=owner_email,
            sponsor_contacts=sponsor_contacts_from_payload(sponsor_contacts),
            payload=payload,
            actor=actor_from_payload(actor),
        ),
    )
    return submission_response(submission)


async def list_submissions_handler(
    *,
    lifecycle_status: LifecycleStatus | None,
    api_deps: ApiDeps,
) -> SubmissionListResponse:
    statuses = None if lifecycle_status is None else {lifecycle_status}
    items = await list_submissions(api_deps.workflow, lifecycle_statuses=statuses)
    return SubmissionListResponse(items=[submission_response(item) for item in items])


async def get_submission_handler(*, submission_id: str, api_deps: ApiDeps) -> SubmissionResponse:
    return submission_response(await load_submission(api_deps.workflow, submission_id))


async def update_sponsors_handler(
    *,
    submission_id: str,
    sponsor_contacts: SponsorContactsPayload,
    actor: ActorPayload | None,
    api_deps: ApiDeps,
) -> SubmissionResponse:
    submission = await update_sponsors(
        api_deps.workflow,
        UpdateSponsorsCommand(
            submission_id=submission_id,
            sponsor_contacts=sponsor_contacts_from_payload(sponsor_contacts),
            actor=actor_from_payload(actor),
        ),
    )
    return submission_response(submission)


def submission_response(submission: Submission) -> SubmissionResponse:
    lifecycle = submission.workflow.lifecycle_status
    stage, status = stage_status_for(lifecycle)
    contacts = submission.sponsor_contacts
    return SubmissionResponse(
        id=submission.id,
        title=submission.title,
        owner_name=submission.owner_name,
        owner_email=submission.owner_email,
        stage=stage,
        status=status,
        lifecycle_status=lifecycle,
        lifecycle_label=lifecycle_label(lifecycle),
        editable=is_editable(lifecycle),
        allowed_actions=list(allowed_actions(lifecycle)),
        workflow=_workflow_response(submission.workflow),
        sponsor_contacts=SponsorContactsResponse(
            business_sponsor=_person_response(contacts.business_sponsor),
            business_delegate=_person_response(contacts.business_delegate),
            technology_sponsor=_person_response(contacts.technology_sponsor),
            finance_sponsor=_person_response(contacts.finance_sponsor),
            benefits_sponsor=_person_response(contacts.benefits_sponsor),
        ),
        approval_stages=[
            ApprovalStageResponse(
                id=record.id,
                stage=record.stage,
                status=record.status,
                decided_by_user_id=record.decided_by_user_id,
                acting_as=record.acting_as,
                comment=record.comment,
                decided_at=record.decided_at,
            )
            for record in submission.approval_stages
        ],
        audit_trail=[
            AuditEntryResponse(
                id=entry.id,
                action=entry.action,
                stage=entry.stage,
                status=entry.status,
                lifecycle_status=entry.workflow.lifecycle_status,
                note=entry.note,
                created_at=entry.created_at,
                actor_name=entry.actor_name,
                actor_email=entry.actor_email,
            )
            for entry in submission.audit_trail
        ],
        committee_decision=submission.committee_decision,
        created_by_user_id=submission.created_by_user_id,
        created_at=submission.created_at,
        updated_at=submission.updated_at,
        payload=dict(submission.payload),
    )


def _workflow_response(workflow: WorkflowState) -> WorkflowResponse:
    return WorkflowResponse(
        entity_type=workflow.entity_type,
        lifecycle_status=workflow.lifecycle_status,
        sponsor_decision=workflow.sponsor_decision,
        pgo_decision=workflow.pgo_decision,
        finance_decision=workflow.finance_decision,
        spo_decision=workflow.spo_decision,
        funding_status=workflow.funding_status,
        last_saved_at=workflow.last_saved_at,
        locked_at=workflow.locked_at,
        lock_reason=workflow.lock_reason,
        review_round=workflow.review_round,
    )


def _person_response(person: PersonRef | None) -> PersonRefResponse | None:
    if person is None:
        return None
    return PersonRefResponse(
        id=person.id,
        display_name=person.display_name,
        email=person.email,
        job_title=person.job_title,
        photo=person.photo,
    )
