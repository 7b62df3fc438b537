from __future__ import annotations

from collections.abc import Mapping
import copy
from datetime import UTC, datetime
from enum import StrEnum
import re
from typing import Any, TypeVar

from portal.domain.approval_stages import compute_applicable_stages
from portal.domain.ids import approval_stage_id, coerce_case_id
from portal.domain.lifecycle import apply_lock, lifecycle_for_stage_status, stage_status_for
from portal.domain.models import (
    SYSTEM_ACTOR,
    ActingAs,
    ApprovalStageCode,
    ApprovalStageRecord,
    ApprovalStageStatus,
    AuditEntry,
    CommitteeDecision,
    Decision,
    EntityType,
    FundingStatus,
    LifecycleStatus,
    PersonRef,
    ProjectStage,
    ProjectStatus,
    SponsorContacts,
    Submission,
    WorkflowState,
)

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
DEFAULT_APPROVER_EMAIL = "approver@portal.local"
INITIAL_AUDIT_NOTE = "Submission created."

LEGACY_STAGE_MAP: dict[str, ProjectStage] = {
    "Intake": ProjectStage.PROPOSAL,
    "Approval": ProjectStage.PROPOSAL,
    "PGO & Finance Review": ProjectStage.PROPOSAL,
    "SPO Committee Review": ProjectStage.PROPOSAL,
    "Placemat Proposal": ProjectStage.PROPOSAL,
    "Sponsor Approval": ProjectStage.PROPOSAL,
    "Funding": ProjectStage.FUNDING,
    "Resourcing": ProjectStage.FUNDING,
    "Financials": ProjectStage.FUNDING,
    "Request Funding": ProjectStage.FUNDING,
    "Funding Request": ProjectStage.FUNDING,
    "Delivery": ProjectStage.LIVE,
    "Benefits Tracking": ProjectStage.LIVE,
    "Closed": ProjectStage.LIVE,
    "Change Request (if required)": ProjectStage.LIVE,
    "Live Project": ProjectStage.LIVE,
    "Change Request": ProjectStage.LIVE,
}

# Keyed by upper-cased legacy label. "Approved" depends on the stage and is
# resolved in normalize_status.
LEGACY_STATUS_MAP: dict[str, ProjectStatus] = {
    "DRAFT": ProjectStatus.DRAFT,
    "RETURNED TO SUBMITTER": ProjectStatus.DRAFT,
    "SUBMITTED": ProjectStatus.PGO_FGO_REVIEW,
    "AT SPO REVIEW": ProjectStatus.PGO_FGO_REVIEW,
    "UNDER REVIEW": ProjectStatus.SPONSOR_REVIEW,
    "SENT FOR APPROVAL": ProjectStatus.SPONSOR_REVIEW,
    "REJECTED": ProjectStatus.REJECTED,
    "ON HOLD": ProjectStatus.CHANGE_REVIEW,
    "DEFERRED": ProjectStatus.CHANGE_REVIEW,
    "CANCELLED": ProjectStatus.CHANGE_REVIEW,
    "IN EXECUTION": ProjectStatus.ACTIVE,
    "COMPLETED": ProjectStatus.ACTIVE,
}

LEGACY_APPROVED_STATUS: dict[ProjectStage, ProjectStatus] = {
    ProjectStage.PROPOSAL: ProjectStatus.SPO_REVIEW,
    ProjectStage.FUNDING: ProjectStatus.APPROVED,
    ProjectStage.LIVE: ProjectStatus.ACTIVE,
}

SPONSOR_DIRECTORY: dict[str, str] = {
    "Jordan Sponsor": "approver@portal.local",
    "Casey Sponsor": "reviewer@portal.local",
    "Avery Sponsor": "approver@portal.local",
    "Drew Sponsor": "admin@portal.local",
}

_SPONSOR_SLOTS: tuple[tuple[str, str], ...] = (
    ("business_sponsor", "businessSponsor"),
    ("business_delegate", "businessDelegate"),
    ("technology_sponsor", "technologySponsor"),
    ("finance_sponsor", "financeSponsor"),
    ("benefits_sponsor", "benefitsSponsor"),
)

_KNOWN_KEYS = frozenset(
    {
        "id",
        "title",
        "ownerName",
        "ownerEmail",
        "createdByUserId",
        "createdAt",
        "updatedAt",
        "stage",
        "status",
        "lifecycleStatus",
        "workflow",
        "sponsorContacts",
        "approvalStages",
        "committeeDecision",
        "auditTrail",
        "payload",
        "sponsorName",
        "sponsorEmail",
        *(record_key for _, record_key in _SPONSOR_SLOTS),
    }
)

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")

EnumT = TypeVar("EnumT", bound=StrEnum)


def normalize_submission(raw: Mapping[str, Any] | Submission) -> Submission:
    """Migrate a legacy or partial record into a canonical Submission.

    Pure and idempotent: the clock is never read, unknown enum values fall
    back to defaults, and already-canonical input comes back unchanged.
    """
    if isinstance(raw, Submission):
        raw = submission_to_record(raw)

    created_at = (
        parse_timestamp(raw.get("createdAt"))
        or parse_timestamp(raw.get("updatedAt"))
        or parse_timestamp(_mapping(raw.get("workflow")).get("lastSavedAt"))
        or EPOCH
    )
    updated_at = parse_timestamp(raw.get("updatedAt")) or created_at
    submission_id = coerce_case_id(_text(raw.get("id")), year=created_at.year)

    workflow = _parse_workflow(
        _mapping(raw.get("workflow")),
        legacy_stage=raw.get("stage"),
        legacy_status=raw.get("status"),
        legacy_lifecycle=raw.get("lifecycleStatus"),
        fallback_time=updated_at,
    )
    sponsor_contacts = _parse_sponsor_contacts(raw)
    parsed_stages = _parse_stage_records(raw.get("approvalStages"), submission_id=submission_id)
    approval_stages = compute_applicable_stages(
        submission_id=submission_id,
        sponsor_contacts=sponsor_contacts,
        workflow=workflow,
        existing=parsed_stages,
    )

    owner_name = _text(raw.get("ownerName")) or SYSTEM_ACTOR.name or ""
    owner_email = _text(raw.get("ownerEmail")).lower() or SYSTEM_ACTOR.email or ""

    audit_trail = _parse_audit_trail(
        raw.get("auditTrail"),
        submission_id=submission_id,
        fallback_workflow=workflow,
        fallback_time=created_at,
    )
    if not audit_trail:
        stage, status = stage_status_for(workflow.lifecycle_status)
        audit_trail = (
            AuditEntry(
                id=f"audit-init-{submission_id}",
                action="CREATED",
                stage=stage,
                status=status,
                workflow=workflow,
                note=INITIAL_AUDIT_NOTE,
                created_at=created_at,
                actor_name=owner_name,
                actor_email=owner_email,
            ),
        )

    payload = copy.deepcopy(dict(_mapping(raw.get("payload"))))
    for key, value in raw.items():
        if key not in _KNOWN_KEYS and key not in payload:
            payload[key] = copy.deepcopy(value)

    return Submission(
        id=submission_id,
        title=_text(raw.get("title")) or "Untitled submission",
        owner_name=owner_name,
        owner_email=owner_email,
        workflow=workflow,
        sponsor_contacts=sponsor_contacts,
        approval_stages=approval_stages,
        audit_trail=audit_trail,
        created_at=created_at,
        updated_at=updated_at,
        committee_decision=_parse_enum(CommitteeDecision, raw.get("committeeDecision")),
        created_by_user_id=_text(raw.get("createdByUserId")) or None,
        payload=payload,
    )


def normalize_stage(value: object) -> ProjectStage:
    text = _text(value)
    canonical = _parse_enum(ProjectStage, text)
    if canonical is not None:
        return canonical
    return LEGACY_STAGE_MAP.get(text, ProjectStage.PROPOSAL)


def normalize_status(value: object, *, stage: ProjectStage = ProjectStage.PROPOSAL) -> ProjectStatus:
    key = _text(value).upper()
    if key == ProjectStatus.APPROVED:
        return LEGACY_APPROVED_STATUS[stage]
    canonical = _parse_enum(ProjectStatus, key)
    if canonical is not None:
        return canonical
    legacy = LEGACY_STATUS_MAP.get(key)
    if legacy is not None:
        return legacy
    return ProjectStatus.ACTIVE if stage == ProjectStage.LIVE else ProjectStatus.DRAFT


def resolve_sponsor_email(name: str) -> str:
    candidate = name.strip()
    if not candidate:
        return DEFAULT_APPROVER_EMAIL
    if "@" in candidate:
        return candidate.lower()
    mapped = SPONSOR_DIRECTORY.get(candidate)
    if mapped:
        return mapped
    slug = _SLUG_PATTERN.sub(".", candidate.lower()).strip(".")
    return f"{slug or 'approver'}@portal.local"


def person_from_value(value: object) -> PersonRef | None:
    if isinstance(value, PersonRef):
        return value
    if isinstance(value, str):
        value = {"displayName": value}
    if not isinstance(value, Mapping):
        return None

    display_name = _text(value.get("displayName")) or _text(value.get("name"))
    email = _text(value.get("email")).lower()
    if not display_name and not email:
        return None
    return PersonRef(
        id=_text(value.get("id")) or f"legacy-{email or _SLUG_PATTERN.sub('-', display_name.lower()).strip('-')}",
        display_name=display_name or email,
        email=email or resolve_sponsor_email(display_name),
        job_title=_text(value.get("jobTitle")) or None,
        photo=_text(value.get("photo")) or None,
    )


def parse_timestamp(value: object) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def submission_to_record(submission: Submission) -> dict[str, Any]:
    stage, status = stage_status_for(submission.workflow.lifecycle_status)
    return {
        "id": submission.id,
        "title": submission.title,
        "ownerName": submission.owner_name,
        "ownerEmail": submission.owner_email,
        "createdByUserId": submission.created_by_user_id,
        "createdAt": submission.created_at.isoformat(),
        "updatedAt": submission.updated_at.isoformat(),
        "stage": stage.value,
        "status": status.value,
        "workflow": workflow_to_record(submission.workflow),
        "sponsorContacts": sponsor_contacts_to_record(submission.sponsor_contacts),
        "approvalStages": [_stage_to_record(record) for record in submission.approval_stages],
        "committeeDecision": submission.committee_decision.value if submission.committee_decision else None,
        "auditTrail": [_audit_to_record(entry) for entry in submission.audit_trail],
        "payload": copy.deepcopy(submission.payload),
    }


def workflow_to_record(workflow: WorkflowState) -> dict[str, Any]:
    return {
        "entityType": workflow.entity_type.value,
        "lifecycleStatus": workflow.lifecycle_status.value,
        "sponsorDecision": workflow.sponsor_decision.value,
        "pgoDecision": workflow.pgo_decision.value,
        "financeDecision": workflow.finance_decision.value,
        "spoDecision": workflow.spo_decision.value,
        "fundingStatus": workflow.funding_status.value,
        "lastSavedAt": _isoformat(workflow.last_saved_at),
        "lockedAt": _isoformat(workflow.locked_at),
        "lockReason": workflow.lock_reason,
        "reviewRound": workflow.review_round,
    }


def person_to_record(person: PersonRef | None) -> dict[str, Any] | None:
    if person is None:
        return None
    return {
        "id": person.id,
        "displayName": person.display_name,
        "email": person.email,
        "jobTitle": person.job_title,
        "photo": person.photo,
    }


def sponsor_contacts_to_record(contacts: SponsorContacts) -> dict[str, Any]:
    return {
        record_key: person_to_record(getattr(contacts, attribute))
        for attribute, record_key in _SPONSOR_SLOTS
    }


def sponsor_contacts_from_record(value: Mapping[str, Any]) -> SponsorContacts:
    return SponsorContacts(
        **{attribute: person_from_value(value.get(record_key)) for attribute, record_key in _SPONSOR_SLOTS}
    )


def _parse_workflow(
    raw: Mapping[str, Any],
    *,
    legacy_stage: object,
    legacy_status: object,
    legacy_lifecycle: object,
    fallback_time: datetime,
) -> WorkflowState:
    lifecycle = _parse_enum(LifecycleStatus, raw.get("lifecycleStatus")) or _parse_enum(
        LifecycleStatus, legacy_lifecycle
    )
    if lifecycle is None:
        stage = normalize_stage(legacy_stage)
        lifecycle = lifecycle_for_stage_status(stage, normalize_status(legacy_status, stage=stage))
    stage, _ = stage_status_for(lifecycle)

    funding_status = _parse_enum(FundingStatus, raw.get("fundingStatus")) or _default_funding_status(lifecycle)
    entity_type = _parse_enum(EntityType, raw.get("entityType"))
    if entity_type is None:
        on_proposal = stage == ProjectStage.PROPOSAL and funding_status == FundingStatus.NOT_REQUESTED
        entity_type = EntityType.PROPOSAL if on_proposal else EntityType.FUNDING_REQUEST

    workflow = WorkflowState(
        entity_type=entity_type,
        lifecycle_status=lifecycle,
        sponsor_decision=_parse_decision(raw.get("sponsorDecision")),
        pgo_decision=_parse_decision(raw.get("pgoDecision")),
        finance_decision=_parse_decision(raw.get("financeDecision")),
        spo_decision=_parse_decision(raw.get("spoDecision")),
        funding_status=funding_status,
        last_saved_at=parse_timestamp(raw.get("lastSavedAt")),
        locked_at=parse_timestamp(raw.get("lockedAt")),
        lock_reason=_text(raw.get("lockReason")) or None,
        review_round=_non_negative_int(raw.get("reviewRound")),
    )
    return apply_lock(workflow, now=fallback_time)


def _default_funding_status(lifecycle: LifecycleStatus) -> FundingStatus:
    if lifecycle == LifecycleStatus.FR_APPROVED:
        return FundingStatus.FUNDED
    stage, _ = stage_status_for(lifecycle)
    if stage == ProjectStage.FUNDING:
        return FundingStatus.REQUESTED
    if stage == ProjectStage.LIVE:
        return FundingStatus.LIVE
    return FundingStatus.NOT_REQUESTED


def _parse_sponsor_contacts(raw: Mapping[str, Any]) -> SponsorContacts:
    existing = _mapping(raw.get("sponsorContacts"))
    legacy_business_name = _text(raw.get("businessSponsor")) or _text(raw.get("sponsorName"))
    legacy_business_email = _text(raw.get("sponsorEmail"))
    slots: dict[str, PersonRef | None] = {}
    for attribute, record_key in _SPONSOR_SLOTS:
        if record_key in existing:
            slots[attribute] = person_from_value(existing[record_key])
        elif attribute == "business_sponsor":
            slots[attribute] = person_from_value(
                {"displayName": legacy_business_name, "email": legacy_business_email}
            )
        else:
            slots[attribute] = person_from_value(raw.get(record_key))
    return SponsorContacts(**slots)


def _parse_stage_records(value: object, *, submission_id: str) -> list[ApprovalStageRecord]:
    records: list[ApprovalStageRecord] = []
    if not isinstance(value, list):
        return records
    for item in value:
        if not isinstance(item, Mapping):
            continue
        stage = _parse_enum(ApprovalStageCode, item.get("stage"))
        if stage is None:
            continue
        records.append(
            ApprovalStageRecord(
                id=_text(item.get("id")) or approval_stage_id(submission_id=submission_id, stage=stage),
                stage=stage,
                status=_parse_enum(ApprovalStageStatus, item.get("status")) or ApprovalStageStatus.PENDING,
                decided_by_user_id=_text(item.get("decidedByUserId")) or None,
                acting_as=_parse_enum(ActingAs, item.get("actingAs")),
                comment=_text(item.get("comment")) or None,
                decided_at=parse_timestamp(item.get("decidedAt")),
            )
        )
    return records


def _parse_audit_trail(
    value: object,
    *,
    submission_id: str,
    fallback_workflow: WorkflowState,
    fallback_time: datetime,
) -> tuple[AuditEntry, ...]:
    if not isinstance(value, list):
        return ()
    entries: list[AuditEntry] = []
    for index, item in enumerate(value):
        if not isinstance(item, Mapping):
            continue
        created_at = parse_timestamp(item.get("createdAt")) or fallback_time
        snapshot = item.get("workflowSnapshot")
        if isinstance(snapshot, Mapping):
            workflow = _parse_workflow(
                snapshot,
                legacy_stage=item.get("stage"),
                legacy_status=item.get("status"),
                legacy_lifecycle=None,
                fallback_time=created_at,
            )
        elif item.get("stage") or item.get("status"):
            workflow = _parse_workflow(
                {},
                legacy_stage=item.get("stage"),
                legacy_status=item.get("status"),
                legacy_lifecycle=None,
                fallback_time=created_at,
            )
        else:
            workflow = fallback_workflow
        stage, status = stage_status_for(workflow.lifecycle_status)
        entries.append(
            AuditEntry(
                id=_text(item.get("id")) or f"audit-{submission_id}-{index}",
                action=_text(item.get("action")) or "UPDATED",
                stage=stage,
                status=status,
                workflow=workflow,
                note=_text(item.get("note")),
                created_at=created_at,
                actor_name=_text(item.get("actorName")) or None,
                actor_email=_text(item.get("actorEmail")) or None,
            )
        )
    return tuple(entries)


def _stage_to_record(record: ApprovalStageRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "stage": record.stage.value,
        "status": record.status.value,
        "decidedByUserId": record.decided_by_user_id,
        "actingAs": record.acting_as.value if record.acting_as else None,
        "comment": record.comment,
        "decidedAt": _isoformat(record.decided_at),
    }


def _audit_to_record(entry: AuditEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "action": entry.action,
        "stage": entry.stage.value,
        "status": entry.status.value,
        "workflowSnapshot": workflow_to_record(entry.workflow),
        "note": entry.note,
        "actorName": entry.actor_name,
        "actorEmail": entry.actor_email,
        "createdAt": entry.created_at.isoformat(),
    }


def _parse_decision(value: object) -> Decision:
    decision = _parse_enum(Decision, value)
    if decision is not None:
        return decision
    key = _text(value).replace("_", " ").lower()
    for candidate in Decision:
        if candidate.value.lower() == key:
            return candidate
    return Decision.PENDING


def _parse_enum(enum_type: type[EnumT], value: object) -> EnumT | None:
    if isinstance(value, enum_type):
        return value
    text = _text(value)
    if not text:
        return None
    try:
        return enum_type(text)
    except ValueError:
        pass
    try:
        return enum_type(text.upper())
    except ValueError:
        return None


def _mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def _non_negative_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, str):
        try:
            return max(int(value), 0)
        except ValueError:
            return 0
    return 0


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
