from __future__ import annotations

from dataclasses import dataclass, field

from portal.domain.models import (
    ActingAs,
    Actor,
    ApprovalRequestStatus,
    ApprovalStageCode,
    ApprovalStageStatus,
    EntityType,
    GovernanceLane,
    SponsorContacts,
    WorkflowAction,
)


@dataclass(frozen=True)
class CreateSubmissionCommand:
    title: str
    owner_name: str
    owner_email: str
    sponsor_contacts: SponsorContacts = field(default_factory=SponsorContacts)
    payload: dict[str, object] = field(default_factory=dict)
    actor: Actor | None = None


@dataclass(frozen=True)
class UpdateSponsorsCommand:
    submission_id: str
    sponsor_contacts: SponsorContacts
    actor: Actor | None = None


@dataclass(frozen=True)
class RunActionCommand:
    submission_id: str
    action: WorkflowAction
    actor: Actor | None = None


@dataclass(frozen=True)
class RecordApprovalDecisionCommand:
    submission_id: str
    stage: ApprovalStageCode | str
    decision: ApprovalStageStatus
    actor: Actor | None = None
    acting_as: ActingAs | None = None
    comment: str | None = None


@dataclass(frozen=True)
class DecideApprovalRequestCommand:
    request_id: str
    decision: ApprovalRequestStatus
    actor: Actor | None = None
    comment: str | None = None


@dataclass(frozen=True)
class ReconcileCommand:
    submission_id: str
    actor: Actor | None = None


@dataclass(frozen=True)
class CompleteGatingTaskCommand:
    project_id: str
    lane: GovernanceLane
    workflow_stage: EntityType
    actor: Actor | None = None

