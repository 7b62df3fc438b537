from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class LifecycleStatus(StrEnum):
    DRAFT = "DRAFT"
    AT_SPONSOR_REVIEW = "AT_SPONSOR_REVIEW"
    AT_PGO_FGO_REVIEW = "AT_PGO_FGO_REVIEW"
    AT_SPO_REVIEW = "AT_SPO_REVIEW"
    SPO_DECISION_APPROVED = "SPO_DECISION_APPROVED"
    SPO_DECISION_REJECTED = "SPO_DECISION_REJECTED"
    SPO_DECISION_DEFERRED = "SPO_DECISION_DEFERRED"
    FR_DRAFT = "FR_DRAFT"
    FR_AT_SPONSOR_APPROVALS = "FR_AT_SPONSOR_APPROVALS"
    FR_AT_PGO_FGO_REVIEW = "FR_AT_PGO_FGO_REVIEW"
    FR_APPROVED = "FR_APPROVED"
    FR_REJECTED = "FR_REJECTED"
    CLOSED = "CLOSED"
    ARCHIVED = "ARCHIVED"


class ProjectStage(StrEnum):
    PROPOSAL = "PROPOSAL"
    FUNDING = "FUNDING"
    LIVE = "LIVE"


class ProjectStatus(StrEnum):
    DRAFT = "DRAFT"
    SPONSOR_REVIEW = "SPONSOR_REVIEW"
    PGO_FGO_REVIEW = "PGO_FGO_REVIEW"
    SPO_REVIEW = "SPO_REVIEW"
    REJECTED = "REJECTED"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    CHANGE_REVIEW = "CHANGE_REVIEW"


class EntityType(StrEnum):
    PROPOSAL = "PROPOSAL"
    FUNDING_REQUEST = "FUNDING_REQUEST"


class Decision(StrEnum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    NEED_MORE_INFO = "Need More Info"
    RETURNED = "Returned to Submitter"


class FundingStatus(StrEnum):
    NOT_REQUESTED = "Not Requested"
    REQUESTED = "Requested"
    FUNDED = "Funded"
    LIVE = "Live"


class CommitteeDecision(StrEnum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalStageCode(StrEnum):
    BUSINESS = "BUSINESS"
    TECHNOLOGY = "TECHNOLOGY"
    FINANCE = "FINANCE"
    BENEFITS = "BENEFITS"


class ApprovalStageStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEED_MORE_INFO = "NEED_MORE_INFO"


class ActingAs(StrEnum):
    SPONSOR = "SPONSOR"
    DELEGATE = "DELEGATE"


class RoleContext(StrEnum):
    BUSINESS_SPONSOR = "BUSINESS_SPONSOR"
    BUSINESS_DELEGATE = "BUSINESS_DELEGATE"
    TECH_SPONSOR = "TECH_SPONSOR"
    FINANCE_SPONSOR = "FINANCE_SPONSOR"
    BENEFITS_SPONSOR = "BENEFITS_SPONSOR"


class ApprovalRequestStatus(StrEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    NEED_MORE_INFO = "NEED_MORE_INFO"
    CANCELLED = "CANCELLED"


class WorkflowAction(StrEnum):
    SEND_TO_SPONSOR = "SEND_TO_SPONSOR"
    SUBMIT_FUNDING_REQUEST = "SUBMIT_FUNDING_REQUEST"
    SPO_APPROVE = "SPO_APPROVE"
    SPO_REJECT = "SPO_REJECT"
    REJECT_FUNDING_REQUEST = "REJECT_FUNDING_REQUEST"
    MARK_LIVE = "MARK_LIVE"
    RAISE_CHANGE_REQUEST = "RAISE_CHANGE_REQUEST"


class GovernanceLane(StrEnum):
    FINANCE = "Finance"
    PROJECT_GOVERNANCE = "Project Governance"


class TaskStatus(StrEnum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class PersonRef:
    id: str
    display_name: str
    email: str
    job_title: str | None = None
    photo: str | None = None


@dataclass(frozen=True)
class SponsorContacts:
    business_sponsor: PersonRef | None = None
    business_delegate: PersonRef | None = None
    technology_sponsor: PersonRef | None = None
    finance_sponsor: PersonRef | None = None
    benefits_sponsor: PersonRef | None = None


@dataclass(frozen=True)
class WorkflowState:
    entity_type: EntityType
    lifecycle_status: LifecycleStatus
    sponsor_decision: Decision = Decision.PENDING
    pgo_decision: Decision = Decision.PENDING
    finance_decision: Decision = Decision.PENDING
    spo_decision: Decision = Decision.PENDING
    funding_status: FundingStatus = FundingStatus.NOT_REQUESTED
    last_saved_at: datetime | None = None
    locked_at: datetime | None = None
    lock_reason: str | None = None
    review_round: int = 0


@dataclass(frozen=True)
class ApprovalStageRecord:
    id: str
    stage: ApprovalStageCode
    status: ApprovalStageStatus = ApprovalStageStatus.PENDING
    decided_by_user_id: str | None = None
    acting_as: ActingAs | None = None
    comment: str | None = None
    decided_at: datetime | None = None


@dataclass(frozen=True)
class AuditEntry:
    id: str
    action: str
    stage: ProjectStage
    status: ProjectStatus
    workflow: WorkflowState
    note: str
    created_at: datetime
    actor_name: str | None = None
    actor_email: str | None = None


@dataclass(frozen=True)
class Submission:
    id: str
    title: str
    owner_name: str
    owner_email: str
    workflow: WorkflowState
    sponsor_contacts: SponsorContacts
    approval_stages: tuple[ApprovalStageRecord, ...]
    audit_trail: tuple[AuditEntry, ...]
    created_at: datetime
    updated_at: datetime
    committee_decision: CommitteeDecision | None = None
    created_by_user_id: str | None = None
    payload: dict[str, object] = field(default_factory=dict)

    @property
    def lifecycle_status(self) -> LifecycleStatus:
        return self.workflow.lifecycle_status


@dataclass(frozen=True)
class Actor:
    name: str | None = None
    email: str | None = None
    user_id: str | None = None


SYSTEM_ACTOR = Actor(name="System", email="system@portal.local", user_id="system")


@dataclass(frozen=True)
class ApprovalRequest:
    id: str
    submission_id: str
    entity_type: EntityType
    role_context: RoleContext
    approver_name: str
    approver_email: str
    status: ApprovalRequestStatus
    requested_at: datetime
    updated_at: datetime
    review_round: int = 0
    approver_user_id: str | None = None
    created_by_user_id: str | None = None
    decided_at: datetime | None = None
    comment: str | None = None


@dataclass(frozen=True)
class ApprovalSummary:
    rows: tuple[ApprovalRequest, ...]
    required_contexts: tuple[RoleContext, ...]
    pending_count: int
    all_required_approved: bool
    any_rejected: bool
    any_need_more_info: bool


@dataclass(frozen=True)
class ProjectManagementTask:
    id: str
    project_id: str
    funding_request_id: str
    task_type: str
    status: TaskStatus
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class GovernanceTask:
    id: str
    title: str
    status: str
    task_type: str | None = None


@dataclass(frozen=True)
class GovernanceCard:
    project_id: str
    lane: GovernanceLane
    workflow_stage: EntityType | None = None
    tasks: tuple[GovernanceTask, ...] = ()
