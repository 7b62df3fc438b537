from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from portal.domain.models import (
    ActingAs,
    ApprovalRequestStatus,
    ApprovalStageCode,
    ApprovalStageStatus,
    CommitteeDecision,
    Decision,
    EntityType,
    FundingStatus,
    GovernanceLane,
    LifecycleStatus,
    ProjectStage,
    ProjectStatus,
    RoleContext,
    WorkflowAction,
)


SUBMISSION_ID_PATTERN = r"^SP-[0-9]{4}-[0-9]{3,}$"
APPROVAL_REQUEST_ID_PATTERN = r"^apr_[0-9A-HJKMNP-TV-Z]{26}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+$"


class ErrorResponse(BaseModel):
    detail: str


class WorkerMetrics(BaseModel):
    started: bool
    stopped: bool
    ticks_total: int
    changed_ticks_total: int
    idle_ticks_total: int
    errors_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    mode: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    mode: str
    worker_loop_enabled: bool
    worker_loop_ready: bool
    worker_metrics: WorkerMetrics


class ActorPayload(BaseModel):
    name: str | None = Field(default=None, max_length=128)
    email: str | None = Field(default=None, pattern=EMAIL_PATTERN)
    user_id: str | None = Field(default=None, max_length=128)


class PersonRefPayload(BaseModel):
    id: str | None = Field(default=None, max_length=128)
    display_name: str = Field(default="", max_length=128)
    email: str = Field(default="", max_length=256)
    job_title: str | None = Field(default=None, max_length=128)
    photo: str | None = None


class SponsorContactsPayload(BaseModel):
    business_sponsor: PersonRefPayload | None = None
    business_delegate: PersonRefPayload | None = None
    technology_sponsor: PersonRefPayload | None = None
    finance_sponsor: PersonRefPayload | None = None
    benefits_sponsor: PersonRefPayload | None = None


class CreateSubmissionRequest(BaseModel):
    title: str = Field(min_length=1, max_length=256)
    owner_name: str = Field(min_length=1, max_length=128)
    owner_email: str = Field(pattern=EMAIL_PATTERN)
    sponsor_contacts: SponsorContactsPayload = Field(default_factory=SponsorContactsPayload)
    payload: dict[str, Any] = Field(default_factory=dict)
    actor: ActorPayload | None = None


class UpdateSponsorsRequest(BaseModel):
    sponsor_contacts: SponsorContactsPayload
    actor: ActorPayload | None = None


class RunActionRequest(BaseModel):
    action: WorkflowAction
    actor: ActorPayload | None = None


class StageDecisionRequest(BaseModel):
    decision: ApprovalStageStatus
    acting_as: ActingAs | None = None
    comment: str | None = Field(default=None, max_length=2000)
    actor: ActorPayload | None = None


class RequestDecisionRequest(BaseModel):
    decision: ApprovalRequestStatus
    comment: str | None = Field(default=None, max_length=2000)
    actor: ActorPayload | None = None


class ReconcileRequest(BaseModel):
    actor: ActorPayload | None = None


class CompleteGatingTaskRequest(BaseModel):
    project_id: str = Field(pattern=SUBMISSION_ID_PATTERN)
    lane: GovernanceLane
    workflow_stage: EntityType
    actor: ActorPayload | None = None


class PersonRefResponse(BaseModel):
    id: str
    display_name: str
    email: str
    job_title: str | None = None
    photo: str | None = None


class SponsorContactsResponse(BaseModel):
    business_sponsor: PersonRefResponse | None = None
    business_delegate: PersonRefResponse | None = None
    technology_sponsor: PersonRefResponse | None = None
    finance_sponsor: PersonRefResponse | None = None
    benefits_sponsor: PersonRefResponse | None = None


class WorkflowResponse(BaseModel):
    entity_type: EntityType
    lifecycle_status: LifecycleStatus
    sponsor_decision: Decision
    pgo_decision: Decision
    finance_decision: Decision
    spo_decision: Decision
    funding_status: FundingStatus
    last_saved_at: datetime | None = None
    locked_at: datetime | None = None
    lock_reason: str | None = None
    review_round: int


class ApprovalStageResponse(BaseModel):
    id: str
    stage: ApprovalStageCode
    status: ApprovalStageStatus
    decided_by_user_id: str | None = None
    acting_as: ActingAs | None = None
    comment: str | None = None
    decided_at: datetime | None = None


class AuditEntryResponse(BaseModel):
    id: str
    action: str
    stage: ProjectStage
    status: ProjectStatus
    lifecycle_status: LifecycleStatus
    note: str
    created_at: datetime
    actor_name: str | None = None
    actor_email: str | None = None


class SubmissionResponse(BaseModel):
    id: str = Field(pattern=SUBMISSION_ID_PATTERN)
    title: str
    owner_name: str
    owner_email: str
    stage: ProjectStage
    status: ProjectStatus
    lifecycle_status: LifecycleStatus
    lifecycle_label: str
    editable: bool
    allowed_actions: list[WorkflowAction]
    workflow: WorkflowResponse
    sponsor_contacts: SponsorContactsResponse
    approval_stages: list[ApprovalStageResponse]
    audit_trail: list[AuditEntryResponse]
    committee_decision: CommitteeDecision | None = None
    created_by_user_id: str | None = None
    created_at: datetime
    updated_at: datetime
    payload: dict[str, Any] = Field(default_factory=dict)


class SubmissionListResponse(BaseModel):
    items: list[SubmissionResponse]


class ApprovalRequestResponse(BaseModel):
    id: str
    submission_id: str
    entity_type: EntityType
    role_context: RoleContext
    approver_name: str
    approver_email: str
    status: ApprovalRequestStatus
    review_round: int
    requested_at: datetime
    updated_at: datetime
    decided_at: datetime | None = None
    comment: str | None = None


class ApprovalSummaryResponse(BaseModel):
    submission_id: str
    review_round: int
    required_contexts: list[RoleContext]
    pending_count: int
    all_required_approved: bool
    any_rejected: bool
    any_need_more_info: bool
    items: list[ApprovalRequestResponse]


class ApprovalQueueResponse(BaseModel):
    approver_email: str
    items: list[ApprovalRequestResponse]
